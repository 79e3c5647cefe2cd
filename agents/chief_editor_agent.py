"""Chief Editor Agent: strategic chapter structure for the whole book."""

import json
import logging
from typing import Optional

from agents.base_agent import BaseAgent
from agents.planner_agent import basic_structure
from config.exceptions import LLMError
from config.settings import Settings
from models.book import BookSettings
from models.story_bible import ChapterPlan, ResearchData, StoryBible, StoryStructure
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ChiefEditorAgent(BaseAgent):
    """Refines chapter purposes, scenes and act structure of a story bible."""

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(llm_client, settings, rate_limiter)
        self._template = self._load_prompt("chief_editor")

    async def create_structure_plan(
        self,
        bible: StoryBible,
        research: Optional[ResearchData],
        settings: BookSettings,
    ) -> StoryBible:
        """Return a copy of the bible with the editor's chapter structure.

        Falls back to the basic structure when the completion fails or
        returns no chapters.
        """
        chapters_json = json.dumps(
            [
                {"number": c.number, "title": c.title, "purpose": c.purpose,
                 "word_count_target": c.word_count_target, "scenes": len(c.scenes)}
                for c in bible.chapters
            ],
            ensure_ascii=False,
        )
        topics = research.all_facts()[:15] if research else []

        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Structure Plan Instructions").format(
            target_word_count=settings.target_word_count,
            premise=bible.premise,
            theme=bible.theme,
            chapters=chapters_json,
            research="\n".join(f"- {t}" for t in topics) or "(none)",
        )

        try:
            data = await self._complete_json(
                user_prompt, self.settings.llm_model_chief_editor, system_prompt, max_tokens=6000,
            )
        except LLMError as e:
            logger.warning("Chief editor plan failed, using basic structure: %s", e)
            return basic_structure(bible, settings)

        chapters = [
            ChapterPlan.from_dict(c) for c in data.get("chapters", []) or []
            if isinstance(c, dict)
        ]
        if not chapters:
            logger.warning("Chief editor returned no chapters, using basic structure")
            return basic_structure(bible, settings)

        for index, plan in enumerate(chapters):
            plan.number = index + 1
            # Keep the planner's scenes where the editor dropped them
            if not plan.scenes and index < len(bible.chapters):
                plan.scenes = list(bible.chapters[index].scenes)

        structure = StoryStructure.from_dict(data.get("structure") or {})
        if not structure.climax_chapter:
            structure.climax_chapter = int(len(chapters) * 0.8)

        logger.info(
            "Chief editor structure: %d chapters, climax at chapter %d",
            len(chapters), structure.climax_chapter,
        )
        return StoryBible(
            premise=bible.premise,
            theme=bible.theme,
            tone=bible.tone,
            characters=list(bible.characters),
            world_rules=list(bible.world_rules),
            structure=structure,
            chapters=chapters,
            plot_threads=list(bible.plot_threads),
            timeline=list(bible.timeline),
        )
