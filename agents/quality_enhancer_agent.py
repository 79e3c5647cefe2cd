"""Quality Enhancer Agent: voice, emotional pacing, foreshadowing and subtext plan."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError
from config.settings import Settings
from models.book import BookSettings
from models.story_bible import QualityPlan, StoryBible
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class QualityEnhancerAgent(BaseAgent):

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(llm_client, settings, rate_limiter)
        self._template = self._load_prompt("quality_enhancer")

    async def create_quality_plan(self, bible: StoryBible, settings: BookSettings) -> QualityPlan:
        """Plan the book's quality layers; a voice-only plan is returned on failure."""
        chapters = "\n".join(f"{c.number}. {c.title}: {c.purpose}" for c in bible.chapters)
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Quality Plan Instructions").format(
            premise=bible.premise,
            theme=bible.theme,
            tone=settings.tone,
            chapters=chapters,
        )
        try:
            data = await self._complete_json(
                user_prompt, self.settings.llm_model_quality_enhancer, system_prompt,
                max_tokens=4000,
            )
        except LLMError as e:
            logger.warning("Quality plan failed, using voice-only plan: %s", e)
            return QualityPlan(
                narrative_voice=f"{settings.point_of_view}, {settings.tense} tense, {settings.tone} tone",
            )

        plan = QualityPlan.from_dict(data)
        logger.info(
            "Quality plan ready: %d beats, %d foreshadowing links",
            len(plan.emotional_pacing), len(plan.foreshadowing),
        )
        return plan
