"""Planner Agent: back cover, story bible, and the basic structure plan."""

import json
import logging
import math
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError, LLMResponseParseError
from config.settings import Settings
from models.book import BookSettings
from models.story_bible import (
    ChapterPlan, CharacterProfile, ResearchData, ScenePlan, StoryBible, StoryStructure,
)
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

WORDS_PER_PLANNED_CHAPTER = 2500
MIN_PLANNED_CHAPTERS = 3

_VALID_ROLE_PATTERNS = (
    "protagonist", "main", "hero", "lead",
    "antagonist", "villain", "enemy",
    "supporting", "secondary", "side", "friend", "ally",
)


def planned_chapter_count(target_word_count: int) -> int:
    """Chapters requested from the planner before any consolidation."""
    return max(MIN_PLANNED_CHAPTERS, math.ceil(target_word_count / WORDS_PER_PLANNED_CHAPTER))


def basic_structure(bible: StoryBible, settings: BookSettings) -> StoryBible:
    """Normalize the planner's chapters without the chief editor.

    Chapters are renumbered 1..n, missing titles and purposes are filled in,
    research focus is cleared and the climax sits at 80% of the book.
    """
    count = len(bible.chapters) or 1
    default_words = math.floor(settings.target_word_count / count)
    chapters = []
    for index, plan in enumerate(bible.chapters):
        chapters.append(ChapterPlan(
            number=index + 1,
            title=plan.title or f"Chapter {index + 1}",
            purpose=plan.purpose or "Chapter content",
            word_count_target=plan.word_count_target or default_words,
            scenes=list(plan.scenes),
            character_arcs=list(plan.character_arcs),
            plot_threads=list(plan.plot_threads),
            research_focus=[],
        ))
    return StoryBible(
        premise=bible.premise,
        theme=bible.theme,
        tone=bible.tone,
        characters=list(bible.characters),
        world_rules=list(bible.world_rules),
        structure=StoryStructure(
            acts=[],
            climax_chapter=math.floor(len(bible.chapters) * 0.8),
            notes=bible.structure.notes,
        ),
        chapters=chapters,
        plot_threads=list(bible.plot_threads),
        timeline=list(bible.timeline),
    )


class PlannerAgent(BaseAgent):
    """Turns a premise into a back cover and a structured story bible."""

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(llm_client, settings, rate_limiter)
        self._template = self._load_prompt("planner")

    async def generate_back_cover(self, prompt: str, settings: BookSettings) -> str:
        """Generate back cover copy from the user's premise.

        Raises:
            LLMError: If the completion fails or returns nothing.
        """
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Back Cover Instructions").format(
            prompt=prompt,
            genre=settings.genre,
            tone=settings.tone or "balanced",
            audience=settings.audience or "general readers",
            target_word_count=settings.target_word_count,
        )
        result = await self._complete(
            user_prompt, self.settings.llm_model_planning, system_prompt, max_tokens=1000,
        )
        back_cover = result.text.strip()
        if not back_cover:
            raise LLMError("Back cover generation failed: empty response")
        return back_cover

    async def refine_back_cover(
        self, back_cover: str, feedback: str, settings: BookSettings,
    ) -> str:
        """Revise an existing back cover according to user feedback."""
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Refine Back Cover Instructions").format(
            back_cover=back_cover,
            feedback=feedback,
            genre=settings.genre,
            tone=settings.tone or "balanced",
        )
        result = await self._complete(
            user_prompt, self.settings.llm_model_planning, system_prompt, max_tokens=1000,
        )
        refined = result.text.strip()
        if not refined:
            raise LLMError("Back cover refinement failed: empty response")
        return refined

    async def generate_story_bible(
        self,
        prompt: str,
        back_cover: str,
        settings: BookSettings,
        research: Optional[ResearchData] = None,
    ) -> StoryBible:
        """Generate the story bible, falling back to a simple outline.

        A completion or parse failure never aborts planning; the simple
        outline keeps the pipeline moving and the failure is logged.
        """
        chapter_count = planned_chapter_count(settings.target_word_count)
        research_notes = "\n".join(f"- {f}" for f in (research.all_facts() if research else [])[:20])

        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Story Bible Instructions").format(
            prompt=prompt,
            back_cover=back_cover,
            genre=settings.genre,
            tone=settings.tone or "balanced",
            audience=settings.audience or "general readers",
            point_of_view=settings.point_of_view,
            tense=settings.tense,
            target_word_count=settings.target_word_count,
            chapter_count=chapter_count,
            character_names=", ".join(settings.character_names) or "(planner's choice)",
            research=research_notes or "(none)",
        )

        try:
            data = await self._complete_json(
                user_prompt, self.settings.llm_model_planning, system_prompt,
                max_tokens=6000, temperature=0.6,
            )
            bible = StoryBible.from_dict(data)
            if not bible.chapters:
                raise LLMResponseParseError("Story bible has no chapters", raw_response=json.dumps(data)[:200])
        except LLMError as e:
            logger.warning("Story bible generation failed (%s), using simple outline", e)
            bible = self.simple_story_bible(prompt, back_cover, settings)

        logger.info(
            "Story bible ready: %d chapters, %d characters",
            len(bible.chapters), len(bible.characters),
        )
        return bible

    def simple_story_bible(self, prompt: str, back_cover: str, settings: BookSettings) -> StoryBible:
        """Minimal story bible built without a completion."""
        count = planned_chapter_count(settings.target_word_count)
        characters = self._fallback_characters(settings)
        names = [c.name for c in characters]
        chapters = [
            ChapterPlan(
                number=n,
                title=f"Chapter {n}",
                purpose=f"Chapter {n} continues the story with important developments and character growth.",
                word_count_target=WORDS_PER_PLANNED_CHAPTER,
                scenes=[ScenePlan(
                    purpose=f"Key event in chapter {n}",
                    setting="Story setting",
                    characters=names[:2],
                )],
            )
            for n in range(1, count + 1)
        ]
        summary = back_cover[:200] if back_cover else prompt[:200]
        return StoryBible(
            premise=f"A {settings.genre} story for {settings.audience or 'general readers'}. {summary}",
            theme="Character Development",
            tone=settings.tone,
            characters=characters,
            structure=StoryStructure(climax_chapter=math.floor(count * 0.8)),
            chapters=chapters,
        )

    def _fallback_characters(self, settings: BookSettings) -> list[CharacterProfile]:
        if not settings.character_names:
            return [CharacterProfile(
                name="Protagonist",
                role="protagonist",
                description="The main character of the story who drives the narrative forward",
                arc="Growth and development throughout the story",
            )]
        characters = []
        for index, name in enumerate(settings.character_names):
            characters.append(CharacterProfile(
                name=name.strip(),
                role="protagonist" if index == 0 else "supporting",
                description=f"A {'main' if index == 0 else 'important'} character in the {settings.genre} story",
                arc="Growth and development throughout the story" if index == 0
                else "Supports the main character and plays a key role in the story",
            ))
        return characters

    def validate_story_bible(self, bible: StoryBible) -> list[str]:
        """Return structural problems found in the bible (empty when valid)."""
        errors = []
        if not bible.premise:
            errors.append("Story bible missing premise")
        if not bible.theme:
            errors.append("Story bible missing theme")

        if not bible.characters:
            errors.append("Story bible missing characters")
        for index, character in enumerate(bible.characters):
            if not character.name:
                errors.append(f"Character {index} missing name")
            if not character.role:
                errors.append(f"Character {character.name or index} missing role")
            elif not any(p in character.role.lower() for p in _VALID_ROLE_PATTERNS):
                logger.warning("Character %s has unusual role: %s", character.name, character.role)
            if not character.description:
                errors.append(f"Character {character.name or index} missing description")

        if not bible.chapters:
            errors.append("Story bible missing chapter plans")
        numbers = [c.number for c in bible.chapters]
        duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
        if duplicates:
            errors.append(f"Duplicate chapter numbers: {', '.join(str(n) for n in duplicates)}")
        for index, chapter in enumerate(bible.chapters):
            label = chapter.number or index
            if not chapter.title:
                errors.append(f"Chapter {label} missing title")
            if not chapter.purpose:
                errors.append(f"Chapter {label} missing purpose")
            if not chapter.scenes:
                errors.append(f"Chapter {label} missing scenes")
        return errors
