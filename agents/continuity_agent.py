"""Continuity tracking: cross-chapter story state and consistency scoring.

The tracker state (characters, locations, timeline, world facts, plot
threads) lives in a ContinuityState that is snapshotted into the generation
checkpoint, so a resumed book continues with the same state.
"""

import asyncio
import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError
from config.settings import Settings
from models.book import BookSettings
from models.continuity import (
    CharacterState, CharacterUpdate, ChapterUpdate, ConsistencyIssue, ConsistencyReport,
    ContinuityState, LocationState, PlotThreadState, TimelineEntry, WorldFact,
)
from models.enums import ConsistencyCategory, IssueSeverity
from models.story_bible import CharacterProfile, ResearchData, StoryBible
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter
from tools.text_utils import truncate

logger = logging.getLogger(__name__)

CATEGORY_WEIGHTS = {
    ConsistencyCategory.TIMELINE: 1.5,
    ConsistencyCategory.CHARACTER: 1.3,
    ConsistencyCategory.RESEARCH: 1.0,
    ConsistencyCategory.WORLDBUILDING: 0.8,
}

SEVERITY_POINTS = {
    IssueSeverity.CRITICAL: 25,
    IssueSeverity.MAJOR: 15,
    IssueSeverity.MINOR: 5,
}

_CATEGORY_FOCUS = {
    ConsistencyCategory.CHARACTER: "character names, behavior, knowledge, locations and relationships",
    ConsistencyCategory.TIMELINE: "order of events, elapsed time and where characters can be",
    ConsistencyCategory.WORLDBUILDING: "established world rules, places and objects",
    ConsistencyCategory.RESEARCH: "accuracy of technical, historical and cultural details",
}

# Checked in order; the first matching cue wins
_EMOTION_CUES = (
    (("angry", "furious"), "angry"),
    (("sad", "crying"), "sad"),
    (("happy", "smiling"), "happy"),
)

_CONTENT_CHAR_LIMIT = 6000


def _parse_severity(value) -> IssueSeverity:
    try:
        return IssueSeverity(str(value).lower())
    except ValueError:
        return IssueSeverity.MINOR


class ContinuityStore(BaseAgent):
    """Tracks story state across chapters and scores new prose against it."""

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
        state: Optional[ContinuityState] = None,
    ):
        super().__init__(llm_client, settings, rate_limiter)
        self._template = self._load_prompt("continuity")
        self.state = state or ContinuityState()

    # ---- Tracker state ----

    def initialize_tracking(
        self,
        characters: list[CharacterProfile],
        bible: StoryBible,
        research: Optional[ResearchData],
        settings: BookSettings,
    ):
        """Seed the tracker from the story bible and research."""
        research = research or ResearchData()
        state = ContinuityState()

        for profile in characters:
            state.characters.append(CharacterState(
                name=profile.name,
                relationships=dict(profile.relationships),
            ))

        setting_chapters: dict[str, set[int]] = {}
        for plan in bible.chapters:
            for scene in plan.scenes:
                if scene.setting:
                    setting_chapters.setdefault(scene.setting, set()).add(plan.number)
        for name, chapters in setting_chapters.items():
            state.locations.append(LocationState(
                name=name, importance="major" if len(chapters) > 1 else "minor",
            ))

        for rule in bible.world_rules:
            state.world_facts.append(WorldFact(element=truncate(rule, 40), description=rule, chapters=[0]))
        for fact in (research.domain_knowledge[:3] + research.setting_details[:2]
                     + research.technical_aspects[:2]):
            state.world_facts.append(WorldFact(element=truncate(fact, 40), description=fact, chapters=[0]))
        state.research_references = research.domain_knowledge[:2] + research.technical_aspects[:2]

        state.plot_threads = [PlotThreadState(name=t) for t in bible.plot_threads]
        state.timeline = [TimelineEntry(chapter=1, description="Story begins", duration="Initial")]

        self.state = state
        logger.info(
            "Continuity tracking initialized: %d characters, %d locations, %d world facts (%s)",
            len(state.characters), len(state.locations), len(state.world_facts), settings.genre,
        )

    def _find_character(self, name: str) -> Optional[CharacterState]:
        lowered = name.strip().lower()
        for character in self.state.characters:
            if character.name.lower() == lowered:
                return character
        return None

    def _apply_character_update(self, update: CharacterUpdate, chapter_number: int):
        character = self._find_character(update.name)
        if character is None:
            character = CharacterState(name=update.name.strip())
            self.state.characters.append(character)
            logger.debug("New character tracked: %s", character.name)

        for field_name in ("current_location", "physical_state", "emotional_state", "knowledge_state"):
            value = getattr(update, field_name)
            if value is not None:
                setattr(character, field_name, value)
        # Relationships are only ever added or overwritten, never removed
        character.relationships = {**character.relationships, **update.relationships}
        character.last_seen_chapter = max(character.last_seen_chapter, chapter_number)

    def record_chapter_update(self, chapter_number: int, updates: ChapterUpdate):
        """Merge a chapter's extracted changes into the tracker."""
        for update in updates.characters:
            if update.name and update.name.strip():
                self._apply_character_update(update, chapter_number)

        for entry in updates.timeline:
            self.state.timeline.append(TimelineEntry(
                chapter=chapter_number,
                description=entry.description,
                duration=entry.duration,
                absolute_time=entry.absolute_time,
            ))

        for fact in updates.world_facts:
            existing = next((w for w in self.state.world_facts if w.element == fact.element), None)
            if existing:
                existing.chapters = sorted(set(existing.chapters) | {chapter_number})
            else:
                self.state.world_facts.append(WorldFact(
                    element=fact.element, description=fact.description, chapters=[chapter_number],
                ))

        for thread_name in updates.plot_threads:
            thread = next((t for t in self.state.plot_threads if t.name == thread_name), None)
            if thread is None:
                self.state.plot_threads.append(PlotThreadState(name=thread_name, chapters=[chapter_number]))
            elif chapter_number not in thread.chapters:
                thread.chapters.append(chapter_number)

    def record_section_update(self, chapter_number: int, section_number: int, content: str):
        """Lightweight update from one section: sightings, mood cues, timeline."""
        lowered = content.lower()
        for character in self.state.characters:
            if character.name and character.name.lower() in lowered:
                character.last_seen_chapter = chapter_number
                for cues, emotion in _EMOTION_CUES:
                    if any(cue in content for cue in cues):
                        character.emotional_state = emotion
                        break
        self.state.timeline.append(TimelineEntry(
            chapter=chapter_number,
            description=f"Section {section_number}",
            duration="Section duration",
        ))

    def get_character_states(self, chapter_number: int) -> dict[str, str]:
        """'emotional - location' for every character seen up to this chapter."""
        return {
            c.name: f"{c.emotional_state} - {c.current_location}"
            for c in self.state.characters
            if c.last_seen_chapter <= chapter_number
        }

    def snapshot(self) -> dict:
        return self.state.to_dict()

    def restore(self, data: Optional[dict]):
        self.state = ContinuityState.from_dict(data)
        logger.info("Continuity state restored (%d characters)", len(self.state.characters))

    # ---- Completion-backed operations ----

    async def extract_chapter_updates(self, chapter_number: int, content: str) -> ChapterUpdate:
        """Ask the model what changed in a chapter; an empty update on failure."""
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Chapter Update Instructions").format(
            chapter_number=chapter_number,
            characters=", ".join(c.name for c in self.state.characters) or "(none yet)",
            content=truncate(content, _CONTENT_CHAR_LIMIT),
        )
        try:
            data = await self._complete_json(
                user_prompt, self.settings.llm_model_continuity, system_prompt, max_tokens=2000,
            )
        except LLMError as e:
            logger.warning("Chapter %d update extraction failed: %s", chapter_number, e)
            return ChapterUpdate()

        characters = []
        for item in data.get("characters", []) or []:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            relationships = item.get("relationships") or {}
            characters.append(CharacterUpdate(
                name=str(item["name"]),
                current_location=item.get("current_location"),
                physical_state=item.get("physical_state"),
                emotional_state=item.get("emotional_state"),
                knowledge_state=item.get("knowledge_state"),
                relationships={str(k): str(v) for k, v in relationships.items()}
                if isinstance(relationships, dict) else {},
            ))
        timeline = [
            TimelineEntry(
                chapter=chapter_number,
                description=str(t.get("description", "")),
                duration=t.get("duration"),
                absolute_time=t.get("absolute_time"),
            )
            for t in data.get("timeline", []) or [] if isinstance(t, dict)
        ]
        world_facts = [
            WorldFact(element=str(w.get("element", "")), description=str(w.get("description", "")))
            for w in data.get("world_facts", []) or [] if isinstance(w, dict) and w.get("element")
        ]
        plot_threads = [str(p) for p in data.get("plot_threads", []) or [] if p]
        return ChapterUpdate(characters, timeline, world_facts, plot_threads)

    def _state_for(self, category: ConsistencyCategory, research_focus: list[str]) -> str:
        if category == ConsistencyCategory.CHARACTER:
            lines = [
                f"{c.name}: {c.emotional_state}, at {c.current_location}, {c.physical_state}; "
                f"relationships {c.relationships or '{}'}"
                for c in self.state.characters
            ]
        elif category == ConsistencyCategory.TIMELINE:
            lines = [
                f"Ch {t.chapter}: {t.description}" + (f" ({t.duration})" if t.duration else "")
                for t in self.state.timeline[-5:]
            ]
        elif category == ConsistencyCategory.WORLDBUILDING:
            lines = [f"{w.element}: {w.description}" for w in self.state.world_facts]
        else:
            lines = list(self.state.research_references) + [f"Focus: {f}" for f in research_focus]
        return "\n".join(lines) or "(nothing tracked yet)"

    async def _check_category(
        self,
        category: ConsistencyCategory,
        chapter_number: int,
        content: str,
        purpose: str,
        research_focus: list[str],
    ) -> list[ConsistencyIssue]:
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Category Check Instructions").format(
            chapter_number=chapter_number,
            category=category.value,
            focus=_CATEGORY_FOCUS[category],
            purpose=purpose or "(not specified)",
            state=self._state_for(category, research_focus),
            content=truncate(content, _CONTENT_CHAR_LIMIT),
        )
        try:
            data = await self._complete_json(
                user_prompt, self.settings.llm_model_continuity, system_prompt, max_tokens=1500,
            )
        except LLMError as e:
            logger.warning("%s consistency check failed for chapter %d: %s",
                           category.value, chapter_number, e)
            return []

        return [
            ConsistencyIssue(
                category=category,
                severity=_parse_severity(item.get("severity")),
                description=str(item.get("description", "")),
                suggestion=str(item.get("suggestion", "")),
            )
            for item in data.get("issues", []) or [] if isinstance(item, dict)
        ]

    async def check_chapter_consistency(
        self,
        chapter_number: int,
        content: str,
        purpose: str = "",
        research_focus: Optional[list[str]] = None,
        settings: Optional[BookSettings] = None,
    ) -> ConsistencyReport:
        """Score content against the tracker. Does not modify the tracker."""
        research_focus = research_focus or []
        results = await asyncio.gather(*[
            self._check_category(category, chapter_number, content, purpose, research_focus)
            for category in CATEGORY_WEIGHTS
        ])
        issues = [issue for category_issues in results for issue in category_issues]
        overall, category_scores = self.calculate_scores(issues, len(content))
        logger.info(
            "Chapter %d consistency: %.1f/100 (%d issues)", chapter_number, overall, len(issues),
        )
        return ConsistencyReport(
            overall_score=overall,
            category_scores=category_scores,
            issues=issues,
            recommendations=self.generate_recommendations(issues),
        )

    # ---- Scoring ----

    @staticmethod
    def calculate_scores(
        issues: list[ConsistencyIssue], content_length: int,
    ) -> tuple[float, dict[str, float]]:
        """Weighted deductions; the overall score is normalized per 5000 characters."""
        category_scores = {}
        for category, weight in CATEGORY_WEIGHTS.items():
            deduction = sum(
                weight * SEVERITY_POINTS[i.severity] for i in issues if i.category == category
            )
            category_scores[category.value] = max(0.0, 100.0 - deduction)

        total = sum(CATEGORY_WEIGHTS[i.category] * SEVERITY_POINTS[i.severity] for i in issues)
        normalization = max(1.0, content_length / 5000)
        overall = max(0.0, min(100.0, 100.0 - total / normalization))
        return overall, category_scores

    @staticmethod
    def generate_recommendations(issues: list[ConsistencyIssue]) -> list[str]:
        if not issues:
            return ["Chapter maintains excellent consistency with previous story elements"]

        recommendations = []
        counts = {s: sum(1 for i in issues if i.severity == s) for s in IssueSeverity}
        if counts[IssueSeverity.CRITICAL]:
            n = counts[IssueSeverity.CRITICAL]
            recommendations.append(f"Address {n} critical consistency issue{'s' if n != 1 else ''} before proceeding")
        if counts[IssueSeverity.MAJOR]:
            n = counts[IssueSeverity.MAJOR]
            recommendations.append(f"Review and fix {n} major consistency issue{'s' if n != 1 else ''}")
        if counts[IssueSeverity.MINOR]:
            n = counts[IssueSeverity.MINOR]
            recommendations.append(f"Consider addressing {n} minor consistency issue{'s' if n != 1 else ''} for polish")

        categories = {i.category for i in issues}
        if ConsistencyCategory.TIMELINE in categories:
            recommendations.append("Pay special attention to time progression and character locations")
        if ConsistencyCategory.CHARACTER in categories:
            recommendations.append("Ensure character behavior and knowledge remain consistent")
        if ConsistencyCategory.WORLDBUILDING in categories:
            recommendations.append("Verify world rules and established elements are maintained")
        if ConsistencyCategory.RESEARCH in categories:
            recommendations.append("Double-check research facts and technical details")
        return recommendations
