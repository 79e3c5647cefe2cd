"""Chapter orchestrator: writes one chapter section by section.

Sections run strictly in order. Each one is written from a validated
SceneContext, passed through the quality gate, persisted, and folded into
the continuity tracker and the checkpoint before the next one starts.
"""

import logging
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from agents.continuity_agent import ContinuityStore
from agents.research_agent import ResearchAgent
from agents.section_generator import SectionGenerator, determine_scene_type, extract_narrative_voice
from config.exceptions import (
    BookNotFoundError, ChapterNotFoundError, ContextValidationError, LLMError,
)
from config.settings import Settings
from config.tiers import FEATURE_CONTINUITY, FEATURE_SECTION_TRANSITIONS, FeatureAccess, get_feature_access
from models.book import Book
from models.chapter import Chapter, Section
from models.checkpoint import GenerationCheckpoint
from models.context import ChapterContext, NarrativeVoice, SceneContext
from models.database import Database
from models.enums import ChapterStatus, SectionStatus
from models.story_bible import ChapterPlan, QualityPlan, StoryBible
from tools.text_utils import count_words, round_half_up
from workflow.checkpoint import CheckpointStore
from workflow.progress import ProgressReporter
from workflow.quality_gate import QualityGate, SectionUnderReview
from workflow.word_budget import SectionPlan, chapter_word_target, plan_sections

logger = logging.getLogger(__name__)

DEFAULT_CHARACTERS = ["Protagonist"]
DEFAULT_SETTING = "Story setting"
DEFAULT_CONFLICT = "Character faces challenges"
DEFAULT_OUTCOME = "Scene advances the story"


def build_scene_context(
    section: SectionPlan,
    total_sections: int,
    chapter_plan: Optional[ChapterPlan],
    quality_plan: Optional[QualityPlan] = None,
    chapter_number: int = 0,
) -> SceneContext:
    """Scene context for one planned section, from the chapter's scene plans.

    Section N takes the chapter's Nth scene; sections without a planned scene
    get the chapter purpose and generic scene fields.

    Raises:
        ContextValidationError: If the assembled payload does not validate.
    """
    chapter_plan = chapter_plan or ChapterPlan(number=chapter_number)
    index = section.number - 1
    scene = chapter_plan.scenes[index] if index < len(chapter_plan.scenes) else None
    quality_plan = quality_plan or QualityPlan()
    number = chapter_number or chapter_plan.number

    payload = {
        "section_number": section.number,
        "total_sections": total_sections,
        "section_type": section.section_type,
        "purpose": (scene.purpose if scene else "") or chapter_plan.purpose,
        "setting": (scene.setting if scene else "") or DEFAULT_SETTING,
        "characters": (scene.characters if scene else []) or list(DEFAULT_CHARACTERS),
        "conflict": (scene.conflict if scene else "") or DEFAULT_CONFLICT,
        "outcome": (scene.outcome if scene else "") or DEFAULT_OUTCOME,
        "mood": scene.mood if scene else "",
        "word_target": max(1, section.word_target),
        "transition_in": section.transition_in,
        "research_focus": list(chapter_plan.research_focus),
        "emotional_beat": quality_plan.beat_for(number, section.number),
        "themes": quality_plan.themes_for(number),
    }
    try:
        context = SceneContext.model_validate(payload)
    except PydanticValidationError as e:
        raise ContextValidationError("SceneContext", str(e)) from e
    context.scene_type = determine_scene_type(context)
    return context


def find_chapter_plan(bible: Optional[StoryBible], chapter_number: int) -> Optional[ChapterPlan]:
    if bible is None:
        return None
    for plan in bible.chapters:
        if plan.number == chapter_number:
            return plan
    return None


class ChapterOrchestrator:
    """Generates the sections of a chapter and assembles the chapter.

    One instance serves one book at a time; it holds the book's narrative
    voice once the first section exists so every later section matches it.
    """

    def __init__(
        self,
        db: Database,
        settings: Settings,
        checkpoints: CheckpointStore,
        progress: ProgressReporter,
        generator: SectionGenerator,
        gate: QualityGate,
        continuity: Optional[ContinuityStore] = None,
        tier_resolver: Callable[[str], FeatureAccess] = get_feature_access,
    ):
        self.db = db
        self.settings = settings
        self.checkpoints = checkpoints
        self.progress = progress
        self.generator = generator
        self.gate = gate
        self.continuity = continuity
        self.tier_resolver = tier_resolver
        self._voices: dict[int, NarrativeVoice] = {}

    # ---- Context loading ----

    def _load(self, book_id: int, chapter_id: int) -> tuple[Book, Chapter]:
        book = self.db.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        chapter = self.db.get_chapter(chapter_id)
        if chapter is None or chapter.book_id != book_id:
            raise ChapterNotFoundError(chapter_id)
        return book, chapter

    def _checkpoint_for(self, book: Book) -> GenerationCheckpoint:
        checkpoint = self.checkpoints.load(book.id)
        if checkpoint is None:
            bible = self.db.get_story_bible(book.id)
            quality_plan = self.db.get_quality_plan(book.id)
            checkpoint = self.checkpoints.create(
                book.id,
                bible.to_dict() if bible else None,
                quality_plan.to_dict() if quality_plan else None,
                self.continuity.snapshot() if self.continuity is not None else None,
            )
            self.checkpoints.save(book.id, checkpoint)
        return checkpoint

    def voice_for(self, book_id: int) -> Optional[NarrativeVoice]:
        """The book's narrative voice, extracted once from its first written section."""
        if book_id in self._voices:
            return self._voices[book_id]
        for chapter in self.db.get_chapters(book_id):
            for section in self.db.get_sections(chapter.id):
                if section.status == SectionStatus.COMPLETE and section.content:
                    book = self.db.get_book(book_id)
                    tone = book.settings.tone if book else "balanced"
                    self._voices[book_id] = extract_narrative_voice(section.content, tone)
                    logger.info(
                        "Narrative voice for book %d: %s, %s tense",
                        book_id, self._voices[book_id].perspective, self._voices[book_id].tense,
                    )
                    return self._voices[book_id]
        return None

    def _chapter_context(
        self, book: Book, chapter: Chapter, total_chapters: int, plan: Optional[ChapterPlan],
    ) -> ChapterContext:
        research_focus = list(plan.research_focus) if plan else []
        relevant = ResearchAgent.extract_relevant(research_focus, self.db.get_research(book.id))
        return ChapterContext.build(
            book_id=book.id,
            book_title=book.title,
            book_prompt=book.prompt,
            back_cover=book.back_cover or "",
            genre=book.settings.genre,
            tone=book.settings.tone,
            audience=book.settings.audience,
            point_of_view=book.settings.point_of_view,
            tense=book.settings.tense,
            character_names=list(book.settings.character_names),
            chapter_id=chapter.id,
            chapter_number=chapter.chapter_number,
            total_chapters=total_chapters,
            chapter_title=chapter.title,
            chapter_summary=chapter.summary or (plan.purpose if plan else ""),
            research_focus=list(dict.fromkeys(research_focus + relevant)),
        )

    # ---- Section rows ----

    def reconcile_sections(
        self,
        chapter: Chapter,
        section_plans: list[SectionPlan],
        chapter_plan: Optional[ChapterPlan],
        quality_plan: Optional[QualityPlan] = None,
    ) -> list[Section]:
        """Make the chapter's section rows match the plan.

        Missing rows are created, rows past the planned count are deleted and
        kept rows get the planned targets. Completed rows keep their content.
        """
        total = len(section_plans)
        existing = {s.section_number: s for s in self.db.get_sections(chapter.id)}

        for number, row in existing.items():
            if number > total:
                logger.info("Removing excess section %d from chapter %d", number, chapter.chapter_number)
                self.db.delete_section(row.id)

        rows = []
        for plan in section_plans:
            planned = build_scene_context(plan, total, chapter_plan, quality_plan, chapter.chapter_number)
            row = existing.get(plan.number)
            if row is None:
                row = Section(
                    chapter_id=chapter.id,
                    section_number=plan.number,
                    title=f"Section {plan.number}",
                    word_target=plan.word_target,
                    scene_context=planned.model_dump_json(),
                )
                row.id = self.db.create_section(row)
            else:
                stored = SceneContext.parse_stored(row.scene_context) if row.scene_context else planned
                scene = stored.model_copy(update={
                    "total_sections": total,
                    "section_type": plan.section_type,
                    "word_target": max(1, plan.word_target),
                    "transition_in": plan.transition_in,
                })
                row.word_target = plan.word_target
                row.scene_context = scene.model_dump_json()
                self.db.update_section(row)
            rows.append(row)
        return rows

    # ---- Generation ----

    async def generate_chapter(self, book_id: int, chapter_id: int) -> Chapter:
        """Write every section of a chapter and mark it COMPLETE.

        Raises:
            BookNotFoundError: If the book does not exist.
            ChapterNotFoundError: If the chapter does not exist or belongs to another book.

        Any failure after loading leaves the chapter NEEDS_REVISION and is re-raised.
        """
        book, chapter = self._load(book_id, chapter_id)
        access = self.tier_resolver(book.tier)
        try:
            return await self._generate(book, chapter, access)
        except Exception as e:
            logger.error("Chapter %d of book %d failed: %s", chapter.chapter_number, book_id, e)
            self.db.update_chapter_status(chapter.id, ChapterStatus.NEEDS_REVISION)
            raise

    async def _generate(self, book: Book, chapter: Chapter, access: FeatureAccess) -> Chapter:
        self.db.update_chapter_status(chapter.id, ChapterStatus.GENERATING)
        continuity_enabled = self.continuity is not None and access.has(FEATURE_CONTINUITY)

        bible = self.db.get_story_bible(book.id)
        quality_plan = self.db.get_quality_plan(book.id)
        chapter_plan = find_chapter_plan(bible, chapter.chapter_number)
        total_chapters = max(len(self.db.get_chapters(book.id)), chapter.chapter_number)

        word_target = chapter_word_target(
            book.settings.target_word_count, chapter.chapter_number, total_chapters,
        )
        section_plans = plan_sections(word_target, book.settings.genre)
        logger.info(
            "Generating chapter %d/%d of book %d: %d words in %d sections",
            chapter.chapter_number, total_chapters, book.id, word_target, len(section_plans),
        )

        rows = self.reconcile_sections(chapter, section_plans, chapter_plan, quality_plan)
        chapter_context = self._chapter_context(book, chapter, total_chapters, chapter_plan)
        checkpoint = self._checkpoint_for(book)

        previous: list[str] = []
        consistency_scores: list[float] = []
        quality_scores: list[float] = []

        for row in rows:
            self.progress.update_chapter_progress(
                book.id, chapter.chapter_number, total_chapters, row.section_number, len(rows),
            )
            if row.status == SectionStatus.COMPLETE and row.content:
                logger.info(
                    "Chapter %d section %d already complete, skipping",
                    chapter.chapter_number, row.section_number,
                )
                previous.append(row.content)
                if row.consistency_score is not None:
                    consistency_scores.append(row.consistency_score)
                if row.quality_score is not None:
                    quality_scores.append(row.quality_score)
                continue

            scene = SceneContext.parse_stored(row.scene_context)
            row.status = SectionStatus.GENERATING
            self.db.update_section(row)

            states = self.continuity.get_character_states(chapter.chapter_number) if continuity_enabled else {}
            transition = ""
            if row.section_number > 1 and previous and access.has(FEATURE_SECTION_TRANSITIONS):
                transition = await self.generator.generate_transition(previous[-1], scene, chapter_context)

            try:
                draft = await self.generator.generate(
                    scene, chapter_context, self.voice_for(book.id), states, previous, transition,
                )
            except LLMError as e:
                logger.warning(
                    "Section writer failed for chapter %d section %d (%s), using fallback writer",
                    chapter.chapter_number, row.section_number, e,
                )
                draft = await self.generator.generate_fallback(
                    chapter_context, row.section_number, len(rows), scene.word_target, previous,
                )

            verdict = await self.gate.evaluate(
                SectionUnderReview(
                    book_id=book.id,
                    chapter_id=chapter.id,
                    chapter_number=chapter.chapter_number,
                    section_number=row.section_number,
                    chapter_title=chapter.title,
                    purpose=scene.purpose,
                    research_focus=list(scene.research_focus),
                ),
                draft.text, access, book.settings, checkpoint,
            )

            row.content = verdict.content
            row.word_count = count_words(verdict.content)
            row.status = SectionStatus.COMPLETE
            row.model = draft.model
            row.tokens_used = draft.tokens_used
            row.consistency_score = verdict.consistency_score
            row.quality_score = verdict.overall_score
            self.db.update_section(row)

            if book.id not in self._voices:
                self.voice_for(book.id)

            if continuity_enabled:
                self.continuity.record_section_update(chapter.chapter_number, row.section_number, row.content)
            self.checkpoints.update_with_section(book.id, chapter.id, row.section_number, checkpoint)
            if continuity_enabled:
                self.checkpoints.update_continuity(book.id, self.continuity.snapshot(), checkpoint)

            previous.append(row.content)
            consistency_scores.append(verdict.consistency_score)
            quality_scores.append(verdict.overall_score)

        chapter.content = "\n\n".join(previous)
        chapter.word_count = count_words(chapter.content)
        chapter.word_target = word_target
        chapter.consistency_score = (
            round_half_up(sum(consistency_scores) / len(consistency_scores)) if consistency_scores else None
        )
        chapter.quality_score = (
            round_half_up(sum(quality_scores) / len(quality_scores)) if quality_scores else None
        )
        chapter.status = ChapterStatus.COMPLETE
        self.db.update_chapter(chapter)

        if continuity_enabled:
            updates = await self.continuity.extract_chapter_updates(chapter.chapter_number, chapter.content)
            if not updates.is_empty():
                self.continuity.record_chapter_update(chapter.chapter_number, updates)
                self.checkpoints.update_continuity(book.id, self.continuity.snapshot(), checkpoint)

        logger.info(
            "Chapter %d complete: %d words (target %d), quality %s",
            chapter.chapter_number, chapter.word_count, word_target, chapter.quality_score,
        )
        return chapter
