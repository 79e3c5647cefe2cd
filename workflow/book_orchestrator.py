"""Book orchestrator: back cover, outline, chapters, final supervision.

All collaborators arrive in an OrchestratorServices bundle so that tests
and embedders can swap any of them. Agents are built lazily from that
bundle the first time a stage needs them.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Optional

from agents.chief_editor_agent import ChiefEditorAgent
from agents.continuity_agent import ContinuityStore
from agents.planner_agent import PlannerAgent, basic_structure
from agents.proofreader_agent import ProofreaderAgent
from agents.quality_enhancer_agent import QualityEnhancerAgent
from agents.research_agent import ResearchAgent
from agents.section_generator import SectionGenerator
from agents.supervision_agent import SupervisionAgent
from config.exceptions import BookNotFoundError, DatabaseError, NovelEngineError, WorkflowStateError
from config.settings import Settings, get_settings
from config.tiers import (
    FEATURE_CHIEF_EDITOR, FEATURE_CONTINUITY, FEATURE_QUALITY_ENHANCEMENT,
    FEATURE_RESEARCH, FEATURE_SUPERVISION, FeatureAccess, get_feature_access,
)
from models.book import Book, BookSettings
from models.chapter import Chapter, Section
from models.checkpoint import GenerationCheckpoint
from models.database import Database
from models.enums import BookStatus, ChapterStatus, GenerationStep
from models.quality import RevisionTask, SupervisionReview
from models.story_bible import QualityPlan, ResearchData, StoryBible
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter
from tools.text_utils import round_half_up
from workflow.callbacks import LoggingProgressChannel, ProgressChannel
from workflow.chapter_orchestrator import ChapterOrchestrator, build_scene_context, find_chapter_plan
from workflow.checkpoint import CheckpointStore
from workflow.lease import BookLeaseManager
from workflow.progress import ProgressReporter
from workflow.quality_gate import QualityGate
from workflow.word_budget import (
    chapter_word_target, consolidate_chapter_plans, initial_section_count, split_sections,
)

logger = logging.getLogger(__name__)

# Errors that point at the infrastructure rather than the book; the book's
# status is left alone so a retry starts from where it was.
_CONNECTIVITY_ERROR_RE = re.compile(r"database|connection|timed out|ETIMEDOUT", re.IGNORECASE)

_STEP_PROGRESS = {
    GenerationStep.PROMPT: 0,
    GenerationStep.BACK_COVER: 25,
    GenerationStep.OUTLINE: 40,
    GenerationStep.SUPERVISION: 95,
    GenerationStep.COMPLETE: 100,
}
_CHAPTERS_PROGRESS_BASE = 45
_CHAPTERS_PROGRESS_RANGE = 45


@dataclass
class OrchestratorServices:
    """Everything the orchestrators talk to."""
    db: Database
    settings: Settings
    llm: CompletionClient
    rate_limiter: RateLimiter
    checkpoints: CheckpointStore
    progress: ProgressReporter
    leases: BookLeaseManager
    tier_resolver: Callable[[str], FeatureAccess] = get_feature_access

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, channel: Optional[ProgressChannel] = None,
    ) -> "OrchestratorServices":
        settings = settings or get_settings()
        return cls(
            db=Database(settings.sqlite_db_path),
            settings=settings,
            llm=CompletionClient(settings),
            rate_limiter=RateLimiter.from_settings(settings),
            checkpoints=CheckpointStore(settings.checkpoint_dir),
            progress=ProgressReporter(channel or LoggingProgressChannel(), settings.progress_throttle_ms),
            leases=BookLeaseManager(Path(settings.checkpoint_dir) / "leases", settings.lease_ttl_seconds),
        )


@dataclass
class GenerationOptions:
    """Per-run knobs for start/resume.

    Attributes:
        max_chapters: Write at most this many chapters in this run (None = all).
        complete_book: Run the completion pass when every chapter is COMPLETE.
    """
    max_chapters: Optional[int] = None
    complete_book: bool = True


@dataclass
class GenerationReport:
    book_id: int
    chapters_written: list[int] = field(default_factory=list)
    chapters_failed: list[int] = field(default_factory=list)
    completed: bool = False


class BookOrchestrator:
    """Drives a book through every generation stage."""

    def __init__(self, services: OrchestratorServices):
        self.services = services
        self.db = services.db
        self.settings = services.settings
        self.checkpoints = services.checkpoints
        self.progress = services.progress
        self.leases = services.leases

        self._planner: Optional[PlannerAgent] = None
        self._research: Optional[ResearchAgent] = None
        self._chief_editor: Optional[ChiefEditorAgent] = None
        self._quality_enhancer: Optional[QualityEnhancerAgent] = None
        self._proofreader: Optional[ProofreaderAgent] = None
        self._supervision: Optional[SupervisionAgent] = None
        self._generator: Optional[SectionGenerator] = None
        self._continuity: dict[int, ContinuityStore] = {}
        self._chapter_orchestrators: dict[int, ChapterOrchestrator] = {}

    # ---- Lazily built agents ----

    def _agent_args(self) -> tuple:
        return self.services.llm, self.settings, self.services.rate_limiter

    @property
    def planner(self) -> PlannerAgent:
        if self._planner is None:
            self._planner = PlannerAgent(*self._agent_args())
        return self._planner

    @property
    def research(self) -> ResearchAgent:
        if self._research is None:
            self._research = ResearchAgent(*self._agent_args())
        return self._research

    @property
    def chief_editor(self) -> ChiefEditorAgent:
        if self._chief_editor is None:
            self._chief_editor = ChiefEditorAgent(*self._agent_args())
        return self._chief_editor

    @property
    def quality_enhancer(self) -> QualityEnhancerAgent:
        if self._quality_enhancer is None:
            self._quality_enhancer = QualityEnhancerAgent(*self._agent_args())
        return self._quality_enhancer

    @property
    def proofreader(self) -> ProofreaderAgent:
        if self._proofreader is None:
            self._proofreader = ProofreaderAgent(*self._agent_args())
        return self._proofreader

    @property
    def supervision(self) -> SupervisionAgent:
        if self._supervision is None:
            self._supervision = SupervisionAgent(*self._agent_args(), db=self.db)
        return self._supervision

    @property
    def generator(self) -> SectionGenerator:
        if self._generator is None:
            self._generator = SectionGenerator(*self._agent_args())
        return self._generator

    def continuity_for(self, book_id: int) -> ContinuityStore:
        if book_id not in self._continuity:
            self._continuity[book_id] = ContinuityStore(*self._agent_args())
        return self._continuity[book_id]

    def chapter_orchestrator(self, book_id: int) -> ChapterOrchestrator:
        if book_id not in self._chapter_orchestrators:
            continuity = self.continuity_for(book_id)
            gate = QualityGate(
                self.settings, self.checkpoints, self.supervision,
                continuity=continuity, proofreader=self.proofreader,
            )
            self._chapter_orchestrators[book_id] = ChapterOrchestrator(
                self.db, self.settings, self.checkpoints, self.progress,
                self.generator, gate, continuity=continuity,
                tier_resolver=self.services.tier_resolver,
            )
        return self._chapter_orchestrators[book_id]

    # ---- Helpers ----

    def _get_book(self, book_id: int) -> Book:
        book = self.db.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    def _access(self, book: Book) -> FeatureAccess:
        return self.services.tier_resolver(book.tier or self.settings.default_tier)

    def handle_generation_error(self, book_id: int, error: Exception):
        """Report a failed stage, reset the book for retry, then re-raise.

        Database and connectivity failures leave the book's status untouched.
        """
        message = str(error)
        self.progress.mark_error(book_id, message)
        if _CONNECTIVITY_ERROR_RE.search(message):
            logger.warning("Book %d: infrastructure error, status left unchanged: %s", book_id, message)
        else:
            try:
                self.db.update_book_status(
                    book_id, status=BookStatus.PLANNING, step=GenerationStep.ERROR, error_message=message,
                )
            except (DatabaseError, sqlite3.Error) as e:
                logger.warning("Could not reset status of book %d after error: %s", book_id, e)
        raise error

    # ---- Planning stages ----

    async def generate_back_cover(
        self, book_id: int, prompt: str, settings: Optional[BookSettings] = None,
    ) -> str:
        book = self._get_book(book_id)
        settings = settings or book.settings
        self.progress.set_step(book_id, GenerationStep.BACK_COVER, 10, "Generating back cover...")
        try:
            back_cover = await self.planner.generate_back_cover(prompt, settings)
            book.prompt = prompt
            book.settings = settings
            book.back_cover = back_cover
            book.generation_step = GenerationStep.BACK_COVER
            book.error_message = None
            self.db.update_book(book)
            self.progress.set_step(book_id, GenerationStep.BACK_COVER, 25, "Back cover ready")
            logger.info("Back cover generated for book %d (%d chars)", book_id, len(back_cover))
            return back_cover
        except Exception as e:
            self.handle_generation_error(book_id, e)

    async def refine_back_cover(self, book_id: int, feedback: str) -> str:
        book = self._get_book(book_id)
        if not book.back_cover:
            raise WorkflowStateError(f"Book {book_id} has no back cover to refine", {"book_id": book_id})
        try:
            refined = await self.planner.refine_back_cover(book.back_cover, feedback, book.settings)
            book.back_cover = refined
            self.db.update_book(book)
            logger.info("Back cover refined for book %d", book_id)
            return refined
        except Exception as e:
            self.handle_generation_error(book_id, e)

    async def generate_outline(
        self, book_id: int, existing_research: Optional[ResearchData] = None,
    ) -> StoryBible:
        """Research, story bible, structure, continuity seed, quality plan, chapters."""
        book = self._get_book(book_id)
        access = self._access(book)
        settings = book.settings
        back_cover = book.back_cover or ""
        self.progress.set_step(book_id, GenerationStep.OUTLINE, 30, "Researching and building the story outline...")

        try:
            if existing_research is not None:
                research = existing_research
            elif access.has(FEATURE_RESEARCH):
                research = await self.research.conduct_research(book.prompt, back_cover, settings)
            else:
                research = ResearchAgent.empty_research()

            bible = await self.planner.generate_story_bible(book.prompt, back_cover, settings, research)
            if access.has(FEATURE_CHIEF_EDITOR):
                bible = await self.chief_editor.create_structure_plan(bible, research, settings)
            else:
                bible = basic_structure(bible, settings)
            bible = replace(
                bible, chapters=consolidate_chapter_plans(bible.chapters, settings.target_word_count),
            )

            for warning in self.planner.validate_story_bible(bible):
                logger.warning("Story bible for book %d: %s", book_id, warning)

            continuity_snapshot = None
            if access.has(FEATURE_CONTINUITY):
                continuity = self.continuity_for(book_id)
                continuity.initialize_tracking(bible.characters, bible, research, settings)
                continuity_snapshot = continuity.snapshot()

            quality_plan = None
            if access.has(FEATURE_QUALITY_ENHANCEMENT):
                quality_plan = await self.quality_enhancer.create_quality_plan(bible, settings)

            self.db.save_story_bible(book_id, bible, quality_plan, research)
            self.create_chapters_from_story_bible(book_id, bible)

            checkpoint = self.checkpoints.create(
                book_id,
                bible.to_dict(),
                quality_plan.to_dict() if quality_plan else None,
                continuity_snapshot,
            )
            self.checkpoints.save(book_id, checkpoint)
            self.db.update_book_status(book_id, step=GenerationStep.OUTLINE)
            self.progress.set_step(book_id, GenerationStep.OUTLINE, 40, "Story outline ready")
            logger.info("Outline ready for book %d: %d chapters", book_id, len(bible.chapters))
            return bible
        except Exception as e:
            self.handle_generation_error(book_id, e)

    def create_chapters_from_story_bible(self, book_id: int, bible: StoryBible) -> list[Chapter]:
        """Replace the book's chapters with rows planned from the bible."""
        book = self._get_book(book_id)
        total_words = book.settings.target_word_count
        removed = self.db.delete_chapters(book_id)
        if removed:
            logger.info("Removed %d existing chapters of book %d", removed, book_id)

        plans = consolidate_chapter_plans(bible.chapters, total_words)
        chapters = []
        for plan in plans:
            word_target = chapter_word_target(total_words, plan.number, len(plans))
            chapter = Chapter(
                book_id=book_id,
                chapter_number=plan.number,
                title=plan.title or f"Chapter {plan.number}",
                summary=plan.purpose,
                word_target=word_target,
            )
            chapter.id = self.db.create_chapter(chapter)

            count = initial_section_count(word_target, len(plan.scenes))
            for section_plan in split_sections(word_target, count, book.settings.genre):
                scene = build_scene_context(section_plan, count, plan, chapter_number=plan.number)
                self.db.create_section(Section(
                    chapter_id=chapter.id,
                    section_number=section_plan.number,
                    title=f"Section {section_plan.number}",
                    word_target=section_plan.word_target,
                    scene_context=scene.model_dump_json(),
                ))
            chapters.append(chapter)

        logger.info("Created %d chapters for book %d", len(chapters), book_id)
        return chapters

    # ---- Chapter generation ----

    async def start_book_generation(
        self, book_id: int, options: Optional[GenerationOptions] = None,
    ) -> GenerationReport:
        """Write the book's chapters, resuming from a checkpoint when one exists.

        Raises:
            BookLockedError: If another job is already generating this book.
        """
        options = options or GenerationOptions()
        book = self._get_book(book_id)
        async with self.leases.acquire(book_id):
            try:
                checkpoint = self.checkpoints.load(book_id)
                if checkpoint is not None:
                    logger.info("Found checkpoint for book %d, resuming", book_id)
                    return await self._resume(book, checkpoint, options)

                chapters = self.db.get_chapters(book_id)
                if not chapters:
                    raise WorkflowStateError(
                        f"Book {book_id} has no chapters; generate the outline first", {"book_id": book_id},
                    )
                pending = [c for c in chapters if c.status != ChapterStatus.COMPLETE]
                if pending:
                    self.db.update_book_status(book_id, status=BookStatus.GENERATING, step=GenerationStep.CHAPTERS)
                    self.progress.set_step(book_id, GenerationStep.CHAPTERS, 50, "Planning the book structure and chapters...")
                return await self._generate_chapters(book, pending, len(chapters), options)
            except Exception as e:
                self.handle_generation_error(book_id, e)

    async def resume_book_generation(
        self,
        book_id: int,
        checkpoint: GenerationCheckpoint,
        options: Optional[GenerationOptions] = None,
    ) -> GenerationReport:
        """Regenerate only the chapters the checkpoint does not cover."""
        book = self._get_book(book_id)
        async with self.leases.acquire(book_id):
            try:
                return await self._resume(book, checkpoint, options or GenerationOptions())
            except Exception as e:
                self.handle_generation_error(book_id, e)

    def _restore(self, book: Book, checkpoint: GenerationCheckpoint):
        if checkpoint.story_bible and self.db.get_story_bible(book.id) is None:
            logger.info("Restoring story bible of book %d from checkpoint", book.id)
            self.db.save_story_bible(
                book.id,
                StoryBible.from_dict(checkpoint.story_bible),
                QualityPlan.from_dict(checkpoint.quality_plan) if checkpoint.quality_plan else None,
            )
        if checkpoint.continuity:
            self.continuity_for(book.id).restore(checkpoint.continuity)

    async def _resume(
        self, book: Book, checkpoint: GenerationCheckpoint, options: GenerationOptions,
    ) -> GenerationReport:
        self._restore(book, checkpoint)
        chapters = self.db.get_chapters(book.id)
        if not chapters and checkpoint.story_bible:
            self.create_chapters_from_story_bible(book.id, StoryBible.from_dict(checkpoint.story_bible))
            chapters = self.db.get_chapters(book.id)
            # Section progress was keyed by the ids of the deleted chapter rows
            checkpoint.completed_sections = {}
            checkpoint.failed_sections = []
            self.checkpoints.save(book.id, checkpoint)

        completed = set(checkpoint.completed_chapters)
        pending = [
            c for c in chapters
            if c.status != ChapterStatus.COMPLETE or c.chapter_number not in completed
        ]
        logger.info(
            "Resuming book %d: %d of %d chapters left", book.id, len(pending), len(chapters),
        )
        if pending:
            self.db.update_book_status(book.id, status=BookStatus.GENERATING, step=GenerationStep.CHAPTERS)
        return await self._generate_chapters(book, pending, len(chapters), options)

    async def _generate_chapters(
        self,
        book: Book,
        chapters: list[Chapter],
        total_chapters: int,
        options: GenerationOptions,
    ) -> GenerationReport:
        report = GenerationReport(book_id=book.id)
        orchestrator = self.chapter_orchestrator(book.id)
        if options.max_chapters is not None:
            chapters = chapters[:options.max_chapters]

        for chapter in chapters:
            try:
                await orchestrator.generate_chapter(book.id, chapter.id)
            except NovelEngineError as e:
                logger.error(
                    "Chapter %d of book %d left for revision: %s", chapter.chapter_number, book.id, e,
                )
                report.chapters_failed.append(chapter.chapter_number)
                continue
            self.checkpoints.update_with_chapter(book.id, chapter.chapter_number)
            self.progress.complete_chapter(book.id, chapter.chapter_number, total_chapters)
            report.chapters_written.append(chapter.chapter_number)

        remaining = [c for c in self.db.get_chapters(book.id) if c.status != ChapterStatus.COMPLETE]
        if remaining:
            logger.warning(
                "Book %d has %d chapters not complete: %s", book.id, len(remaining),
                ", ".join(str(c.chapter_number) for c in remaining),
            )
        elif not report.chapters_written and self._get_book(book.id).status == BookStatus.COMPLETE:
            logger.info("Book %d is already complete, skipping the completion pass", book.id)
            report.completed = True
        elif options.complete_book:
            await self.complete_book_generation(book.id)
            report.completed = True
        return report

    # ---- Completion ----

    async def run_supervision_pass(self, book_id: int) -> list[SupervisionReview]:
        """Review every complete chapter and queue advisory revision tasks."""
        bible = self.db.get_story_bible(book_id)
        reviews = []
        for chapter in self.db.get_chapters(book_id, ChapterStatus.COMPLETE):
            plan = find_chapter_plan(bible, chapter.chapter_number)
            review = await self.supervision.review_chapter(
                chapter.chapter_number, chapter.content or "", chapter.title,
                expected_outcome=plan.purpose if plan else "",
            )
            self.supervision.evaluate_revision_triggers(book_id, chapter.chapter_number, review)
            reviews.append(review)
        for recommendation in self.supervision.get_book_recommendations(reviews):
            logger.info("Book %d: %s", book_id, recommendation)
        return reviews

    async def complete_book_generation(self, book_id: int):
        book = self._get_book(book_id)
        if self._access(book).has(FEATURE_SUPERVISION):
            self.db.update_book_status(book_id, step=GenerationStep.SUPERVISION)
            self.progress.set_step(book_id, GenerationStep.SUPERVISION, 95)
            try:
                await self.run_supervision_pass(book_id)
            except Exception as e:
                logger.warning("Final supervision pass failed for book %d: %s", book_id, e)

        self.db.update_book_status(book_id, status=BookStatus.COMPLETE, step=GenerationStep.COMPLETE)
        self.progress.mark_complete(book_id, len(self.db.get_chapters(book_id)))
        self.checkpoints.clear(book_id)
        logger.info("Book %d generation complete", book_id)

    # ---- Queries ----

    def get_generation_progress(self, book_id: int) -> dict:
        book = self._get_book(book_id)
        chapters = self.db.get_chapters(book_id)
        total = len(chapters)
        completed = sum(1 for c in chapters if c.status == ChapterStatus.COMPLETE)
        step = book.generation_step

        if step == GenerationStep.CHAPTERS:
            progress = _CHAPTERS_PROGRESS_BASE + (
                round_half_up(completed / total * _CHAPTERS_PROGRESS_RANGE) if total else 0
            )
        elif step == GenerationStep.ERROR:
            progress = self.progress.last_reported(book_id) or 0
        else:
            progress = _STEP_PROGRESS.get(step, 0)

        return {
            "book_id": book_id,
            "status": book.status.value,
            "step": step.value,
            "progress": progress,
            "completed_chapters": completed,
            "total_chapters": total,
            "error": book.error_message,
        }

    def get_pending_revisions(self, book_id: int) -> list[RevisionTask]:
        return self.supervision.get_pending_revisions(book_id)
