"""Tests for ChapterOrchestrator section-by-section generation."""

import pytest
from unittest.mock import AsyncMock, MagicMock


def _small_book(services, words=400, genre="fantasy", tier="free"):
    """A book whose single chapter is written in one section."""
    from models.book import Book, BookSettings
    from models.chapter import Chapter
    book = Book(
        title="Small", prompt="p", tier=tier,
        settings=BookSettings(genre=genre, tone="wistful", target_word_count=words),
    )
    book.id = services.db.create_book(book)
    chapter = Chapter(book_id=book.id, chapter_number=1, title="Only")
    chapter.id = services.db.create_chapter(chapter)
    return book, chapter


def _orchestrator(services, gate=None, continuity=None, tier_resolver=None):
    from agents.section_generator import SectionGenerator
    from agents.supervision_agent import SupervisionAgent
    from config.tiers import get_feature_access
    from workflow.chapter_orchestrator import ChapterOrchestrator
    from workflow.quality_gate import QualityGate
    settings = services.settings
    gate = gate or QualityGate(
        settings, services.checkpoints, SupervisionAgent(services.llm, settings),
    )
    return ChapterOrchestrator(
        services.db, settings, services.checkpoints, services.progress,
        SectionGenerator(services.llm, settings), gate,
        continuity=continuity, tier_resolver=tier_resolver or get_feature_access,
    )


class TestGenerateChapter:
    @pytest.mark.asyncio
    async def test_free_chapter_writes_every_section(self, services, orchestrator, free_book, sample_bible):
        from models.enums import ChapterStatus, SectionStatus
        services.db.save_story_bible(free_book.id, sample_bible)
        chapters = orchestrator.create_chapters_from_story_bible(free_book.id, sample_bible)

        chapter = await orchestrator.chapter_orchestrator(free_book.id).generate_chapter(
            free_book.id, chapters[0].id,
        )

        assert chapter.status == ChapterStatus.COMPLETE
        sections = services.db.get_sections(chapter.id)
        assert [s.section_number for s in sections] == [1, 2]
        assert all(s.status == SectionStatus.COMPLETE for s in sections)
        assert [s.word_target for s in sections] == [833, 833]
        assert services.llm.complete.await_count == 2
        assert chapter.content == "\n\n".join(s.content for s in sections)
        assert chapter.consistency_score == 100
        assert chapter.quality_score == 90
        stored = services.db.get_chapter(chapter.id)
        assert stored.status == ChapterStatus.COMPLETE
        assert stored.word_target == 1666

    @pytest.mark.asyncio
    async def test_sections_follow_scene_plans(self, services, orchestrator, free_book, sample_bible):
        from models.context import SceneContext
        from models.enums import SceneType
        services.db.save_story_bible(free_book.id, sample_bible)
        chapters = orchestrator.create_chapters_from_story_bible(free_book.id, sample_bible)

        await orchestrator.chapter_orchestrator(free_book.id).generate_chapter(free_book.id, chapters[1].id)

        scenes = [SceneContext.parse_stored(s.scene_context) for s in services.db.get_sections(chapters[1].id)]
        assert [s.setting for s in scenes] == ["Lighthouse", "The Sea Door"]
        assert [s.scene_type for s in scenes] == [SceneType.DIALOGUE, SceneType.ACTION]
        assert scenes[0].research_focus == ["lighthouses"]

    @pytest.mark.asyncio
    async def test_low_quality_section_is_flagged_not_retried(self, services):
        from config.tiers import FeatureAccess
        from models.continuity import ConsistencyReport
        from models.enums import ChapterStatus
        from models.quality import Result, SupervisionReview
        from workflow.quality_gate import QualityGate
        book, chapter = _small_book(services)
        continuity = MagicMock()
        continuity.check_chapter_consistency = AsyncMock(return_value=ConsistencyReport(overall_score=20))
        supervision = MagicMock()
        supervision.score_section = AsyncMock(return_value=Result.ok(SupervisionReview(overall_score=30)))
        gate = QualityGate(services.settings, services.checkpoints, supervision, continuity=continuity)
        chapters = _orchestrator(
            services, gate=gate,
            tier_resolver=lambda tier: FeatureAccess(
                ai_agents={"continuity_agent": True, "supervision_agent": True},
            ),
        )

        result = await chapters.generate_chapter(book.id, chapter.id)

        assert result.status == ChapterStatus.COMPLETE
        assert services.llm.complete.await_count == 1
        failed = services.checkpoints.load(book.id).failed_sections
        assert len(failed) == 1
        assert failed[0].chapter_id == chapter.id
        assert failed[0].section_number == 1
        assert services.db.get_section(chapter.id, 1).quality_score == 25

    @pytest.mark.asyncio
    async def test_writer_failure_uses_fallback(self, services):
        from config.exceptions import LLMError
        from models.enums import ChapterStatus
        from tools.completion_client import CompletionResult
        book, chapter = _small_book(services)
        services.llm.complete.side_effect = [
            LLMError("overloaded"), CompletionResult("Fallback prose here.", 30),
        ]

        result = await _orchestrator(services).generate_chapter(book.id, chapter.id)

        assert result.status == ChapterStatus.COMPLETE
        assert services.db.get_section(chapter.id, 1).content == "Fallback prose here."
        assert services.llm.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_unrecoverable_failure_marks_needs_revision(self, services):
        from config.exceptions import LLMError
        from models.enums import ChapterStatus
        book, chapter = _small_book(services)
        services.llm.complete.side_effect = LLMError("offline")

        with pytest.raises(LLMError):
            await _orchestrator(services).generate_chapter(book.id, chapter.id)

        assert services.db.get_chapter(chapter.id).status == ChapterStatus.NEEDS_REVISION

    @pytest.mark.asyncio
    async def test_unknown_chapter_raises(self, services):
        from config.exceptions import ChapterNotFoundError
        book, _ = _small_book(services)
        with pytest.raises(ChapterNotFoundError):
            await _orchestrator(services).generate_chapter(book.id, 9999)

    @pytest.mark.asyncio
    async def test_chapter_of_other_book_raises(self, services):
        from config.exceptions import ChapterNotFoundError
        book, _ = _small_book(services)
        _, other_chapter = _small_book(services)
        with pytest.raises(ChapterNotFoundError):
            await _orchestrator(services).generate_chapter(book.id, other_chapter.id)

    @pytest.mark.asyncio
    async def test_unknown_book_raises(self, services):
        from config.exceptions import BookNotFoundError
        with pytest.raises(BookNotFoundError):
            await _orchestrator(services).generate_chapter(9999, 1)

    @pytest.mark.asyncio
    async def test_completed_sections_are_kept(self, services):
        from models.enums import SectionStatus
        from workflow.word_budget import plan_sections
        book, chapter = _small_book(services, words=1500, genre="fantasy")
        chapters = _orchestrator(services)
        rows = chapters.reconcile_sections(chapter, plan_sections(1575, "fantasy"), None)
        assert len(rows) == 2
        rows[0].content = "Already written."
        rows[0].status = SectionStatus.COMPLETE
        services.db.update_section(rows[0])

        result = await chapters.generate_chapter(book.id, chapter.id)

        assert services.llm.complete.await_count == 1
        assert result.content.startswith("Already written.")

    @pytest.mark.asyncio
    async def test_checkpoint_tracks_sections(self, services):
        book, chapter = _small_book(services)
        await _orchestrator(services).generate_chapter(book.id, chapter.id)
        assert services.checkpoints.load(book.id).completed_sections == {str(chapter.id): [1]}


class TestNarrativeVoice:
    @pytest.mark.asyncio
    async def test_voice_from_first_section_reused(self, services):
        from models.chapter import Chapter
        book, chapter = _small_book(services)
        second = Chapter(book_id=book.id, chapter_number=2, title="Two")
        second.id = services.db.create_chapter(second)
        chapters = _orchestrator(services)

        await chapters.generate_chapter(book.id, chapter.id)
        voice = chapters.voice_for(book.id)
        await chapters.generate_chapter(book.id, second.id)

        assert voice.perspective == "third person limited"
        assert voice.tense == "past"
        assert voice.tone == "wistful"
        prompt = services.llm.complete.await_args.args[0]
        assert "third person limited, past tense, wistful tone" in prompt

    def test_no_voice_before_first_section(self, services):
        book, _ = _small_book(services)
        assert _orchestrator(services).voice_for(book.id) is None


class TestReconcileSections:
    def test_excess_rows_removed_and_targets_updated(self, services):
        from models.chapter import Section
        from workflow.word_budget import split_sections
        book, chapter = _small_book(services)
        chapters = _orchestrator(services)
        chapters.reconcile_sections(chapter, split_sections(900, 3, "fantasy"), None)

        rows = chapters.reconcile_sections(chapter, split_sections(1000, 2, "fantasy"), None)

        stored = services.db.get_sections(chapter.id)
        assert [s.section_number for s in stored] == [1, 2]
        assert [s.word_target for s in stored] == [500, 500]
        assert len(rows) == 2
        assert isinstance(rows[0], Section)

    def test_scene_context_validated(self, services):
        from models.context import SceneContext
        from workflow.word_budget import split_sections
        book, chapter = _small_book(services)
        rows = _orchestrator(services).reconcile_sections(chapter, split_sections(300, 1, "fantasy"), None)
        scene = SceneContext.parse_stored(rows[0].scene_context)
        assert scene.characters == ["Protagonist"]
        assert scene.setting == "Story setting"
        assert scene.total_sections == 1
