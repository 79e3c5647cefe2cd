"""Tests for database CRUD operations and the data models."""

import json
from datetime import datetime, timedelta

import pytest

from models.book import Book, BookSettings
from models.chapter import Chapter, Section
from models.enums import (
    BookStatus, ChapterStatus, GenerationStep, RevisionPriority, RevisionStatus,
    RevisionTriggerType, SectionStatus,
)


class TestBookCRUD:
    def test_create_and_get_book(self, db):
        book = Book(
            title="Salt Roads",
            prompt="Smugglers map a sea that moves",
            settings=BookSettings(genre="fantasy", target_word_count=30000, character_names=["Ines"]),
            tier="premium",
        )
        book_id = db.create_book(book)
        assert book_id > 0

        retrieved = db.get_book(book_id)
        assert retrieved.title == "Salt Roads"
        assert retrieved.settings.genre == "fantasy"
        assert retrieved.settings.character_names == ["Ines"]
        assert retrieved.target_word_count == 30000
        assert retrieved.tier == "premium"
        assert retrieved.status == BookStatus.PLANNING
        assert retrieved.generation_step == GenerationStep.PROMPT

    def test_get_book_not_found_returns_none(self, db):
        assert db.get_book(9999) is None

    def test_update_book_status_only_touches_given_columns(self, db, sample_book):
        db.update_book_status(sample_book.id, step=GenerationStep.OUTLINE)
        book = db.get_book(sample_book.id)
        assert book.generation_step == GenerationStep.OUTLINE
        assert book.status == BookStatus.PLANNING
        assert book.error_message is None

        db.update_book_status(sample_book.id, status=BookStatus.ERROR, error_message="boom")
        book = db.get_book(sample_book.id)
        assert book.status == BookStatus.ERROR
        assert book.generation_step == GenerationStep.OUTLINE
        assert book.error_message == "boom"

    def test_list_books_in_id_order(self, db):
        first = db.create_book(Book(title="One"))
        second = db.create_book(Book(title="Two"))
        assert [b.id for b in db.list_books()] == [first, second]

    def test_delete_book_removes_children(self, db, sample_book, sample_bible):
        chapter_id = db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=1))
        db.create_section(Section(chapter_id=chapter_id, section_number=1))
        db.save_story_bible(sample_book.id, sample_bible)

        db.delete_book(sample_book.id)

        assert db.get_book(sample_book.id) is None
        assert db.get_chapters(sample_book.id) == []
        assert db.get_sections(chapter_id) == []
        assert db.get_story_bible(sample_book.id) is None

    def test_unknown_settings_keys_ignored(self):
        settings = BookSettings.from_dict({"genre": "mystery", "legacy_field": 1})
        assert settings.genre == "mystery"


class TestStoryBibleStorage:
    def test_round_trip_with_quality_plan_and_research(self, db, sample_book, sample_bible):
        from models.story_bible import QualityPlan, ResearchData
        plan = QualityPlan(narrative_voice="close third", emotional_pacing=[{"chapter": 1, "beat": "dread"}])
        research = ResearchData(domain_knowledge=["Fresnel lenses"])
        db.save_story_bible(sample_book.id, sample_bible, plan, research)

        bible = db.get_story_bible(sample_book.id)
        assert [c.title for c in bible.chapters] == ["Tide 1", "Tide 2", "Tide 3"]
        assert bible.chapters[0].scenes[0].setting == "Lighthouse"
        assert bible.characters[0].relationships == {"Tomas": "brother"}
        assert db.get_quality_plan(sample_book.id).narrative_voice == "close third"
        assert db.get_research(sample_book.id).domain_knowledge == ["Fresnel lenses"]

    def test_save_twice_replaces(self, db, sample_book, sample_bible):
        from dataclasses import replace
        db.save_story_bible(sample_book.id, sample_bible)
        db.save_story_bible(sample_book.id, replace(sample_bible, theme="Return"))
        assert db.get_story_bible(sample_book.id).theme == "Return"
        assert db.get_quality_plan(sample_book.id) is None


class TestChapterAndSectionCRUD:
    def test_chapters_ordered_by_number(self, db, sample_book):
        for n in (3, 1, 2):
            db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=n, title=f"C{n}"))
        assert [c.chapter_number for c in db.get_chapters(sample_book.id)] == [1, 2, 3]

    def test_duplicate_chapter_number_rejected(self, db, sample_book):
        import sqlite3
        db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=1))
        with pytest.raises(sqlite3.IntegrityError):
            db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=1))

    def test_get_chapters_filtered_by_status(self, db, sample_book):
        db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=1, status=ChapterStatus.COMPLETE))
        db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=2))
        complete = db.get_chapters(sample_book.id, ChapterStatus.COMPLETE)
        assert [c.chapter_number for c in complete] == [1]

    def test_update_chapter_status(self, db, sample_book):
        chapter_id = db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=1))
        db.update_chapter_status(chapter_id, ChapterStatus.NEEDS_REVISION)
        assert db.get_chapter(chapter_id).status == ChapterStatus.NEEDS_REVISION

    def test_delete_chapters_returns_count(self, db, sample_book):
        for n in (1, 2):
            chapter_id = db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=n))
            db.create_section(Section(chapter_id=chapter_id, section_number=1))
        assert db.delete_chapters(sample_book.id) == 2
        assert db.get_chapters(sample_book.id) == []

    def test_section_update_and_lookup(self, db, sample_book):
        chapter_id = db.create_chapter(Chapter(book_id=sample_book.id, chapter_number=1))
        section = Section(chapter_id=chapter_id, section_number=1, word_target=400)
        section.id = db.create_section(section)

        section.content = "Words on a page"
        section.word_count = 4
        section.status = SectionStatus.COMPLETE
        section.model = "claude-sonnet-4-6"
        section.tokens_used = 321
        section.quality_score = 82
        db.update_section(section)

        stored = db.get_section(chapter_id, 1)
        assert stored.status == SectionStatus.COMPLETE
        assert stored.tokens_used == 321
        assert stored.quality_score == 82
        assert db.count_sections(chapter_id) == 1

        db.delete_section(section.id)
        assert db.get_section(chapter_id, 1) is None


class TestRevisionTaskStorage:
    def test_save_and_filter(self, db):
        from models.quality import RevisionTask
        now = datetime(2026, 3, 1, 12, 0)
        db.save_revision_task(RevisionTask(
            id="a1", book_id=1, chapter_number=2, trigger=RevisionTriggerType.PACING,
            priority=RevisionPriority.MEDIUM, created_at=now, last_triggered_at=now,
        ))
        db.save_revision_task(RevisionTask(
            id="b2", book_id=2, chapter_number=1, status=RevisionStatus.COMPLETED,
            created_at=now + timedelta(minutes=1), last_triggered_at=now,
        ))

        task = db.get_revision_task("a1")
        assert task.trigger == RevisionTriggerType.PACING
        assert task.created_at == now
        assert [t.id for t in db.get_revision_tasks(book_id=1)] == ["a1"]
        assert [t.id for t in db.get_revision_tasks(status=RevisionStatus.COMPLETED)] == ["b2"]
        assert db.get_revision_task("missing") is None


class TestCheckpointModel:
    def test_to_dict_sorts_and_dedupes(self):
        from models.checkpoint import GenerationCheckpoint
        checkpoint = GenerationCheckpoint(
            book_id=1, completed_chapters=[3, 1, 3], completed_sections={"7": [2, 1, 2]},
        )
        data = checkpoint.to_dict()
        assert data["completed_chapters"] == [1, 3]
        assert data["completed_sections"] == {"7": [1, 2]}
        assert data["version"] == "1.0"

    def test_from_dict_restores_failed_sections(self):
        from models.checkpoint import FailedSection, GenerationCheckpoint
        original = GenerationCheckpoint(
            book_id=4,
            failed_sections=[FailedSection(book_id=4, chapter_id=9, section_number=2, reason="Low")],
            continuity={"characters": []},
        )
        restored = GenerationCheckpoint.from_dict(json.loads(json.dumps(original.to_dict())))
        assert restored.failed_sections[0].chapter_id == 9
        assert restored.failed_sections[0].reason == "Low"
        assert restored.continuity == {"characters": []}


class TestStoryBibleModel:
    def test_from_dict_accepts_overview_block(self):
        from models.story_bible import StoryBible
        bible = StoryBible.from_dict({
            "overview": {"premise": "P", "theme": "T", "tone": "dark"},
            "chapters": [{"number": "2", "title": "Two", "scenes": [{"setting": "Dock"}, "junk"]}],
        })
        assert bible.premise == "P"
        assert bible.tone == "dark"
        assert bible.chapters[0].number == 2
        assert len(bible.chapters[0].scenes) == 1

    def test_quality_plan_beat_prefers_exact_section(self):
        from models.story_bible import QualityPlan
        plan = QualityPlan(emotional_pacing=[
            {"chapter": 1, "beat": "unease"},
            {"chapter": 1, "section": 2, "beat": "terror"},
        ])
        assert plan.beat_for(1, 2) == "terror"
        assert plan.beat_for(1, 1) == "unease"
        assert plan.beat_for(3, 1) is None

    def test_research_all_facts(self):
        from models.story_bible import ResearchData
        research = ResearchData(domain_knowledge=["a"], cultural_context=["b"])
        assert research.all_facts() == ["a", "b"]
        assert not research.is_empty()
        assert ResearchData().is_empty()


class TestContextModels:
    def test_scene_context_defaults_characters(self):
        from models.context import SceneContext
        scene = SceneContext(section_number=1, total_sections=1, word_target=300, characters=["", "  "])
        assert scene.characters == ["Protagonist"]

    def test_parse_stored_rejects_missing_payload(self):
        from config.exceptions import ContextValidationError
        from models.context import SceneContext
        with pytest.raises(ContextValidationError, match="missing payload"):
            SceneContext.parse_stored(None)

    def test_parse_stored_rejects_invalid_payload(self):
        from config.exceptions import ContextValidationError
        from models.context import SceneContext
        with pytest.raises(ContextValidationError):
            SceneContext.parse_stored('{"section_number": 0, "total_sections": 1, "word_target": 10}')

    def test_parse_stored_round_trip(self):
        from models.context import SceneContext
        from models.enums import SceneType
        scene = SceneContext(section_number=2, total_sections=3, word_target=500, scene_type=SceneType.ACTION)
        assert SceneContext.parse_stored(scene.model_dump_json()) == scene

    def test_chapter_context_rejects_number_past_total(self):
        from config.exceptions import ContextValidationError
        from models.context import ChapterContext
        with pytest.raises(ContextValidationError, match="ChapterContext"):
            ChapterContext.build(book_id=1, chapter_id=1, chapter_number=5, total_chapters=3)

    def test_result_unwrap_or(self):
        from models.quality import Result
        assert Result.ok(5).unwrap_or(75) == 5
        err = Result.err(ValueError("x"))
        assert not err.is_ok
        assert err.unwrap_or(75) == 75
