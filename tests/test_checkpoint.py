"""Tests for the file-based checkpoint store."""

import os
import time


def _store(tmp_path):
    from workflow.checkpoint import CheckpointStore
    return CheckpointStore(tmp_path / "checkpoints")


class TestCheckpointFiles:
    def test_save_and_load(self, tmp_path):
        store = _store(tmp_path)
        checkpoint = store.create(7, story_bible={"premise": "P"}, continuity={"characters": []})

        assert store.save(7, checkpoint)

        loaded = store.load(7)
        assert loaded.book_id == 7
        assert loaded.story_bible == {"premise": "P"}
        assert loaded.timestamp is not None
        assert (tmp_path / "checkpoints" / "7-checkpoint.json").exists()

    def test_save_leaves_no_temp_files(self, tmp_path):
        store = _store(tmp_path)
        store.save(1, store.create(1))
        store.save(1, store.create(1))
        assert sorted(os.listdir(tmp_path / "checkpoints")) == ["1-checkpoint.json"]

    def test_load_missing_returns_none(self, tmp_path):
        assert _store(tmp_path).load(99) is None

    def test_load_corrupt_returns_none(self, tmp_path):
        store = _store(tmp_path)
        (tmp_path / "checkpoints").mkdir()
        (tmp_path / "checkpoints" / "3-checkpoint.json").write_text("{not json")
        assert store.load(3) is None

    def test_save_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        from workflow.checkpoint import CheckpointStore
        store = CheckpointStore(blocker / "checkpoints")
        assert store.save(1, store.create(1)) is False

    def test_clear(self, tmp_path):
        store = _store(tmp_path)
        store.save(2, store.create(2))
        store.clear(2)
        store.clear(2)
        assert store.load(2) is None


class TestIncrementalUpdates:
    def test_chapter_and_section_updates_are_idempotent(self, tmp_path):
        store = _store(tmp_path)
        store.save(1, store.create(1))

        store.update_with_chapter(1, 2)
        store.update_with_chapter(1, 1)
        store.update_with_chapter(1, 2)
        store.update_with_section(1, 40, 2)
        store.update_with_section(1, 40, 1)
        store.update_with_section(1, 40, 2)

        loaded = store.load(1)
        assert loaded.completed_chapters == [1, 2]
        assert loaded.completed_sections == {"40": [1, 2]}

    def test_update_without_checkpoint_is_noop(self, tmp_path):
        store = _store(tmp_path)
        assert store.update_with_chapter(5, 1) is None
        assert store.load(5) is None

    def test_failed_sections_add_and_remove(self, tmp_path):
        from models.checkpoint import FailedSection
        store = _store(tmp_path)
        store.save(1, store.create(1))

        store.add_failed_section(1, FailedSection(book_id=1, chapter_id=4, section_number=1, reason="Low"))
        store.add_failed_section(1, FailedSection(book_id=1, chapter_id=4, section_number=2, reason="Low"))
        store.remove_failed_section(1, 4, 1)

        assert [f.section_number for f in store.load(1).failed_sections] == [2]

    def test_update_continuity(self, tmp_path):
        store = _store(tmp_path)
        checkpoint = store.create(1)
        store.save(1, checkpoint)
        store.update_continuity(1, {"characters": [{"name": "Mara"}]}, checkpoint)
        assert store.load(1).continuity == {"characters": [{"name": "Mara"}]}


class TestInspection:
    def test_summary(self, tmp_path):
        from models.checkpoint import FailedSection
        store = _store(tmp_path)
        checkpoint = store.create(1)
        checkpoint.completed_chapters = [1]
        checkpoint.completed_sections = {"10": [1, 2], "11": [1]}
        checkpoint.failed_sections = [FailedSection(book_id=1, chapter_id=11, section_number=1)]
        store.save(1, checkpoint)

        summary = store.get_summary(1)

        assert summary.exists
        assert summary.completed_chapters == 1
        assert summary.completed_sections == 3
        assert summary.failed_sections == 1
        assert not store.get_summary(2).exists

    def test_list_checkpoints(self, tmp_path):
        store = _store(tmp_path)
        assert store.list_checkpoints() == []
        for book_id in (12, 3):
            store.save(book_id, store.create(book_id))
        (tmp_path / "checkpoints" / "notes-checkpoint.json").write_text("{}")
        assert store.list_checkpoints() == [3, 12]

    def test_cleanup_old_checkpoints(self, tmp_path):
        store = _store(tmp_path)
        store.save(1, store.create(1))
        store.save(2, store.create(2))
        old = time.time() - 40 * 86400
        os.utime(tmp_path / "checkpoints" / "1-checkpoint.json", (old, old))

        assert store.cleanup_old_checkpoints(days_old=30) == 1
        assert store.list_checkpoints() == [2]
