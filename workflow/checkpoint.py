"""File-based generation checkpoints for crash recovery.

One JSON file per book, ``{checkpoint_dir}/{book_id}-checkpoint.json``.
Writes go to a temp file first and are moved into place with os.replace, so
readers never see a partially written checkpoint. Checkpointing only speeds
up resume: save failures are logged and never raised.
"""

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from models.checkpoint import FailedSection, GenerationCheckpoint

logger = logging.getLogger(__name__)

_SUFFIX = "-checkpoint.json"


@dataclass
class CheckpointSummary:
    exists: bool = False
    completed_chapters: int = 0
    completed_sections: int = 0
    failed_sections: int = 0
    last_updated: Optional[datetime] = None


class CheckpointStore:
    """Durable per-book checkpoint files."""

    def __init__(self, checkpoint_dir: Path | str):
        self.checkpoint_dir = Path(checkpoint_dir)

    def _path(self, book_id: int) -> Path:
        return self.checkpoint_dir / f"{book_id}{_SUFFIX}"

    def save(self, book_id: int, checkpoint: GenerationCheckpoint) -> bool:
        """Atomically replace the book's checkpoint. Returns False on failure."""
        checkpoint.timestamp = datetime.now()
        tmp_name = None
        try:
            self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.checkpoint_dir, prefix=f".{book_id}-", suffix=".tmp",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(checkpoint.to_dict(), f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path(book_id))
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save checkpoint for book %d: %s", book_id, e)
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False
        logger.debug("Checkpoint saved: %s", self._path(book_id))
        return True

    def load(self, book_id: int) -> Optional[GenerationCheckpoint]:
        """The last saved checkpoint, or None if missing or unreadable."""
        path = self._path(book_id)
        if not path.exists():
            logger.debug("No checkpoint found for book %d", book_id)
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            checkpoint = GenerationCheckpoint.from_dict(data)
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning("Ignoring unreadable checkpoint %s: %s", path, e)
            return None
        logger.info("Checkpoint loaded for book %d", book_id)
        return checkpoint

    def clear(self, book_id: int):
        try:
            self._path(book_id).unlink()
            logger.info("Checkpoint cleared for book %d", book_id)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to clear checkpoint for book %d: %s", book_id, e)

    def create(
        self,
        book_id: int,
        story_bible: Optional[dict] = None,
        quality_plan: Optional[dict] = None,
        continuity: Optional[dict] = None,
    ) -> GenerationCheckpoint:
        """A fresh, unsaved checkpoint."""
        return GenerationCheckpoint(
            book_id=book_id,
            story_bible=story_bible,
            quality_plan=quality_plan,
            continuity=continuity,
        )

    # ---- Incremental updates (load-modify-save) ----

    def _resolve(
        self, book_id: int, checkpoint: Optional[GenerationCheckpoint],
    ) -> Optional[GenerationCheckpoint]:
        checkpoint = checkpoint or self.load(book_id)
        if checkpoint is None:
            logger.warning("No checkpoint found for book %d, cannot update", book_id)
        return checkpoint

    def update_with_chapter(
        self, book_id: int, chapter_number: int,
        checkpoint: Optional[GenerationCheckpoint] = None,
    ) -> Optional[GenerationCheckpoint]:
        checkpoint = self._resolve(book_id, checkpoint)
        if checkpoint is None:
            return None
        checkpoint.completed_chapters = sorted(set(checkpoint.completed_chapters) | {chapter_number})
        self.save(book_id, checkpoint)
        return checkpoint

    def update_with_section(
        self, book_id: int, chapter_id: int, section_number: int,
        checkpoint: Optional[GenerationCheckpoint] = None,
    ) -> Optional[GenerationCheckpoint]:
        checkpoint = self._resolve(book_id, checkpoint)
        if checkpoint is None:
            return None
        key = str(chapter_id)
        done = set(checkpoint.completed_sections.get(key, []))
        checkpoint.completed_sections[key] = sorted(done | {section_number})
        self.save(book_id, checkpoint)
        return checkpoint

    def update_continuity(
        self, book_id: int, snapshot: dict,
        checkpoint: Optional[GenerationCheckpoint] = None,
    ) -> Optional[GenerationCheckpoint]:
        checkpoint = self._resolve(book_id, checkpoint)
        if checkpoint is None:
            return None
        checkpoint.continuity = snapshot
        self.save(book_id, checkpoint)
        return checkpoint

    def add_failed_section(
        self, book_id: int, failed: FailedSection,
        checkpoint: Optional[GenerationCheckpoint] = None,
    ) -> Optional[GenerationCheckpoint]:
        checkpoint = self._resolve(book_id, checkpoint)
        if checkpoint is None:
            return None
        checkpoint.failed_sections.append(failed)
        self.save(book_id, checkpoint)
        return checkpoint

    def remove_failed_section(
        self, book_id: int, chapter_id: int, section_number: int,
        checkpoint: Optional[GenerationCheckpoint] = None,
    ) -> Optional[GenerationCheckpoint]:
        checkpoint = self._resolve(book_id, checkpoint)
        if checkpoint is None:
            return None
        checkpoint.failed_sections = [
            f for f in checkpoint.failed_sections
            if not (f.chapter_id == chapter_id and f.section_number == section_number)
        ]
        self.save(book_id, checkpoint)
        return checkpoint

    # ---- Inspection and housekeeping ----

    def get_summary(self, book_id: int) -> CheckpointSummary:
        checkpoint = self.load(book_id)
        if checkpoint is None:
            return CheckpointSummary()
        return CheckpointSummary(
            exists=True,
            completed_chapters=len(checkpoint.completed_chapters),
            completed_sections=sum(len(v) for v in checkpoint.completed_sections.values()),
            failed_sections=len(checkpoint.failed_sections),
            last_updated=checkpoint.timestamp,
        )

    def list_checkpoints(self) -> list[int]:
        """Book ids that currently have a checkpoint."""
        if not self.checkpoint_dir.exists():
            return []
        book_ids = []
        for path in self.checkpoint_dir.glob(f"*{_SUFFIX}"):
            prefix = path.name[: -len(_SUFFIX)]
            if prefix.isdigit():
                book_ids.append(int(prefix))
        return sorted(book_ids)

    def cleanup_old_checkpoints(self, days_old: int = 30) -> int:
        """Delete checkpoints not modified in `days_old` days. Returns the count removed."""
        if not self.checkpoint_dir.exists():
            return 0
        cutoff = time.time() - days_old * 86400
        removed = 0
        for path in self.checkpoint_dir.glob(f"*{_SUFFIX}"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
                    logger.info("Cleaned up old checkpoint: %s", path.name)
            except OSError as e:
                logger.warning("Could not clean up checkpoint %s: %s", path.name, e)
        return removed
