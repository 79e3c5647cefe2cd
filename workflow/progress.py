"""Maps generation state to a 0-100 progress value and a status message."""

import logging
import time
from typing import Callable, Optional

from models.enums import GenerationStep
from tools.text_utils import round_half_up
from workflow.callbacks import ProgressChannel

logger = logging.getLogger(__name__)

CHAPTERS_BASE = 50
CHAPTERS_RANGE = 40


def generate_status_message(progress: int, current_chapter: int = 0, total_chapters: int = 0) -> str:
    if progress <= 25:
        return "Analyzing the concept and generating the back cover..."
    if progress <= 40:
        return "Researching and building the story outline..."
    if progress <= 50:
        return "Planning the book structure and chapters..."
    if progress <= 90 and total_chapters > 0:
        return f"Writing Chapter {current_chapter} of {total_chapters}..."
    if progress <= 95:
        return "Applying final review and quality checks..."
    if progress >= 100:
        return "Book generation completed successfully!"
    return "Working on your book..."


def chapter_progress(
    chapter_number: int, total_chapters: int, section_number: int, total_sections: int,
) -> int:
    """Progress while writing: 50 to 90 spread across chapters and their sections."""
    total_chapters = max(1, total_chapters)
    total_sections = max(1, total_sections)
    chapter_part = (chapter_number - 1) / total_chapters * CHAPTERS_RANGE
    section_part = (section_number - 1) / total_sections * (CHAPTERS_RANGE / total_chapters)
    return round_half_up(CHAPTERS_BASE + chapter_part + section_part)


class ProgressReporter:
    """Publishes throttled progress updates to a ProgressChannel.

    Routine updates for a book are dropped if they arrive within
    `throttle_ms` of the previous write; step changes, chapter completion,
    completion and errors are always written.
    """

    def __init__(
        self,
        channel: ProgressChannel,
        throttle_ms: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self.throttle_ms = throttle_ms
        self._clock = clock
        self._last_write: dict[int, float] = {}
        self._last_progress: dict[int, int] = {}

    def _throttled(self, book_id: int) -> bool:
        last = self._last_write.get(book_id)
        return last is not None and (self._clock() - last) * 1000 < self.throttle_ms

    def _write(self, book_id: int, partial: dict):
        self.channel.update_progress(book_id, partial)
        self._last_write[book_id] = self._clock()
        if "overall_progress" in partial:
            self._last_progress[book_id] = partial["overall_progress"]

    def update(self, book_id: int, partial: dict, force: bool = False) -> bool:
        """Publish a partial state. Returns False if the update was throttled."""
        if not force and self._throttled(book_id):
            return False
        partial = dict(partial)
        if "overall_progress" in partial and "message" not in partial:
            partial["message"] = generate_status_message(
                partial["overall_progress"],
                partial.get("current_chapter", 0),
                partial.get("total_chapters", 0),
            )
        self._write(book_id, partial)
        return True

    def initialize(self, book_id: int):
        self._write(book_id, {
            "status": "GENERATING",
            "step": GenerationStep.PROMPT.value,
            "overall_progress": 0,
            "message": "Starting book generation...",
        })

    def set_step(self, book_id: int, step: GenerationStep, progress: int, message: str = ""):
        self.update(book_id, {
            "status": "GENERATING",
            "step": step.value,
            "overall_progress": progress,
            **({"message": message} if message else {}),
        }, force=True)

    def update_chapter_progress(
        self,
        book_id: int,
        chapter_number: int,
        total_chapters: int,
        section_number: int,
        total_sections: int,
    ) -> bool:
        return self.update(book_id, {
            "step": GenerationStep.CHAPTERS.value,
            "overall_progress": chapter_progress(
                chapter_number, total_chapters, section_number, total_sections,
            ),
            "message": (
                f"Writing Chapter {chapter_number} of {total_chapters} - "
                f"Section {section_number} of {total_sections}..."
            ),
            "current_chapter": chapter_number,
            "total_chapters": total_chapters,
        })

    def complete_chapter(self, book_id: int, chapter_number: int, total_chapters: int):
        total_chapters = max(1, total_chapters)
        progress = round_half_up(CHAPTERS_BASE + chapter_number / total_chapters * CHAPTERS_RANGE)
        self.update(book_id, {
            "overall_progress": progress,
            "message": f"Chapter {chapter_number} of {total_chapters} completed!",
            "current_chapter": chapter_number,
            "total_chapters": total_chapters,
        }, force=True)

    def mark_complete(self, book_id: int, total_chapters: int):
        self.update(book_id, {
            "status": "COMPLETE",
            "step": GenerationStep.COMPLETE.value,
            "overall_progress": 100,
            "total_chapters": total_chapters,
            "current_chapter": total_chapters,
        }, force=True)

    def mark_error(self, book_id: int, error_message: str):
        self._write(book_id, {
            "status": "ERROR",
            "step": GenerationStep.ERROR.value,
            "message": f"Generation failed: {error_message}",
            "error": error_message,
        })
        logger.error("Book %d generation error: %s", book_id, error_message)

    def last_reported(self, book_id: int) -> Optional[int]:
        """Last progress value written for a book in this process."""
        if book_id in self._last_progress:
            return self._last_progress[book_id]
        state = self.channel.get_progress(book_id)
        if state and "overall_progress" in state:
            return state["overall_progress"]
        return None
