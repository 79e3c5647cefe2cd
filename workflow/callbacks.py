"""Progress channels and pipeline callbacks for monitoring book generation."""

import logging
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressChannel(Protocol):
    """Where progress updates for a book are published.

    The engine only writes; readers (a UI, a CLI) poll get_progress().
    """

    def update_progress(self, book_id: int, partial: dict) -> None:
        """Merge a partial progress state into the book's current state."""
        ...

    def get_progress(self, book_id: int) -> Optional[dict]:
        """Latest merged state for a book, or None if nothing was published."""
        ...


class InMemoryProgressChannel:
    """Keeps the merged state per book and the full update history."""

    def __init__(self):
        self._state: dict[int, dict] = {}
        self.history: list[tuple[int, dict]] = []

    def update_progress(self, book_id: int, partial: dict) -> None:
        merged = {**self._state.get(book_id, {}), **partial, "updated_at": datetime.now().isoformat()}
        self._state[book_id] = merged
        self.history.append((book_id, dict(partial)))

    def get_progress(self, book_id: int) -> Optional[dict]:
        state = self._state.get(book_id)
        return dict(state) if state is not None else None


class LoggingProgressChannel(InMemoryProgressChannel):
    """In-memory channel that also logs every published update."""

    def update_progress(self, book_id: int, partial: dict) -> None:
        super().update_progress(book_id, partial)
        if "overall_progress" in partial:
            logger.info(
                "Book %d progress: %s%% - %s",
                book_id, partial["overall_progress"], partial.get("message", ""),
            )
        elif partial.get("message"):
            logger.info("Book %d: %s", book_id, partial["message"])


class RichProgressChannel(InMemoryProgressChannel):
    """Renders a Rich progress bar per book in the terminal."""

    def __init__(self, console=None):
        super().__init__()
        self._console = console
        self._progress = None
        self._tasks: dict[int, int] = {}

    def start(self):
        """Start the progress display. Call before generating."""
        from rich.console import Console
        from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

        self._progress = Progress(
            SpinnerColumn("dots"),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self._console or Console(),
        )
        self._progress.start()

    def stop(self):
        if self._progress:
            self._progress.stop()
            self._progress = None

    def update_progress(self, book_id: int, partial: dict) -> None:
        super().update_progress(book_id, partial)
        if not self._progress:
            return
        if book_id not in self._tasks:
            self._tasks[book_id] = self._progress.add_task(f"Book {book_id}", total=100)

        state = self._state[book_id]
        description = state.get("message", f"Book {book_id}")
        if state.get("status") == "ERROR":
            description = f"[red]{description}[/]"
        elif state.get("overall_progress", 0) >= 100:
            description = f"[bold green]{description}[/]"
        self._progress.update(
            self._tasks[book_id],
            completed=state.get("overall_progress", 0),
            description=description,
        )


@runtime_checkable
class PipelineCallback(Protocol):
    """Hooks into the LangGraph pipeline run."""

    def on_node_exit(self, node: str, state: dict) -> None:
        """Called after a node finishes with the accumulated state."""
        ...

    def on_error(self, node: str, error: str) -> None:
        """Called when a node reports an error in the state."""
        ...

    def on_pipeline_complete(self, final_state: dict) -> None:
        """Called when the pipeline finishes."""
        ...


class LoggingCallback:
    """Lightweight callback that logs pipeline progress."""

    def on_node_exit(self, node: str, state: dict) -> None:
        logger.debug("<- node: %s", node)

    def on_error(self, node: str, error: str) -> None:
        logger.error("Pipeline error in '%s': %s", node, error)

    def on_pipeline_complete(self, final_state: dict) -> None:
        logger.info(
            "Pipeline complete for book %s (last node: %s)",
            final_state.get("book_id"), final_state.get("last_node", ""),
        )
