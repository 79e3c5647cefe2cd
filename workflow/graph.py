"""LangGraph StateGraph: runs a book through the whole generation pipeline.

    initialize -> back_cover -> outline -> chapters -> supervision -> END

initialize picks the first stage that still has work, so re-running the
pipeline on a half-finished book picks up where it stopped. Any node that
fails records the error in the state and routes to handle_error.
"""

import logging
from typing import Optional

from langgraph.graph import StateGraph, END

from models.book import BookSettings
from models.enums import BookStatus, ChapterStatus
from workflow.book_orchestrator import BookOrchestrator, GenerationOptions
from workflow.callbacks import PipelineCallback
from workflow.conditions import (
    route_after_back_cover,
    route_after_chapters,
    route_after_init,
    route_after_outline,
)
from workflow.state import PipelineState

logger = logging.getLogger(__name__)

_RECURSION_LIMIT = 25


def build_graph(orchestrator: BookOrchestrator):
    """Build and return the compiled pipeline bound to one orchestrator."""

    async def initialize(state: PipelineState) -> dict:
        logger.info("Entering node: initialize")
        book_id = state["book_id"]
        book = orchestrator.db.get_book(book_id)
        if book is None:
            return {"error": f"Book {book_id} not found", "last_node": "initialize"}

        if book.status == BookStatus.COMPLETE:
            logger.info("Book %d is already complete", book_id)
            start_at = "__end__"
        elif orchestrator.checkpoints.load(book_id) is not None or orchestrator.db.get_chapters(book_id):
            start_at = "chapters"
        elif book.back_cover and not state.get("prompt"):
            start_at = "outline"
        elif state.get("prompt") or book.prompt:
            start_at = "back_cover"
        else:
            return {"error": f"Book {book_id} has no prompt", "last_node": "initialize"}

        logger.info("Book %d pipeline starts at: %s", book_id, start_at)
        return {"start_at": start_at, "last_node": "initialize"}

    async def back_cover(state: PipelineState) -> dict:
        logger.info("Entering node: back_cover")
        book_id = state["book_id"]
        try:
            book = orchestrator.db.get_book(book_id)
            settings = (
                BookSettings.from_dict(state["book_settings"]) if state.get("book_settings") else book.settings
            )
            text = await orchestrator.generate_back_cover(book_id, state.get("prompt") or book.prompt, settings)
        except Exception as e:
            logger.error("back_cover failed: %s", e)
            return {"error": str(e), "last_node": "back_cover"}
        return {"back_cover": text, "last_node": "back_cover"}

    async def outline(state: PipelineState) -> dict:
        logger.info("Entering node: outline")
        try:
            bible = await orchestrator.generate_outline(state["book_id"])
        except Exception as e:
            logger.error("outline failed: %s", e)
            return {"error": str(e), "last_node": "outline"}
        return {"chapter_count": len(bible.chapters), "last_node": "outline"}

    async def chapters(state: PipelineState) -> dict:
        logger.info("Entering node: chapters")
        book_id = state["book_id"]
        options = GenerationOptions(max_chapters=state.get("max_chapters"), complete_book=False)
        try:
            report = await orchestrator.start_book_generation(book_id, options)
        except Exception as e:
            logger.error("chapters failed: %s", e)
            return {"error": str(e), "last_node": "chapters"}

        all_chapters = orchestrator.db.get_chapters(book_id)
        return {
            "chapter_count": len(all_chapters),
            "chapters_written": report.chapters_written,
            "chapters_failed": report.chapters_failed,
            "all_chapters_complete": bool(all_chapters) and all(
                c.status == ChapterStatus.COMPLETE for c in all_chapters
            ),
            "last_node": "chapters",
        }

    async def supervision(state: PipelineState) -> dict:
        logger.info("Entering node: supervision")
        try:
            await orchestrator.complete_book_generation(state["book_id"])
        except Exception as e:
            logger.error("supervision failed: %s", e)
            return {"error": str(e), "last_node": "supervision"}
        return {"completed": True, "last_node": "supervision"}

    async def handle_error(state: PipelineState) -> dict:
        logger.error(
            "Pipeline error in %s: %s", state.get("last_node", "?"), state.get("error", "Unknown error"),
        )
        return {"should_stop": True}

    graph = StateGraph(PipelineState)

    graph.add_node("initialize", initialize)
    graph.add_node("back_cover", back_cover)
    graph.add_node("outline", outline)
    graph.add_node("chapters", chapters)
    graph.add_node("supervision", supervision)
    graph.add_node("handle_error", handle_error)

    graph.set_entry_point("initialize")

    graph.add_conditional_edges(
        "initialize",
        route_after_init,
        {
            "back_cover": "back_cover",
            "outline": "outline",
            "chapters": "chapters",
            "handle_error": "handle_error",
            "__end__": END,
        },
    )
    graph.add_conditional_edges(
        "back_cover",
        route_after_back_cover,
        {"outline": "outline", "handle_error": "handle_error", "__end__": END},
    )
    graph.add_conditional_edges(
        "outline",
        route_after_outline,
        {"chapters": "chapters", "handle_error": "handle_error", "__end__": END},
    )
    graph.add_conditional_edges(
        "chapters",
        route_after_chapters,
        {"supervision": "supervision", "handle_error": "handle_error", "__end__": END},
    )
    graph.add_edge("supervision", END)
    graph.add_edge("handle_error", END)

    return graph.compile()


async def run_pipeline(
    orchestrator: BookOrchestrator,
    book_id: int,
    prompt: Optional[str] = None,
    settings: Optional[BookSettings] = None,
    callback: Optional[PipelineCallback] = None,
    max_chapters: Optional[int] = None,
    stop_after: Optional[str] = None,
) -> dict:
    """Run the pipeline for one book.

    Args:
        orchestrator: BookOrchestrator whose services the nodes use.
        book_id: Existing book row to generate.
        prompt: Premise; the book's stored prompt is used when omitted.
        settings: Book settings override for the back cover stage.
        callback: Optional PipelineCallback for progress reporting.
        max_chapters: Write at most this many chapters in this run.
        stop_after: "back_cover" or "outline" to stop after that stage.

    Returns:
        Final pipeline state dict.
    """
    app = build_graph(orchestrator)
    initial_state: PipelineState = {"book_id": book_id}
    if prompt:
        initial_state["prompt"] = prompt
    if settings is not None:
        initial_state["book_settings"] = settings.to_dict()
    if max_chapters is not None:
        initial_state["max_chapters"] = max_chapters
    if stop_after:
        initial_state["stop_after"] = stop_after

    logger.info("Starting pipeline for book %d", book_id)
    config = {"recursion_limit": _RECURSION_LIMIT}
    if callback is not None:
        final_state = await _run_with_callback(app, initial_state, config, callback)
    else:
        final_state = await app.ainvoke(initial_state, config=config)
    logger.info("Pipeline finished for book %d", book_id)
    return final_state


async def _run_with_callback(app, initial_state: dict, config, callback: PipelineCallback) -> dict:
    """Run the pipeline using astream() and emit callbacks per node."""
    accumulated: dict = dict(initial_state)

    async for event in app.astream(initial_state, config=config):
        # Each event is {node_name: state_update_dict}
        for node_name, node_update in event.items():
            if node_name == "__end__":
                continue
            if isinstance(node_update, dict):
                accumulated.update(node_update)

            callback.on_node_exit(node_name, accumulated)
            if isinstance(node_update, dict) and node_update.get("error"):
                callback.on_error(node_name, node_update["error"])

    callback.on_pipeline_complete(accumulated)
    return accumulated
