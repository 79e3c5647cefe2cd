"""Conditional routing functions for the LangGraph pipeline."""

from workflow.state import PipelineState


def route_after_init(state: PipelineState) -> str:
    """Route after initialization to the first stage that still has work."""
    if state.get("error"):
        return "handle_error"
    return state.get("start_at", "back_cover")


def route_after_back_cover(state: PipelineState) -> str:
    if state.get("error"):
        return "handle_error"
    if state.get("stop_after") == "back_cover":
        return "__end__"
    return "outline"


def route_after_outline(state: PipelineState) -> str:
    if state.get("error"):
        return "handle_error"
    if state.get("stop_after") == "outline":
        return "__end__"
    return "chapters"


def route_after_chapters(state: PipelineState) -> str:
    """Supervision only runs once every chapter is complete."""
    if state.get("error"):
        return "handle_error"
    if state.get("all_chapters_complete", False):
        return "supervision"
    return "__end__"
