"""LangGraph pipeline state definition."""

from typing import Optional, TypedDict


class PipelineState(TypedDict, total=False):
    """State shared by the pipeline nodes.

    Fields are grouped logically:
    - Identity: book_id
    - Inputs: prompt, book_settings, max_chapters, stop_after
    - Routing: start_at
    - Results: back_cover, chapter_count, chapters_written, chapters_failed,
      all_chapters_complete, completed
    - Control: error, should_stop, last_node
    """

    # Identity
    book_id: int

    # Inputs
    prompt: str
    book_settings: dict       # BookSettings.to_dict(); book's own settings when absent
    max_chapters: Optional[int]
    stop_after: str           # "back_cover" or "outline" to stop early

    # Routing
    start_at: str             # First stage to run, decided by initialize

    # Results
    back_cover: str
    chapter_count: int
    chapters_written: list
    chapters_failed: list
    all_chapters_complete: bool
    completed: bool

    # Control flow
    error: str
    should_stop: bool
    last_node: str
