"""Custom exception hierarchy for the generation engine."""

from typing import Optional


class NovelEngineError(Exception):
    """Base exception for all generation engine errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- LLM Errors ----

class LLMError(NovelEngineError):
    """Base exception for text-completion failures."""


class LLMRateLimitError(LLMError):
    """Completion service rate limit exceeded."""

    def __init__(self, message: str = "API rate limit exceeded", retry_after: Optional[float] = None):
        details = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, details)
        self.retry_after = retry_after


class LLMTimeoutError(LLMError):
    """Completion request timed out."""


class LLMResponseParseError(LLMError):
    """Failed to parse a structured completion response."""

    def __init__(self, message: str = "Failed to parse LLM response", raw_response: str = ""):
        details = {"raw_response": raw_response[:200]} if raw_response else {}
        super().__init__(message, details)
        self.raw_response = raw_response


# ---- Storage Errors ----

class DatabaseError(NovelEngineError):
    """Database operation failed."""


class CheckpointError(NovelEngineError):
    """Checkpoint could not be read or written."""


# ---- Rate limiter Errors ----

class RateLimitError(NovelEngineError):
    """Base exception for local rate-limiter failures."""


class RateLimitQueueClearedError(RateLimitError):
    """A queued permission request was rejected because the queue was cleared."""

    def __init__(self, model: str):
        super().__init__("Rate limiter queue cleared", {"model": model})
        self.model = model


# ---- Workflow Errors ----

class WorkflowError(NovelEngineError):
    """Base exception for generation orchestration errors."""


class WorkflowStateError(WorkflowError):
    """Invalid or missing workflow state."""


class BookNotFoundError(WorkflowError):
    """The requested book does not exist."""

    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} not found", {"book_id": book_id})
        self.book_id = book_id


class ChapterNotFoundError(WorkflowError):
    """The requested chapter does not exist."""

    def __init__(self, chapter_id: int):
        super().__init__(f"Chapter {chapter_id} not found", {"chapter_id": chapter_id})
        self.chapter_id = chapter_id


class BookLockedError(WorkflowError):
    """Another generation job holds the lease for this book."""

    def __init__(self, book_id: int, owner: str = ""):
        details = {"book_id": book_id}
        if owner:
            details["owner"] = owner
        super().__init__(f"Book {book_id} is already being generated", details)
        self.book_id = book_id
        self.owner = owner


# ---- Validation Errors ----

class ValidationError(NovelEngineError):
    """Input validation failed."""


class ContextValidationError(ValidationError):
    """A stage payload failed validation when crossing a stage boundary."""

    def __init__(self, payload_type: str, reason: str):
        super().__init__(f"Invalid {payload_type}: {reason}", {"payload": payload_type})
        self.payload_type = payload_type


class InvalidConfigError(ValidationError):
    """Configuration value is invalid."""
