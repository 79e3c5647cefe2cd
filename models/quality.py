"""Supervision review, quality verdict and revision backlog models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, Optional, TypeVar

from models.enums import (
    QualityIssueType, QualitySeverity, RevisionPriority, RevisionStatus,
    RevisionTriggerType,
)

T = TypeVar("T")
E = TypeVar("E", bound=Exception)


@dataclass(frozen=True)
class Result(Generic[T, E]):
    """Either a value or the error that prevented computing it."""
    value: Optional[T] = None
    error: Optional[E] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T, E]":
        return cls(value=value)

    @classmethod
    def err(cls, error: E) -> "Result[T, E]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.error is None else default


@dataclass
class QualityIssue:
    type: QualityIssueType = QualityIssueType.QUALITY
    severity: QualitySeverity = QualitySeverity.LOW
    description: str = ""
    suggestion: str = ""


@dataclass
class SupervisionReview:
    chapter_number: int = 0
    chapter_title: str = ""
    overall_score: int = 0
    emotional_score: int = 0
    pacing_score: int = 0
    arc_score: int = 0
    issues: list[QualityIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    flagged: bool = False
    summary: str = ""

    @property
    def has_critical_issue(self) -> bool:
        return any(i.severity == QualitySeverity.CRITICAL for i in self.issues)


@dataclass
class QualityVerdict:
    """Outcome of running the quality gate over one generated section."""
    content: str = ""
    consistency_score: int = 100
    supervision_score: int = 75
    overall_score: int = 0
    flagged: bool = False
    proofread: bool = False
    review: Optional[SupervisionReview] = None


@dataclass
class RevisionTask:
    """Advisory revision request queued by a supervision trigger."""
    id: str = ""
    book_id: int = 0
    chapter_number: int = 0
    trigger: RevisionTriggerType = RevisionTriggerType.QUALITY_THRESHOLD
    priority: RevisionPriority = RevisionPriority.MEDIUM
    estimated_effort: str = "moderate"
    reason: str = ""
    occurrences: int = 1
    status: RevisionStatus = RevisionStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    last_triggered_at: datetime = field(default_factory=datetime.now)
