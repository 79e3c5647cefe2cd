"""Generation checkpoint and failed-section records."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

CHECKPOINT_VERSION = "1.0"


@dataclass
class FailedSection:
    """A section whose combined quality score fell below the threshold."""
    book_id: int = 0
    chapter_id: int = 0
    section_number: int = 0
    reason: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    retry_count: int = 0
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "chapter_id": self.chapter_id,
            "section_number": self.section_number,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
            "retry_count": self.retry_count,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FailedSection":
        return cls(
            book_id=data.get("book_id", 0),
            chapter_id=data.get("chapter_id", 0),
            section_number=data.get("section_number", 0),
            reason=data.get("reason", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.now(),
            retry_count=data.get("retry_count", 0),
            metadata=data.get("metadata") or {},
        )


@dataclass
class GenerationCheckpoint:
    """Durable snapshot used to resume a book after a crash."""
    book_id: int = 0
    story_bible: Optional[dict] = None
    quality_plan: Optional[dict] = None
    continuity: Optional[dict] = None
    completed_chapters: list[int] = field(default_factory=list)
    completed_sections: dict[str, list[int]] = field(default_factory=dict)
    failed_sections: list[FailedSection] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)
    version: str = CHECKPOINT_VERSION

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "story_bible": self.story_bible,
            "quality_plan": self.quality_plan,
            "continuity": self.continuity,
            "completed_chapters": sorted(set(self.completed_chapters)),
            "completed_sections": {
                k: sorted(set(v)) for k, v in self.completed_sections.items()
            },
            "failed_sections": [f.to_dict() for f in self.failed_sections],
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GenerationCheckpoint":
        return cls(
            book_id=data.get("book_id", 0),
            story_bible=data.get("story_bible"),
            quality_plan=data.get("quality_plan"),
            continuity=data.get("continuity"),
            completed_chapters=[int(n) for n in data.get("completed_chapters", [])],
            # JSON object keys are strings; chapter ids are kept as strings
            completed_sections={
                str(k): [int(n) for n in v]
                for k, v in (data.get("completed_sections") or {}).items()
            },
            failed_sections=[FailedSection.from_dict(f) for f in data.get("failed_sections", [])],
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.now(),
            version=data.get("version", CHECKPOINT_VERSION),
        )
