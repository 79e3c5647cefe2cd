"""Chapter and section data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.enums import ChapterStatus, SectionStatus


@dataclass
class Chapter:
    """Represents a single generated chapter."""
    id: Optional[int] = None
    book_id: int = 0
    chapter_number: int = 0
    title: str = ""
    summary: str = ""
    word_target: int = 0
    content: Optional[str] = None
    word_count: int = 0
    status: ChapterStatus = ChapterStatus.PLANNED
    consistency_score: Optional[float] = None
    quality_score: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Section:
    """Smallest generation unit within a chapter."""
    id: Optional[int] = None
    chapter_id: int = 0
    section_number: int = 0
    title: str = ""
    word_target: int = 0
    content: Optional[str] = None
    word_count: int = 0
    status: SectionStatus = SectionStatus.PLANNED
    scene_context: Optional[str] = None  # JSON: SceneContext
    model: Optional[str] = None
    tokens_used: int = 0
    consistency_score: Optional[float] = None
    quality_score: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
