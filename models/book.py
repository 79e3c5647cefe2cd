"""Book data model."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional

from models.enums import BookStatus, GenerationStep


@dataclass
class BookSettings:
    """Creative settings chosen by the author when the book is created."""
    genre: str = "default"
    tone: str = "balanced"
    audience: str = "adult"
    target_word_count: int = 50000
    point_of_view: str = "third person limited"
    tense: str = "past"
    character_names: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "BookSettings":
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class Book:
    """Represents a book and its generation state."""
    id: Optional[int] = None
    title: str = ""
    prompt: str = ""
    settings: BookSettings = field(default_factory=BookSettings)
    tier: str = "free"
    status: BookStatus = BookStatus.PLANNING
    generation_step: GenerationStep = GenerationStep.PROMPT
    back_cover: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def target_word_count(self) -> int:
        return self.settings.target_word_count
