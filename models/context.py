"""Typed payloads handed from the planning stage to the generation stage.

Scene and chapter contexts are validated whenever they cross a stage
boundary: when a section row is created from the story bible, and when the
chapter orchestrator reads that row back before writing.
"""

from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from config.exceptions import ContextValidationError
from models.enums import SceneType, SectionType, TransitionType


class SceneContext(BaseModel):
    """Everything the section writer needs to know about one scene."""
    section_number: int = Field(ge=1)
    total_sections: int = Field(ge=1)
    section_type: SectionType = SectionType.DEVELOPMENT
    scene_type: SceneType = SceneType.DESCRIPTION
    purpose: str = ""
    setting: str = "Story setting"
    characters: list[str] = Field(default_factory=lambda: ["Protagonist"])
    conflict: str = "Character faces challenges"
    outcome: str = "Scene advances the story"
    mood: str = ""
    word_target: int = Field(ge=1)
    transition_in: TransitionType = TransitionType.BRIDGE_PARAGRAPH
    research_focus: list[str] = Field(default_factory=list)
    emotional_beat: Optional[str] = None
    themes: list[str] = Field(default_factory=list)

    @field_validator("characters")
    @classmethod
    def non_empty_characters(cls, v: list[str]) -> list[str]:
        cleaned = [c.strip() for c in v if c and c.strip()]
        return cleaned or ["Protagonist"]

    @classmethod
    def parse_stored(cls, raw: Optional[str]) -> "SceneContext":
        """Validate a serialized scene context read back from storage."""
        if not raw:
            raise ContextValidationError("SceneContext", "missing payload")
        try:
            return cls.model_validate_json(raw)
        except PydanticValidationError as e:
            raise ContextValidationError("SceneContext", str(e)) from e


class ChapterContext(BaseModel):
    """Book- and chapter-level context shared by every section of a chapter."""
    book_id: int
    book_title: str = ""
    book_prompt: str = ""
    back_cover: str = ""
    genre: str = "default"
    tone: str = ""
    audience: str = ""
    point_of_view: str = "third person limited"
    tense: str = "past"
    character_names: list[str] = Field(default_factory=list)
    chapter_id: int
    chapter_number: int = Field(ge=1)
    total_chapters: int = Field(ge=1)
    chapter_title: str = ""
    chapter_summary: str = ""
    research_focus: list[str] = Field(default_factory=list)

    @field_validator("total_chapters")
    @classmethod
    def total_covers_number(cls, v: int, info) -> int:
        number = info.data.get("chapter_number")
        if number is not None and number > v:
            raise ValueError(f"chapter_number {number} exceeds total_chapters {v}")
        return v

    @classmethod
    def build(cls, **fields) -> "ChapterContext":
        try:
            return cls(**fields)
        except PydanticValidationError as e:
            raise ContextValidationError("ChapterContext", str(e)) from e


class NarrativeVoice(BaseModel):
    """Narrative voice held fixed for the whole book once extracted."""
    perspective: str = "third person limited"
    tense: str = "past"
    tone: str = "balanced"
    sample: str = ""
