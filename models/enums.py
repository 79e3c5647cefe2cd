"""Enumerations for book generation status tracking."""

from enum import Enum


class BookStatus(str, Enum):
    PLANNING = "planning"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


class GenerationStep(str, Enum):
    PROMPT = "prompt"
    BACK_COVER = "back_cover"
    OUTLINE = "outline"
    CHAPTERS = "chapters"
    SUPERVISION = "supervision"
    COMPLETE = "complete"
    ERROR = "error"


class ChapterStatus(str, Enum):
    PLANNED = "planned"
    GENERATING = "generating"
    COMPLETE = "complete"
    NEEDS_REVISION = "needs_revision"


class SectionStatus(str, Enum):
    PLANNED = "planned"
    GENERATING = "generating"
    COMPLETE = "complete"
    NEEDS_REVISION = "needs_revision"


class SectionType(str, Enum):
    OPENING = "opening"
    DEVELOPMENT = "development"
    BRIDGE = "bridge"


class SceneType(str, Enum):
    ACTION = "action"
    DIALOGUE = "dialogue"
    EMOTION = "emotion"
    DESCRIPTION = "description"


class TransitionType(str, Enum):
    SCENE_BREAK = "scene-break"
    BRIDGE_PARAGRAPH = "bridge-paragraph"
    TIME_JUMP = "time-jump"
    PERSPECTIVE_SHIFT = "perspective-shift"
    EMOTIONAL_BRIDGE = "emotional-bridge"


class IssueSeverity(str, Enum):
    """Consistency issue severity (continuity checks)."""
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class ConsistencyCategory(str, Enum):
    CHARACTER = "character"
    TIMELINE = "timeline"
    WORLDBUILDING = "worldbuilding"
    RESEARCH = "research"


class QualityIssueType(str, Enum):
    LOW_EMOTION = "low-emotion"
    BROKEN_PACING = "broken-pacing"
    INCOMPLETE_ARC = "incomplete-arc"
    CONSISTENCY = "consistency"
    QUALITY = "quality"


class QualitySeverity(str, Enum):
    """Supervision issue severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RevisionTriggerType(str, Enum):
    QUALITY_THRESHOLD = "quality_threshold"
    CRITICAL_ISSUE = "critical_issue"
    PACING = "pacing"
    ARC_STAGNATION = "arc_stagnation"


class RevisionPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RevisionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class RequestPriority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"
