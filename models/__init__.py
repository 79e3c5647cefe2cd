"""Models package — database, dataclass models, typed contexts, and enums."""

from models.database import Database
from models.book import Book, BookSettings
from models.chapter import Chapter, Section
from models.story_bible import (
    StoryBible,
    ChapterPlan,
    ScenePlan,
    CharacterProfile,
    StoryStructure,
    ResearchData,
    QualityPlan,
)
from models.continuity import (
    CharacterState,
    LocationState,
    TimelineEntry,
    WorldFact,
    PlotThreadState,
    ContinuityState,
    CharacterUpdate,
    ChapterUpdate,
    ConsistencyIssue,
    ConsistencyReport,
)
from models.checkpoint import GenerationCheckpoint, FailedSection
from models.context import SceneContext, ChapterContext, NarrativeVoice
from models.quality import (
    Result,
    QualityIssue,
    SupervisionReview,
    QualityVerdict,
    RevisionTask,
)
from models.enums import (
    BookStatus,
    GenerationStep,
    ChapterStatus,
    SectionStatus,
    SectionType,
    SceneType,
    TransitionType,
    IssueSeverity,
    ConsistencyCategory,
    QualityIssueType,
    QualitySeverity,
    RevisionTriggerType,
    RevisionPriority,
    RevisionStatus,
    RequestPriority,
)

__all__ = [
    "Database",
    "Book",
    "BookSettings",
    "Chapter",
    "Section",
    "StoryBible",
    "ChapterPlan",
    "ScenePlan",
    "CharacterProfile",
    "StoryStructure",
    "ResearchData",
    "QualityPlan",
    "CharacterState",
    "LocationState",
    "TimelineEntry",
    "WorldFact",
    "PlotThreadState",
    "ContinuityState",
    "CharacterUpdate",
    "ChapterUpdate",
    "ConsistencyIssue",
    "ConsistencyReport",
    "GenerationCheckpoint",
    "FailedSection",
    "SceneContext",
    "ChapterContext",
    "NarrativeVoice",
    "Result",
    "QualityIssue",
    "SupervisionReview",
    "QualityVerdict",
    "RevisionTask",
    "BookStatus",
    "GenerationStep",
    "ChapterStatus",
    "SectionStatus",
    "SectionType",
    "SceneType",
    "TransitionType",
    "IssueSeverity",
    "ConsistencyCategory",
    "QualityIssueType",
    "QualitySeverity",
    "RevisionTriggerType",
    "RevisionPriority",
    "RevisionStatus",
    "RequestPriority",
]
