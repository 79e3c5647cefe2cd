"""Continuity tracker state and consistency report models."""

from dataclasses import dataclass, field, asdict
from typing import Optional

from models.enums import ConsistencyCategory, IssueSeverity


@dataclass
class CharacterState:
    name: str = ""
    current_location: str = "unknown"
    physical_state: str = "unknown"
    emotional_state: str = "neutral"
    knowledge_state: str = ""
    last_seen_chapter: int = 0
    relationships: dict[str, str] = field(default_factory=dict)


@dataclass
class LocationState:
    name: str = ""
    description: str = ""
    importance: str = "minor"


@dataclass
class TimelineEntry:
    chapter: int = 0
    description: str = ""
    duration: Optional[str] = None
    absolute_time: Optional[str] = None


@dataclass
class WorldFact:
    element: str = ""
    description: str = ""
    chapters: list[int] = field(default_factory=list)


@dataclass
class PlotThreadState:
    name: str = ""
    status: str = "active"
    chapters: list[int] = field(default_factory=list)


@dataclass
class ContinuityState:
    """Whole tracker, serialisable into a checkpoint."""
    characters: list[CharacterState] = field(default_factory=list)
    locations: list[LocationState] = field(default_factory=list)
    timeline: list[TimelineEntry] = field(default_factory=list)
    world_facts: list[WorldFact] = field(default_factory=list)
    plot_threads: list[PlotThreadState] = field(default_factory=list)
    research_references: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ContinuityState":
        data = data or {}
        return cls(
            characters=[CharacterState(**c) for c in data.get("characters", [])],
            locations=[LocationState(**l) for l in data.get("locations", [])],
            timeline=[TimelineEntry(**t) for t in data.get("timeline", [])],
            world_facts=[WorldFact(**w) for w in data.get("world_facts", [])],
            plot_threads=[PlotThreadState(**p) for p in data.get("plot_threads", [])],
            research_references=list(data.get("research_references", [])),
        )


@dataclass
class CharacterUpdate:
    """Fields left as None are not touched when the update is applied."""
    name: str = ""
    current_location: Optional[str] = None
    physical_state: Optional[str] = None
    emotional_state: Optional[str] = None
    knowledge_state: Optional[str] = None
    relationships: dict[str, str] = field(default_factory=dict)


@dataclass
class ChapterUpdate:
    characters: list[CharacterUpdate] = field(default_factory=list)
    timeline: list[TimelineEntry] = field(default_factory=list)
    world_facts: list[WorldFact] = field(default_factory=list)
    plot_threads: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.characters or self.timeline or self.world_facts or self.plot_threads)


@dataclass
class ConsistencyIssue:
    category: ConsistencyCategory = ConsistencyCategory.CHARACTER
    severity: IssueSeverity = IssueSeverity.MINOR
    description: str = ""
    suggestion: str = ""


@dataclass
class ConsistencyReport:
    overall_score: float = 100.0
    category_scores: dict[str, float] = field(default_factory=dict)
    issues: list[ConsistencyIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
