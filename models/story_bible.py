"""Story bible data model: the structured plan produced once per book."""

from dataclasses import dataclass, field, asdict
from typing import Optional


@dataclass
class ScenePlan:
    """A scene proposed for a chapter by the planner."""
    purpose: str = ""
    setting: str = ""
    characters: list[str] = field(default_factory=list)
    conflict: str = ""
    outcome: str = ""
    mood: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ScenePlan":
        return cls(
            purpose=str(data.get("purpose", "")),
            setting=str(data.get("setting", "")),
            characters=[str(c) for c in data.get("characters", []) or []],
            conflict=str(data.get("conflict", "")),
            outcome=str(data.get("outcome", "")),
            mood=str(data.get("mood", "")),
        )


@dataclass
class ChapterPlan:
    """Chapter-level plan inside the story bible."""
    number: int = 0
    title: str = ""
    purpose: str = ""
    word_count_target: int = 0
    scenes: list[ScenePlan] = field(default_factory=list)
    character_arcs: list[str] = field(default_factory=list)
    plot_threads: list[str] = field(default_factory=list)
    research_focus: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ChapterPlan":
        return cls(
            number=int(data.get("number", 0) or 0),
            title=str(data.get("title", "")),
            purpose=str(data.get("purpose", "")),
            word_count_target=int(data.get("word_count_target", 0) or 0),
            scenes=[ScenePlan.from_dict(s) for s in data.get("scenes", []) or [] if isinstance(s, dict)],
            character_arcs=[str(a) for a in data.get("character_arcs", []) or []],
            plot_threads=[str(t) for t in data.get("plot_threads", []) or []],
            research_focus=[str(r) for r in data.get("research_focus", []) or []],
        )


@dataclass
class CharacterProfile:
    name: str = ""
    role: str = "supporting"
    description: str = ""
    motivation: str = ""
    arc: str = ""
    relationships: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "CharacterProfile":
        relationships = data.get("relationships") or {}
        return cls(
            name=str(data.get("name", "")),
            role=str(data.get("role", "supporting")),
            description=str(data.get("description", "")),
            motivation=str(data.get("motivation", "")),
            arc=str(data.get("arc", "")),
            relationships={str(k): str(v) for k, v in relationships.items()}
            if isinstance(relationships, dict) else {},
        )


@dataclass
class StoryStructure:
    """Act layout and climax placement."""
    acts: list[str] = field(default_factory=list)
    climax_chapter: int = 0
    notes: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "StoryStructure":
        return cls(
            acts=[str(a) for a in data.get("acts", []) or []],
            climax_chapter=int(data.get("climax_chapter", 0) or 0),
            notes=str(data.get("notes", "")),
        )


@dataclass
class StoryBible:
    """Structured plan for a whole book."""
    premise: str = ""
    theme: str = ""
    tone: str = ""
    characters: list[CharacterProfile] = field(default_factory=list)
    world_rules: list[str] = field(default_factory=list)
    structure: StoryStructure = field(default_factory=StoryStructure)
    chapters: list[ChapterPlan] = field(default_factory=list)
    plot_threads: list[str] = field(default_factory=list)
    timeline: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "StoryBible":
        data = data or {}
        overview = data.get("overview") or {}
        return cls(
            premise=str(data.get("premise") or overview.get("premise", "")),
            theme=str(data.get("theme") or overview.get("theme", "")),
            tone=str(data.get("tone") or overview.get("tone", "")),
            characters=[
                CharacterProfile.from_dict(c) for c in data.get("characters", []) or []
                if isinstance(c, dict)
            ],
            world_rules=[str(r) for r in data.get("world_rules", []) or []],
            structure=StoryStructure.from_dict(data.get("structure") or {}),
            chapters=[
                ChapterPlan.from_dict(c) for c in data.get("chapters", []) or []
                if isinstance(c, dict)
            ],
            plot_threads=[str(t) for t in data.get("plot_threads", []) or []],
            timeline=[str(t) for t in data.get("timeline", []) or []],
        )


@dataclass
class ResearchData:
    """Background research feeding the story bible (empty for the free tier)."""
    domain_knowledge: list[str] = field(default_factory=list)
    character_backgrounds: list[str] = field(default_factory=list)
    setting_details: list[str] = field(default_factory=list)
    technical_aspects: list[str] = field(default_factory=list)
    cultural_context: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    def is_empty(self) -> bool:
        return not any(self.to_dict().values())

    def all_facts(self) -> list[str]:
        facts = []
        for values in self.to_dict().values():
            facts.extend(values)
        return facts

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ResearchData":
        data = data or {}
        return cls(**{
            name: [str(v) for v in data.get(name, []) or []]
            for name in cls.__dataclass_fields__
        })


@dataclass
class QualityPlan:
    """Quality enhancement plan: voice, pacing beats, foreshadowing, subtext."""
    narrative_voice: str = ""
    emotional_pacing: list[dict] = field(default_factory=list)   # {chapter, section?, beat}
    foreshadowing: list[dict] = field(default_factory=list)      # {plant_chapter, payoff_chapter, element}
    subtext_layers: list[dict] = field(default_factory=list)     # {chapter, themes}

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "QualityPlan":
        data = data or {}
        return cls(
            narrative_voice=str(data.get("narrative_voice", "")),
            emotional_pacing=[b for b in data.get("emotional_pacing", []) or [] if isinstance(b, dict)],
            foreshadowing=[f for f in data.get("foreshadowing", []) or [] if isinstance(f, dict)],
            subtext_layers=[s for s in data.get("subtext_layers", []) or [] if isinstance(s, dict)],
        )

    def beat_for(self, chapter_number: int, section_number: int) -> Optional[str]:
        exact = [
            b for b in self.emotional_pacing
            if b.get("chapter") == chapter_number and b.get("section") == section_number
        ]
        loose = [b for b in self.emotional_pacing if b.get("chapter") == chapter_number]
        match = (exact or loose or [None])[0]
        return match.get("beat") if match else None

    def themes_for(self, chapter_number: int) -> list[str]:
        for layer in self.subtext_layers:
            if layer.get("chapter") == chapter_number:
                return [str(t) for t in layer.get("themes", [])]
        return []
