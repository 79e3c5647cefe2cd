"""Subscription tier capability lookup.

Tier pricing lives elsewhere; the engine only asks which pipeline stages a
tier may use and falls back to the simpler path when a stage is disabled.
"""

from dataclasses import dataclass, field
from enum import Enum


class SubscriptionTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"


# Pipeline features consulted before invoking a gated agent
FEATURE_RESEARCH = "research"
FEATURE_CHIEF_EDITOR = "chief_editor"
FEATURE_CONTINUITY = "continuity"
FEATURE_QUALITY_ENHANCEMENT = "quality_enhancement"
FEATURE_SUPERVISION = "supervision"
FEATURE_PROOFREADING = "proofreading"
FEATURE_SECTION_TRANSITIONS = "section_transitions"

_AGENT_FEATURES = {
    "research_agent": FEATURE_RESEARCH,
    "chief_editor_agent": FEATURE_CHIEF_EDITOR,
    "continuity_agent": FEATURE_CONTINUITY,
    "quality_enhancer_agent": FEATURE_QUALITY_ENHANCEMENT,
    "supervision_agent": FEATURE_SUPERVISION,
    "proofreader_agent": FEATURE_PROOFREADING,
    "section_transition_agent": FEATURE_SECTION_TRANSITIONS,
}


@dataclass(frozen=True)
class FeatureAccess:
    """Capability set for one subscription tier."""
    ai_agents: dict[str, bool] = field(default_factory=dict)
    models: dict[str, bool] = field(default_factory=dict)
    limits: dict[str, int] = field(default_factory=dict)

    def enabled_features(self) -> frozenset[str]:
        return frozenset(
            feature for agent, feature in _AGENT_FEATURES.items()
            if self.ai_agents.get(agent, False)
        )

    def has(self, feature: str) -> bool:
        return feature in self.enabled_features()


_TIER_ACCESS: dict[SubscriptionTier, FeatureAccess] = {
    SubscriptionTier.FREE: FeatureAccess(
        ai_agents={
            "planning_agent": True,
            "writing_agent": True,
            "research_agent": False,
            "chief_editor_agent": False,
            "continuity_agent": False,
            "supervision_agent": False,
            "proofreader_agent": False,
            "quality_enhancer_agent": False,
            "section_transition_agent": False,
        },
        models={"premium": False, "standard": True, "fast": True},
        limits={"books_per_month": 3, "words_per_month": 150000, "max_words_per_book": 50000},
    ),
    SubscriptionTier.BASIC: FeatureAccess(
        ai_agents={
            "planning_agent": True,
            "writing_agent": True,
            "research_agent": False,
            "chief_editor_agent": False,
            "continuity_agent": False,
            "supervision_agent": False,
            "proofreader_agent": True,
            "quality_enhancer_agent": False,
            "section_transition_agent": False,
        },
        models={"premium": False, "standard": True, "fast": True},
        limits={"books_per_month": 10, "words_per_month": 750000, "max_words_per_book": 75000},
    ),
    SubscriptionTier.PREMIUM: FeatureAccess(
        ai_agents={
            "planning_agent": True,
            "writing_agent": True,
            "research_agent": True,
            "chief_editor_agent": True,
            "continuity_agent": True,
            "supervision_agent": True,
            "proofreader_agent": True,
            "quality_enhancer_agent": True,
            "section_transition_agent": True,
        },
        models={"premium": True, "standard": True, "fast": True},
        limits={"books_per_month": 25, "words_per_month": 5000000, "max_words_per_book": 200000},
    ),
}


def get_feature_access(tier: SubscriptionTier | str) -> FeatureAccess:
    """Return the capability set for a tier (unknown tiers get FREE)."""
    if not isinstance(tier, SubscriptionTier):
        tier = str(tier).lower()
    try:
        tier = SubscriptionTier(tier)
    except ValueError:
        tier = SubscriptionTier.FREE
    return _TIER_ACCESS[tier]
