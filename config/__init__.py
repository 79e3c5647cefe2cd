"""Configuration package — settings, tiers, logging, and exceptions."""

from config.exceptions import (
    NovelEngineError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMResponseParseError,
    DatabaseError,
    CheckpointError,
    RateLimitError,
    RateLimitQueueClearedError,
    WorkflowError,
    WorkflowStateError,
    BookNotFoundError,
    ChapterNotFoundError,
    BookLockedError,
    ValidationError,
    ContextValidationError,
    InvalidConfigError,
)
from config.logging_config import setup_logging
from config.settings import Settings, get_settings
from config.tiers import FeatureAccess, SubscriptionTier, get_feature_access

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "FeatureAccess",
    "SubscriptionTier",
    "get_feature_access",
    "NovelEngineError",
    "LLMError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMResponseParseError",
    "DatabaseError",
    "CheckpointError",
    "RateLimitError",
    "RateLimitQueueClearedError",
    "WorkflowError",
    "WorkflowStateError",
    "BookNotFoundError",
    "ChapterNotFoundError",
    "BookLockedError",
    "ValidationError",
    "ContextValidationError",
    "InvalidConfigError",
]
