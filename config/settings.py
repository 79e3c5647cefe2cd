"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


def _default_rate_limits() -> dict[str, dict[str, int]]:
    return {
        "claude-opus-4-6": {"requests_per_minute": 60, "tokens_per_minute": 30000},
        "claude-sonnet-4-6": {"requests_per_minute": 100, "tokens_per_minute": 60000},
        "claude-haiku-4-5": {"requests_per_minute": 120, "tokens_per_minute": 90000},
    }


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Authentication for the completion service is handled by the Claude
    Agent SDK. Everything here tunes the generation pipeline: which model
    serves each agent role, where state is persisted, and the thresholds
    used by the quality gate and the revision backlog.
    """

    # LLM models, one per agent role
    llm_model_planning: str = "claude-opus-4-6"         # PlannerAgent
    llm_model_writing: str = "claude-sonnet-4-6"        # SectionGenerator
    llm_model_research: str = "claude-haiku-4-5"        # ResearchAgent
    llm_model_chief_editor: str = "claude-opus-4-6"     # ChiefEditorAgent
    llm_model_continuity: str = "claude-sonnet-4-6"     # ContinuityStore checks
    llm_model_supervision: str = "claude-sonnet-4-6"    # SupervisionAgent
    llm_model_proofreading: str = "claude-haiku-4-5"    # ProofreaderAgent
    llm_model_quality_enhancer: str = "claude-opus-4-6" # QualityEnhancerAgent

    # Storage
    sqlite_db_path: Path = Path("./data/books.db")
    checkpoint_dir: Path = Path("./data/checkpoints")
    checkpoint_retention_days: int = 30
    lease_ttl_seconds: int = 3600

    # Progress
    progress_throttle_ms: int = 1000

    # Quality gate
    quality_failure_threshold: int = 60
    proofread_consistency_threshold: int = 80

    # Revision backlog
    revision_quality_threshold: int = 65
    revision_pacing_threshold: int = 60
    revision_max_attempts: int = 8
    revision_critical_bonus: int = 3
    revision_window_hours: float = 2.0
    revision_dedupe_minutes: float = 10.0
    arc_check_interval: int = 3

    # Rate limiting (per model, per minute)
    rate_limits: dict[str, dict[str, int]] = _default_rate_limits()

    # Subscription tier applied when a book does not carry one
    default_tier: str = "free"

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator(
        "quality_failure_threshold",
        "proofread_consistency_threshold",
        "revision_quality_threshold",
        "revision_pacing_threshold",
    )
    @classmethod
    def validate_score_threshold(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("Score thresholds must be between 0 and 100")
        return v

    @field_validator("revision_max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("revision_max_attempts must be >= 1")
        return v

    @field_validator("arc_check_interval", "checkpoint_retention_days", "lease_ttl_seconds")
    @classmethod
    def validate_positive_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Intervals must be >= 1")
        return v

    @field_validator("progress_throttle_ms", "revision_critical_bonus")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value must be non-negative")
        return v

    @field_validator("rate_limits")
    @classmethod
    def validate_rate_limits(cls, v: dict) -> dict:
        for model, limits in v.items():
            for key in ("requests_per_minute", "tokens_per_minute"):
                if limits.get(key, 0) < 1:
                    raise ValueError(f"rate_limits[{model}].{key} must be >= 1")
        return v

    @field_validator("default_tier")
    @classmethod
    def validate_default_tier(cls, v: str) -> str:
        v = v.lower()
        if v not in ("free", "basic", "premium"):
            raise ValueError("default_tier must be one of free, basic, premium")
        return v

    @field_validator("sqlite_db_path", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @model_validator(mode="after")
    def validate_revision_window(self) -> "Settings":
        if self.revision_dedupe_minutes * 60 > self.revision_window_hours * 3600:
            raise ValueError(
                f"revision_dedupe_minutes ({self.revision_dedupe_minutes}) must fit inside "
                f"revision_window_hours ({self.revision_window_hours})"
            )
        return self


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
