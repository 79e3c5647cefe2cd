"""Tests for Settings validation and tier capability lookup."""

import pytest
from pydantic import ValidationError


def _paths(tmp_path) -> dict:
    return {
        "sqlite_db_path": tmp_path / "books.db",
        "checkpoint_dir": tmp_path / "checkpoints",
        "log_dir": tmp_path / "logs",
    }


class TestSettingsDefaults:
    def test_quality_thresholds(self, settings):
        assert settings.quality_failure_threshold == 60
        assert settings.proofread_consistency_threshold == 80

    def test_revision_backlog_defaults(self, settings):
        assert settings.revision_quality_threshold == 65
        assert settings.revision_pacing_threshold == 60
        assert settings.revision_max_attempts == 8
        assert settings.revision_critical_bonus == 3
        assert settings.arc_check_interval == 3

    def test_default_model_names(self, tmp_path):
        from config.settings import Settings
        # Use _env_file=None to test code defaults without .env overrides
        s = Settings(_env_file=None, **_paths(tmp_path))
        assert s.llm_model_writing == "claude-sonnet-4-6"
        assert s.llm_model_planning == "claude-opus-4-6"
        assert s.default_tier == "free"
        assert s.progress_throttle_ms == 1000

    def test_db_parent_dir_created(self, tmp_path):
        from config.settings import Settings
        Settings(
            _env_file=None,
            sqlite_db_path=tmp_path / "nested" / "books.db",
            checkpoint_dir=tmp_path / "checkpoints",
            log_dir=tmp_path / "logs",
        )
        assert (tmp_path / "nested").is_dir()


class TestSettingsValidation:
    def test_threshold_above_100_raises(self, tmp_path):
        from config.settings import Settings
        with pytest.raises(ValidationError, match="between 0 and 100"):
            Settings(_env_file=None, quality_failure_threshold=120, **_paths(tmp_path))

    def test_max_attempts_zero_raises(self, tmp_path):
        from config.settings import Settings
        with pytest.raises(ValidationError, match="revision_max_attempts"):
            Settings(_env_file=None, revision_max_attempts=0, **_paths(tmp_path))

    def test_zero_rate_limit_raises(self, tmp_path):
        from config.settings import Settings
        with pytest.raises(ValidationError, match="requests_per_minute"):
            Settings(
                _env_file=None,
                rate_limits={"m": {"requests_per_minute": 0, "tokens_per_minute": 10}},
                **_paths(tmp_path),
            )

    def test_unknown_tier_raises(self, tmp_path):
        from config.settings import Settings
        with pytest.raises(ValidationError, match="default_tier"):
            Settings(_env_file=None, default_tier="gold", **_paths(tmp_path))

    def test_tier_is_lowercased(self, tmp_path):
        from config.settings import Settings
        s = Settings(_env_file=None, default_tier="PREMIUM", **_paths(tmp_path))
        assert s.default_tier == "premium"

    def test_dedupe_window_must_fit(self, tmp_path):
        from config.settings import Settings
        with pytest.raises(ValidationError, match="revision_dedupe_minutes"):
            Settings(
                _env_file=None, revision_dedupe_minutes=200, revision_window_hours=1,
                **_paths(tmp_path),
            )


class TestTiers:
    def test_free_tier_has_no_gated_features(self):
        from config.tiers import get_feature_access
        assert get_feature_access("free").enabled_features() == frozenset()

    def test_basic_tier_adds_proofreading(self):
        from config.tiers import FEATURE_PROOFREADING, get_feature_access
        assert get_feature_access("basic").enabled_features() == {FEATURE_PROOFREADING}

    def test_premium_tier_has_everything(self):
        from config.tiers import (
            FEATURE_CHIEF_EDITOR, FEATURE_CONTINUITY, FEATURE_PROOFREADING,
            FEATURE_QUALITY_ENHANCEMENT, FEATURE_RESEARCH, FEATURE_SECTION_TRANSITIONS,
            FEATURE_SUPERVISION, SubscriptionTier, get_feature_access,
        )
        access = get_feature_access(SubscriptionTier.PREMIUM)
        assert access.enabled_features() == {
            FEATURE_RESEARCH, FEATURE_CHIEF_EDITOR, FEATURE_CONTINUITY,
            FEATURE_QUALITY_ENHANCEMENT, FEATURE_SUPERVISION, FEATURE_PROOFREADING,
            FEATURE_SECTION_TRANSITIONS,
        }

    def test_unknown_tier_falls_back_to_free(self):
        from config.tiers import get_feature_access
        assert get_feature_access("platinum") == get_feature_access("free")

    def test_tier_lookup_is_case_insensitive(self):
        from config.tiers import FEATURE_RESEARCH, get_feature_access
        assert get_feature_access("Premium").has(FEATURE_RESEARCH)


class TestSetupLogging:
    def test_creates_log_files_without_stacking_handlers(self, tmp_path):
        import logging
        from config.logging_config import setup_logging
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        component = logging.getLogger("tools.completion_client")
        try:
            setup_logging(level=logging.DEBUG, log_dir=tmp_path / "logs", console_enabled=False)
            setup_logging(level=logging.DEBUG, log_dir=tmp_path / "logs", console_enabled=False)

            assert len(root.handlers) == 1
            assert len(component.handlers) == 1
            component.debug("completion sent")
            for handler in root.handlers + component.handlers:
                handler.flush()
            assert "completion sent" in (tmp_path / "logs" / "llm_calls.log").read_text()
            assert (tmp_path / "logs" / "novelforge.log").exists()
        finally:
            for handler in root.handlers + component.handlers:
                handler.close()
            component.handlers.clear()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
