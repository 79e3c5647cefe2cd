"""Tests for the per-section quality gate."""

import pytest
from unittest.mock import AsyncMock, MagicMock

FLAT_TEXT = "word " * 100


def _section():
    from workflow.quality_gate import SectionUnderReview
    return SectionUnderReview(
        book_id=1, chapter_id=10, chapter_number=1, section_number=2,
        chapter_title="Tide 1", purpose="Open the door", research_focus=["tides"],
    )


def _access(*agents):
    from config.tiers import FeatureAccess
    return FeatureAccess(ai_agents={agent: True for agent in agents})


def _continuity(score):
    from models.continuity import ConsistencyReport
    continuity = MagicMock()
    continuity.check_chapter_consistency = AsyncMock(return_value=ConsistencyReport(overall_score=score))
    return continuity


def _supervision(result):
    supervision = MagicMock()
    supervision.score_section = AsyncMock(return_value=result)
    return supervision


@pytest.fixture
def store(tmp_path):
    from workflow.checkpoint import CheckpointStore
    store = CheckpointStore(tmp_path / "checkpoints")
    store.save(1, store.create(1))
    return store


class TestQualityGate:
    @pytest.mark.asyncio
    async def test_free_tier_uses_rule_based_review_only(self, mock_llm, settings, store):
        from agents.supervision_agent import SupervisionAgent
        from config.tiers import get_feature_access
        from workflow.quality_gate import QualityGate
        gate = QualityGate(settings, store, SupervisionAgent(mock_llm, settings), continuity=_continuity(10))

        verdict = await gate.evaluate(_section(), FLAT_TEXT, get_feature_access("free"))

        assert verdict.consistency_score == 100
        assert verdict.supervision_score == 58
        assert verdict.overall_score == 79
        assert not verdict.flagged
        assert verdict.content == FLAT_TEXT
        mock_llm.complete.assert_not_awaited()
        assert store.load(1).failed_sections == []

    @pytest.mark.asyncio
    async def test_low_score_recorded_as_failed_section(self, settings, store):
        from models.quality import Result, SupervisionReview
        from workflow.quality_gate import QualityGate
        gate = QualityGate(
            settings, store,
            _supervision(Result.ok(SupervisionReview(overall_score=30))),
            continuity=_continuity(20),
        )

        verdict = await gate.evaluate(
            _section(), "text", _access("continuity_agent", "supervision_agent"),
        )

        assert verdict.overall_score == 25
        assert verdict.flagged
        failed = store.load(1).failed_sections
        assert len(failed) == 1
        assert failed[0].chapter_id == 10
        assert failed[0].section_number == 2
        assert failed[0].reason == "Low quality score: 25/100"
        assert failed[0].metadata == {"consistency_score": 20, "quality_score": 25}

    @pytest.mark.asyncio
    async def test_supervision_failure_uses_neutral_score(self, settings, store):
        from config.exceptions import LLMError
        from models.quality import Result
        from workflow.quality_gate import QualityGate
        gate = QualityGate(settings, store, _supervision(Result.err(LLMError("down"))))

        verdict = await gate.evaluate(_section(), "text", _access("supervision_agent"))

        assert verdict.supervision_score == 75
        assert verdict.review is None
        assert verdict.overall_score == 88

    @pytest.mark.asyncio
    async def test_continuity_passes_chapter_context(self, settings, store):
        from models.quality import Result, SupervisionReview
        from workflow.quality_gate import QualityGate
        continuity = _continuity(90.4)
        gate = QualityGate(
            settings, store, _supervision(Result.ok(SupervisionReview(overall_score=80))),
            continuity=continuity,
        )

        verdict = await gate.evaluate(_section(), "text", _access("continuity_agent", "supervision_agent"))

        args = continuity.check_chapter_consistency.await_args.args
        assert args[:4] == (1, "text", "Open the door", ["tides"])
        assert verdict.consistency_score == 90
        assert verdict.overall_score == 85

    @pytest.mark.asyncio
    async def test_proofreads_when_consistent(self, mock_llm, settings, store):
        from agents.supervision_agent import SupervisionAgent
        from workflow.quality_gate import QualityGate
        proofreader = MagicMock()
        proofreader.quick_polish = AsyncMock(return_value="polished text")
        gate = QualityGate(settings, store, SupervisionAgent(mock_llm, settings), proofreader=proofreader)

        verdict = await gate.evaluate(_section(), FLAT_TEXT, _access("proofreader_agent"))

        assert verdict.proofread
        assert verdict.content == "polished text"

    @pytest.mark.asyncio
    async def test_skips_proofreading_below_consistency_threshold(self, settings, store):
        from models.quality import Result, SupervisionReview
        from workflow.quality_gate import QualityGate
        proofreader = MagicMock()
        proofreader.quick_polish = AsyncMock(return_value="polished text")
        gate = QualityGate(
            settings, store, _supervision(Result.ok(SupervisionReview(overall_score=90))),
            continuity=_continuity(70), proofreader=proofreader,
        )

        verdict = await gate.evaluate(
            _section(), "text",
            _access("continuity_agent", "supervision_agent", "proofreader_agent"),
        )

        assert not verdict.proofread
        assert verdict.content == "text"
        proofreader.quick_polish.assert_not_awaited()
