"""Tests for SupervisionAgent reviews and the revision backlog."""

import json
from datetime import datetime, timedelta

import pytest

GOOD_TEXT = '"We hope," she said with a smile. Her heart felt warm.\n\n' * 50
FLAT_TEXT = "word " * 100


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 5, 1, 9, 0)

    def __call__(self):
        return self.now

    def advance(self, minutes):
        self.now += timedelta(minutes=minutes)


def _agent(mock_llm, settings, db=None, clock=None):
    from agents.supervision_agent import SupervisionAgent
    return SupervisionAgent(
        llm_client=mock_llm, settings=settings, db=db, clock=clock or FakeClock(),
    )


def _review(chapter=1, overall=70, pacing=80, issues=None):
    from models.quality import SupervisionReview
    return SupervisionReview(
        chapter_number=chapter, overall_score=overall, pacing_score=pacing, issues=issues or [],
    )


class TestBasicReview:
    def test_clean_chapter(self):
        from agents.supervision_agent import SupervisionAgent
        review = SupervisionAgent.basic_review(1, GOOD_TEXT, "Opening")
        assert review.overall_score == 80
        assert review.issues == []
        assert not review.flagged
        assert review.recommendations == ["Chapter meets basic quality standards"]

    def test_flat_chapter_hits_every_rule(self):
        from agents.supervision_agent import SupervisionAgent
        from models.enums import QualityIssueType
        review = SupervisionAgent.basic_review(2, FLAT_TEXT)

        assert review.emotional_score == 40
        assert review.pacing_score == 55
        assert review.arc_score == 80
        assert review.overall_score == 58
        assert review.flagged
        types = [i.type for i in review.issues]
        assert types.count(QualityIssueType.BROKEN_PACING) == 2
        assert QualityIssueType.LOW_EMOTION in types
        assert review.issues[-1].description == "Chapter too short (100 words)"
        assert len(review.recommendations) == 2

    def test_score_never_below_floor(self):
        from agents.supervision_agent import SupervisionAgent
        long_paragraph = "word " * 400
        review = SupervisionAgent.basic_review(1, long_paragraph)
        assert review.overall_score == 55


class TestModelReviews:
    @pytest.mark.asyncio
    async def test_score_section_parses_reply(self, mock_llm, settings):
        from tools.completion_client import CompletionResult
        mock_llm.complete.return_value = CompletionResult(json.dumps({
            "overall_score": 88, "emotional_score": 90, "pacing_score": "85", "arc_score": None,
            "issues": [{"type": "INCOMPLETE-ARC", "severity": "weird", "suggested_fix": "Close it"}],
            "summary": "Solid",
        }), 60)
        agent = _agent(mock_llm, settings)

        result = await agent.score_section(1, "text")

        review = result.value
        assert review.overall_score == 88
        assert review.pacing_score == 85
        assert review.arc_score == 75
        assert review.issues[0].suggestion == "Close it"
        assert review.issues[0].severity.value == "medium"
        assert not review.flagged

    @pytest.mark.asyncio
    async def test_score_section_unparseable_degrades_to_basic(self, mock_llm, settings):
        agent = _agent(mock_llm, settings)
        result = await agent.score_section(1, FLAT_TEXT)
        assert result.is_ok
        assert result.value.overall_score == 58

    @pytest.mark.asyncio
    async def test_score_section_completion_failure_is_err(self, mock_llm, settings):
        from config.exceptions import LLMError
        mock_llm.complete.side_effect = LLMError("down")
        agent = _agent(mock_llm, settings)

        result = await agent.score_section(1, "text")

        assert not result.is_ok
        assert result.unwrap_or(None) is None

    @pytest.mark.asyncio
    async def test_review_chapter_merges_neutral_score_on_failure(self, mock_llm, settings):
        agent = _agent(mock_llm, settings)
        review = await agent.review_chapter(1, GOOD_TEXT)
        assert review.overall_score == 78
        assert "AI review unavailable - manual review recommended" in review.recommendations

    @pytest.mark.asyncio
    async def test_review_chapter_skips_model_for_short_text(self, mock_llm, settings):
        agent = _agent(mock_llm, settings)
        review = await agent.review_chapter(1, FLAT_TEXT)
        assert review.overall_score == 58
        mock_llm.complete.assert_not_awaited()

    def test_book_recommendations(self):
        from agents.supervision_agent import SupervisionAgent
        reviews = [_review(1, 90), _review(2, 40)]
        reviews[1].flagged = True
        recs = SupervisionAgent.get_book_recommendations(reviews)
        assert recs == ["Overall book quality below target (65/100) - consider comprehensive revision",
                        "1 chapters flagged for review: 2"]
        assert SupervisionAgent.get_book_recommendations([]) == ["No chapters reviewed"]


class TestRevisionTriggers:
    def test_quality_trigger_priority(self, mock_llm, settings):
        from models.enums import RevisionPriority, RevisionTriggerType
        agent = _agent(mock_llm, settings)

        tasks = agent.evaluate_revision_triggers(1, 2, _review(2, overall=50))

        assert len(tasks) == 1
        assert tasks[0].trigger == RevisionTriggerType.QUALITY_THRESHOLD
        assert tasks[0].priority == RevisionPriority.HIGH
        assert tasks[0].estimated_effort == "moderate"

    def test_passing_review_queues_nothing(self, mock_llm, settings):
        agent = _agent(mock_llm, settings)
        assert agent.evaluate_revision_triggers(1, 1, _review(overall=90)) == []
        assert agent.get_pending_revisions(1) == []

    def test_critical_issue_and_pacing_triggers(self, mock_llm, settings):
        from models.enums import QualitySeverity, RevisionTriggerType
        from models.quality import QualityIssue
        agent = _agent(mock_llm, settings)
        review = _review(overall=80, pacing=40, issues=[
            QualityIssue(severity=QualitySeverity.CRITICAL, description="Dead man speaks"),
        ])

        tasks = agent.evaluate_revision_triggers(1, 1, review)

        assert [t.trigger for t in tasks] == [
            RevisionTriggerType.CRITICAL_ISSUE, RevisionTriggerType.PACING,
        ]
        assert tasks[0].reason == "Critical issue: Dead man speaks"

    def test_repeat_trigger_collapses_within_dedupe_window(self, mock_llm, settings):
        clock = FakeClock()
        agent = _agent(mock_llm, settings, clock=clock)
        first = agent.evaluate_revision_triggers(1, 1, _review(overall=30))
        clock.advance(5)
        second = agent.evaluate_revision_triggers(1, 1, _review(overall=30))

        assert second[0].id == first[0].id
        assert second[0].occurrences == 2
        assert len(agent.get_pending_revisions(1)) == 1

    def test_new_task_after_dedupe_window(self, mock_llm, settings):
        clock = FakeClock()
        agent = _agent(mock_llm, settings, clock=clock)
        agent.evaluate_revision_triggers(1, 1, _review(overall=30))
        clock.advance(11)
        agent.evaluate_revision_triggers(1, 1, _review(overall=30))
        assert len(agent.get_pending_revisions(1)) == 2

    def test_steady_retrigger_opens_new_task_each_window(self, mock_llm, settings):
        clock = FakeClock()
        agent = _agent(mock_llm, settings, clock=clock)
        for _ in range(3):
            agent.evaluate_revision_triggers(1, 1, _review(overall=30))
            clock.advance(9)

        pending = agent.get_pending_revisions(1)
        assert len(pending) == 2
        assert sorted(t.occurrences for t in pending) == [1, 2]

    def test_attempt_cap_per_window(self, mock_llm, settings):
        settings.revision_max_attempts = 2
        clock = FakeClock()
        agent = _agent(mock_llm, settings, clock=clock)
        for _ in range(4):
            agent.evaluate_revision_triggers(1, 1, _review(overall=30))
            clock.advance(11)
        assert len(agent.get_pending_revisions(1)) == 2

    def test_critical_issue_raises_cap(self, mock_llm, settings):
        from models.enums import QualitySeverity
        from models.quality import QualityIssue
        settings.revision_max_attempts = 1
        clock = FakeClock()
        agent = _agent(mock_llm, settings, clock=clock)
        critical = [QualityIssue(severity=QualitySeverity.CRITICAL, description="x")]
        for _ in range(6):
            agent.evaluate_revision_triggers(1, 1, _review(overall=90, issues=critical))
            clock.advance(11)
        # 1 base attempt plus the critical bonus of 3
        assert len(agent.get_pending_revisions(1)) == 4

    def test_arc_stagnation_on_interval(self, mock_llm, settings):
        from models.enums import RevisionTriggerType
        agent = _agent(mock_llm, settings)
        agent.record_chapter_score(1, 1, 70)
        agent.record_chapter_score(1, 2, 68)

        tasks = agent.evaluate_revision_triggers(1, 3, _review(3, overall=66))

        assert [t.trigger for t in tasks] == [RevisionTriggerType.ARC_STAGNATION]

    def test_rising_scores_are_not_stagnant(self, mock_llm, settings):
        agent = _agent(mock_llm, settings)
        agent.record_chapter_score(1, 1, 66)
        agent.record_chapter_score(1, 2, 68)
        assert agent.evaluate_revision_triggers(1, 3, _review(3, overall=70)) == []


class TestRevisionBacklog:
    def test_pending_sorted_by_priority(self, mock_llm, settings):
        from models.enums import RevisionPriority
        clock = FakeClock()
        agent = _agent(mock_llm, settings, clock=clock)
        agent.evaluate_revision_triggers(1, 1, _review(1, overall=70, pacing=50))
        clock.advance(1)
        agent.evaluate_revision_triggers(1, 2, _review(2, overall=30))

        pending = agent.get_pending_revisions(1)

        assert [t.priority for t in pending] == [RevisionPriority.URGENT, RevisionPriority.MEDIUM]
        assert [t.chapter_number for t in pending] == [2, 1]

    def test_backlog_persists_and_completes(self, mock_llm, settings, db):
        agent = _agent(mock_llm, settings, db=db)
        task = agent.evaluate_revision_triggers(5, 1, _review(overall=30))[0]

        restarted = _agent(mock_llm, settings, db=db)
        assert [t.id for t in restarted.get_pending_revisions(5)] == [task.id]

        assert restarted.mark_revision_complete(task.id)
        assert restarted.get_pending_revisions(5) == []
        assert not restarted.mark_revision_complete("missing")
