"""Supervision Agent: chapter quality review and the advisory revision backlog.

Reviews combine a rule-based pass (emotional-word density, sentence and
paragraph length, dialogue density, length) with an optional model review.
Low scores never block generation; they are turned into RevisionTasks that
callers can inspect through get_pending_revisions().
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError, LLMResponseParseError
from config.settings import Settings
from models.database import Database
from models.enums import (
    QualityIssueType, QualitySeverity, RevisionPriority, RevisionStatus,
    RevisionTriggerType,
)
from models.quality import QualityIssue, Result, RevisionTask, SupervisionReview
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter
from tools.text_utils import (
    count_paragraphs, count_sentences, count_words, emotional_density, quote_density,
    round_half_up, truncate,
)

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 75
BASE_SUB_SCORE = 80
FLAG_THRESHOLD = 70
AI_REVIEW_MIN_CHARS = 1000

_AI_CONTENT_CHAR_LIMIT = 3000
_ARC_WINDOW = 3
_ARC_AVERAGE_THRESHOLD = 75

_PRIORITY_ORDER = {
    RevisionPriority.URGENT: 0,
    RevisionPriority.HIGH: 1,
    RevisionPriority.MEDIUM: 2,
    RevisionPriority.LOW: 3,
}


def _score(value, default: int = NEUTRAL_SCORE) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    return max(0, min(100, score)) if score else default


def _parse_issue(item: dict) -> QualityIssue:
    try:
        issue_type = QualityIssueType(str(item.get("type", "")).lower())
    except ValueError:
        issue_type = QualityIssueType.QUALITY
    try:
        severity = QualitySeverity(str(item.get("severity", "")).lower())
    except ValueError:
        severity = QualitySeverity.MEDIUM
    return QualityIssue(
        type=issue_type,
        severity=severity,
        description=str(item.get("description", "")),
        suggestion=str(item.get("suggestion") or item.get("suggested_fix") or ""),
    )


class SupervisionAgent(BaseAgent):
    """Scores chapters and sections, and keeps the revision backlog.

    Args:
        db: When given, revision tasks are persisted and survive restarts.
        clock: Wall-clock source, injectable for the dedupe/attempt windows.
    """

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
        db: Optional[Database] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(llm_client, settings, rate_limiter)
        self._template = self._load_prompt("supervision")
        self.db = db
        self._clock = clock
        self._tasks: dict[str, RevisionTask] = {}
        self._chapter_scores: dict[int, dict[int, int]] = {}

    # ---- Reviews ----

    @staticmethod
    def basic_review(chapter_number: int, content: str, title: str = "") -> SupervisionReview:
        """Rule-based review. Pure; never calls the model."""
        issues: list[QualityIssue] = []
        recommendations: list[str] = []

        word_count = max(1, count_words(content))
        sentence_count = count_sentences(content)
        paragraph_count = count_paragraphs(content)

        emotional_score = BASE_SUB_SCORE
        pacing_score = BASE_SUB_SCORE
        arc_score = BASE_SUB_SCORE

        density = emotional_density(content)
        if density < 0.02:
            emotional_score = 40
            issues.append(QualityIssue(
                type=QualityIssueType.LOW_EMOTION,
                severity=QualitySeverity.HIGH,
                description=f"Low emotional content detected ({round_half_up(density * 100)}% emotional words)",
                suggestion="Add more emotional beats, character reactions, and internal thoughts",
            ))

        avg_sentence_length = word_count / sentence_count
        if avg_sentence_length > 25:
            pacing_score -= 15
            issues.append(QualityIssue(
                type=QualityIssueType.BROKEN_PACING,
                severity=QualitySeverity.MEDIUM,
                description=f"Sentences too long (avg: {round_half_up(avg_sentence_length)} words)",
                suggestion="Break up long sentences for better pacing",
            ))

        avg_paragraph_length = word_count / paragraph_count
        if avg_paragraph_length > 150:
            pacing_score -= 10
            issues.append(QualityIssue(
                type=QualityIssueType.BROKEN_PACING,
                severity=QualitySeverity.MEDIUM,
                description=f"Paragraphs too long (avg: {round_half_up(avg_paragraph_length)} words)",
                suggestion="Break up long paragraphs for better readability",
            ))

        if quote_density(content) < 0.05:
            pacing_score -= 10
            issues.append(QualityIssue(
                type=QualityIssueType.BROKEN_PACING,
                severity=QualitySeverity.MEDIUM,
                description="Low dialogue density - may feel too narrative-heavy",
                suggestion="Consider adding more character dialogue for engagement",
            ))

        if word_count < 500:
            issues.append(QualityIssue(
                type=QualityIssueType.QUALITY,
                severity=QualitySeverity.HIGH,
                description=f"Chapter too short ({word_count} words)",
                suggestion="Expand scenes with more detail and development",
            ))

        if emotional_score < 70:
            recommendations.append("Increase emotional depth with character introspection")
        if pacing_score < 70:
            recommendations.append("Improve pacing with varied sentence structures")
        if not issues:
            recommendations.append("Chapter meets basic quality standards")

        overall = round_half_up((emotional_score + pacing_score + arc_score) / 3)
        review = SupervisionReview(
            chapter_number=chapter_number,
            chapter_title=title,
            overall_score=overall,
            emotional_score=emotional_score,
            pacing_score=pacing_score,
            arc_score=arc_score,
            issues=issues,
            recommendations=recommendations,
        )
        review.flagged = overall < FLAG_THRESHOLD or review.has_critical_issue
        return review

    async def ai_review(
        self,
        chapter_number: int,
        content: str,
        title: str = "",
        expected_outcome: str = "",
    ) -> Result[SupervisionReview, LLMError]:
        """Model review. Failures come back as an Err instead of being raised."""
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Review Instructions").format(
            chapter_number=chapter_number,
            chapter_title=title or f"Chapter {chapter_number}",
            expected_outcome=expected_outcome or "(not specified)",
            content=truncate(content, _AI_CONTENT_CHAR_LIMIT),
        )
        try:
            data = await self._complete_json(
                user_prompt, self.settings.llm_model_supervision, system_prompt, max_tokens=1500,
            )
        except LLMError as e:
            logger.warning("AI review failed for chapter %d: %s", chapter_number, e)
            return Result.err(e)

        issues = [_parse_issue(i) for i in data.get("issues", []) or [] if isinstance(i, dict)]
        review = SupervisionReview(
            chapter_number=chapter_number,
            chapter_title=title,
            overall_score=_score(data.get("overall_score")),
            emotional_score=_score(data.get("emotional_score")),
            pacing_score=_score(data.get("pacing_score")),
            arc_score=_score(data.get("arc_score")),
            issues=issues,
            recommendations=[str(r) for r in data.get("recommendations", []) or []],
            summary=str(data.get("summary", "")),
        )
        review.flagged = review.overall_score < FLAG_THRESHOLD or review.has_critical_issue
        return Result.ok(review)

    async def score_section(
        self,
        chapter_number: int,
        content: str,
        title: str = "",
        expected_outcome: str = "",
    ) -> Result[SupervisionReview, LLMError]:
        """Score one section with the model.

        An unparseable response degrades to the rule-based review; any other
        completion failure is returned as an Err so the caller can apply the
        neutral score.
        """
        result = await self.ai_review(chapter_number, content, title, expected_outcome)
        if not result.is_ok and isinstance(result.error, LLMResponseParseError):
            return Result.ok(self.basic_review(chapter_number, content, title))
        return result

    async def review_chapter(
        self,
        chapter_number: int,
        content: str,
        title: str = "",
        expected_outcome: str = "",
        use_ai: bool = True,
    ) -> SupervisionReview:
        """Final-pass chapter review: rule-based, merged with the model review for long text."""
        logger.info("Reviewing chapter %d: %s", chapter_number, title)
        review = self.basic_review(chapter_number, content, title)

        if use_ai and len(content) > AI_REVIEW_MIN_CHARS:
            result = await self.ai_review(chapter_number, content, title, expected_outcome)
            ai_score = result.value.overall_score if result.is_ok else NEUTRAL_SCORE
            review.overall_score = round_half_up((review.overall_score + ai_score) / 2)
            if result.is_ok:
                review.issues.extend(result.value.issues)
                review.recommendations.extend(result.value.recommendations)
                review.summary = result.value.summary
            else:
                review.recommendations.append("AI review unavailable - manual review recommended")
            review.flagged = review.overall_score < FLAG_THRESHOLD or review.has_critical_issue

        critical = sum(1 for i in review.issues if i.severity == QualitySeverity.CRITICAL)
        logger.info(
            "Chapter %d review complete - Score: %d/100, %d issues (%d critical)",
            chapter_number, review.overall_score, len(review.issues), critical,
        )
        return review

    @staticmethod
    def get_book_recommendations(reviews: list[SupervisionReview]) -> list[str]:
        if not reviews:
            return ["No chapters reviewed"]

        recommendations = []
        avg_score = sum(r.overall_score for r in reviews) / len(reviews)
        critical = [
            i for r in reviews for i in r.issues if i.severity == QualitySeverity.CRITICAL
        ]
        flagged = [r for r in reviews if r.flagged]

        if avg_score < FLAG_THRESHOLD:
            recommendations.append(
                f"Overall book quality below target ({round_half_up(avg_score)}/100) "
                "- consider comprehensive revision"
            )
        if critical:
            recommendations.append(f"{len(critical)} critical issues found - immediate attention required")
        if flagged:
            chapters = ", ".join(str(r.chapter_number) for r in flagged)
            recommendations.append(f"{len(flagged)} chapters flagged for review: {chapters}")
        if not recommendations:
            recommendations.append("Book meets quality standards - ready for final review")
        return recommendations

    # ---- Revision backlog ----

    def record_chapter_score(self, book_id: int, chapter_number: int, score: int):
        self._chapter_scores.setdefault(book_id, {})[chapter_number] = score

    def _arc_stagnant(self, book_id: int, chapter_number: int) -> bool:
        if chapter_number % self.settings.arc_check_interval != 0:
            return False
        history = self._chapter_scores.get(book_id, {})
        recent = [history[n] for n in sorted(history) if n <= chapter_number][-_ARC_WINDOW:]
        if len(recent) < _ARC_WINDOW:
            return False
        average = sum(recent) / len(recent)
        trend = recent[-1] - recent[0]
        return average < _ARC_AVERAGE_THRESHOLD and trend <= 0

    def _detect_triggers(
        self, book_id: int, chapter_number: int, review: SupervisionReview,
    ) -> list[tuple[RevisionTriggerType, RevisionPriority, str, str]]:
        triggers = []
        score = review.overall_score
        if score < self.settings.revision_quality_threshold:
            if score < 40:
                priority, effort = RevisionPriority.URGENT, "major"
            elif score < 55:
                priority, effort = RevisionPriority.HIGH, "moderate"
            else:
                priority, effort = RevisionPriority.MEDIUM, "minor"
            triggers.append((
                RevisionTriggerType.QUALITY_THRESHOLD, priority, effort,
                f"Quality score {score} below {self.settings.revision_quality_threshold}",
            ))
        if review.has_critical_issue:
            first = next(i for i in review.issues if i.severity == QualitySeverity.CRITICAL)
            triggers.append((
                RevisionTriggerType.CRITICAL_ISSUE, RevisionPriority.URGENT, "major",
                f"Critical issue: {first.description}",
            ))
        if review.pacing_score < self.settings.revision_pacing_threshold:
            triggers.append((
                RevisionTriggerType.PACING, RevisionPriority.MEDIUM, "moderate",
                f"Pacing score {review.pacing_score} below {self.settings.revision_pacing_threshold}",
            ))
        if self._arc_stagnant(book_id, chapter_number):
            triggers.append((
                RevisionTriggerType.ARC_STAGNATION, RevisionPriority.HIGH, "major",
                f"Quality trend stagnant over the last {_ARC_WINDOW} chapters",
            ))
        return triggers

    def _all_tasks(self, book_id: Optional[int] = None) -> list[RevisionTask]:
        if self.db is not None:
            return self.db.get_revision_tasks(book_id)
        return [t for t in self._tasks.values() if book_id is None or t.book_id == book_id]

    def _save_task(self, task: RevisionTask):
        self._tasks[task.id] = task
        if self.db is not None:
            self.db.save_revision_task(task)

    def evaluate_revision_triggers(
        self, book_id: int, chapter_number: int, review: SupervisionReview,
    ) -> list[RevisionTask]:
        """Queue revision tasks for a reviewed chapter. Returns new or re-triggered tasks."""
        self.record_chapter_score(book_id, chapter_number, review.overall_score)
        triggers = self._detect_triggers(book_id, chapter_number, review)
        if not triggers:
            return []

        now = self._clock()
        dedupe_after = now - timedelta(minutes=self.settings.revision_dedupe_minutes)
        window_start = now - timedelta(hours=self.settings.revision_window_hours)
        chapter_tasks = [t for t in self._all_tasks(book_id) if t.chapter_number == chapter_number]
        max_attempts = self.settings.revision_max_attempts
        if review.has_critical_issue:
            max_attempts += self.settings.revision_critical_bonus
        attempts = sum(1 for t in chapter_tasks if t.created_at >= window_start)

        touched = []
        for trigger, priority, effort, reason in triggers:
            # Collapse into a task created inside the dedupe window, so a trigger
            # that keeps firing still opens a new attempt once per window
            duplicate = next(
                (t for t in chapter_tasks
                 if t.trigger == trigger and t.status == RevisionStatus.PENDING
                 and t.created_at >= dedupe_after),
                None,
            )
            if duplicate is not None:
                duplicate.occurrences += 1
                duplicate.last_triggered_at = now
                self._save_task(duplicate)
                touched.append(duplicate)
                logger.debug(
                    "Revision trigger %s for chapter %d collapsed (x%d)",
                    trigger.value, chapter_number, duplicate.occurrences,
                )
                continue

            if attempts >= max_attempts:
                logger.warning(
                    "Revision attempt cap reached for book %d chapter %d (%d in window)",
                    book_id, chapter_number, attempts,
                )
                continue

            task = RevisionTask(
                id=uuid.uuid4().hex[:12],
                book_id=book_id,
                chapter_number=chapter_number,
                trigger=trigger,
                priority=priority,
                estimated_effort=effort,
                reason=reason,
                created_at=now,
                last_triggered_at=now,
            )
            self._save_task(task)
            chapter_tasks.append(task)
            attempts += 1
            touched.append(task)
            logger.info(
                "Revision queued for chapter %d: %s (%s, %s effort)",
                chapter_number, trigger.value, priority.value, effort,
            )
        return touched

    def get_pending_revisions(self, book_id: Optional[int] = None) -> list[RevisionTask]:
        """Pending tasks, most urgent first, oldest first within a priority."""
        pending = [t for t in self._all_tasks(book_id) if t.status == RevisionStatus.PENDING]
        return sorted(pending, key=lambda t: (_PRIORITY_ORDER[t.priority], t.created_at))

    def mark_revision_complete(self, task_id: str) -> bool:
        task = self.db.get_revision_task(task_id) if self.db is not None else self._tasks.get(task_id)
        if task is None:
            return False
        task.status = RevisionStatus.COMPLETED
        self._save_task(task)
        logger.info("Revision task %s completed", task_id)
        return True
