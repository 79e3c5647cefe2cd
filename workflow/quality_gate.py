"""Per-section quality gate: consistency check, supervision score, proofreading.

A failing section is never retried here. It is recorded as a FailedSection
in the checkpoint and generation moves on.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from agents.continuity_agent import ContinuityStore
from agents.proofreader_agent import ProofreaderAgent
from agents.supervision_agent import NEUTRAL_SCORE, SupervisionAgent
from config.settings import Settings
from config.tiers import FEATURE_CONTINUITY, FEATURE_PROOFREADING, FEATURE_SUPERVISION, FeatureAccess
from models.book import BookSettings
from models.checkpoint import FailedSection, GenerationCheckpoint
from models.quality import QualityVerdict
from tools.text_utils import round_half_up
from workflow.checkpoint import CheckpointStore

logger = logging.getLogger(__name__)

NEUTRAL_CONSISTENCY_SCORE = 100


@dataclass
class SectionUnderReview:
    """Identity and context of the section being gated."""
    book_id: int
    chapter_id: int
    chapter_number: int
    section_number: int
    chapter_title: str = ""
    purpose: str = ""
    research_focus: list[str] = field(default_factory=list)


class QualityGate:

    def __init__(
        self,
        settings: Settings,
        checkpoints: CheckpointStore,
        supervision: SupervisionAgent,
        continuity: Optional[ContinuityStore] = None,
        proofreader: Optional[ProofreaderAgent] = None,
    ):
        self.settings = settings
        self.checkpoints = checkpoints
        self.supervision = supervision
        self.continuity = continuity
        self.proofreader = proofreader

    async def _consistency_score(
        self, section: SectionUnderReview, content: str, access: FeatureAccess,
        book_settings: Optional[BookSettings],
    ) -> int:
        if self.continuity is None or not access.has(FEATURE_CONTINUITY):
            return NEUTRAL_CONSISTENCY_SCORE
        report = await self.continuity.check_chapter_consistency(
            section.chapter_number, content, section.purpose,
            section.research_focus, book_settings,
        )
        return round_half_up(report.overall_score)

    async def _supervision_review(
        self, section: SectionUnderReview, content: str, access: FeatureAccess,
    ):
        if not access.has(FEATURE_SUPERVISION):
            return self.supervision.basic_review(section.chapter_number, content, section.chapter_title)
        result = await self.supervision.score_section(
            section.chapter_number, content, section.chapter_title, section.purpose,
        )
        return result.unwrap_or(None)

    async def evaluate(
        self,
        section: SectionUnderReview,
        content: str,
        access: FeatureAccess,
        book_settings: Optional[BookSettings] = None,
        checkpoint: Optional[GenerationCheckpoint] = None,
    ) -> QualityVerdict:
        consistency = await self._consistency_score(section, content, access, book_settings)
        review = await self._supervision_review(section, content, access)
        supervision_score = review.overall_score if review is not None else NEUTRAL_SCORE
        overall = round_half_up((consistency + supervision_score) / 2)

        verdict = QualityVerdict(
            content=content,
            consistency_score=consistency,
            supervision_score=supervision_score,
            overall_score=overall,
            review=review,
        )

        if overall < self.settings.quality_failure_threshold:
            verdict.flagged = True
            logger.warning(
                "Chapter %d section %d flagged: quality %d/100 (consistency %d, supervision %d)",
                section.chapter_number, section.section_number, overall, consistency, supervision_score,
            )
            self.checkpoints.add_failed_section(section.book_id, FailedSection(
                book_id=section.book_id,
                chapter_id=section.chapter_id,
                section_number=section.section_number,
                reason=f"Low quality score: {overall}/100",
                metadata={"consistency_score": consistency, "quality_score": overall},
            ), checkpoint)

        if (
            self.proofreader is not None
            and access.has(FEATURE_PROOFREADING)
            and consistency >= self.settings.proofread_consistency_threshold
        ):
            verdict.content = await self.proofreader.quick_polish(content, book_settings or BookSettings())
            verdict.proofread = True
        elif access.has(FEATURE_PROOFREADING):
            logger.info(
                "Skipping proofreading for chapter %d section %d (consistency %d)",
                section.chapter_number, section.section_number, consistency,
            )

        logger.info(
            "Chapter %d section %d quality: %d/100%s",
            section.chapter_number, section.section_number, overall,
            " (proofread)" if verdict.proofread else "",
        )
        return verdict
