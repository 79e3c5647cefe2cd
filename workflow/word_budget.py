"""Word budget planning: chapter targets, section splits, short-book consolidation.

Everything here is pure arithmetic over the book's word target so it can be
recomputed at any time (for example when a chapter is resumed).
"""

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Optional

from models.enums import SectionType, TransitionType
from models.story_bible import ChapterPlan
from tools.text_utils import round_half_up

logger = logging.getLogger(__name__)

SINGLE_SECTION_MAX_WORDS = 500
MIN_SECTION_WORDS = 200
MAX_SECTIONS = 4
FORCED_SPLIT_MIN_WORDS = 800

# (upper word bound, max chapters) for short books
_CHAPTER_CAPS = ((1000, 1), (2000, 2), (5000, 4), (10000, 6))
# (upper chapter word bound, max sections)
_SECTION_CAPS = ((1000, 2), (2000, 3))
_INITIAL_SECTION_BANDS = ((500, 1), (1000, 2), (2000, 3))

_GENRE_CLEAN_RE = re.compile(r"[^a-z-]")


@dataclass(frozen=True)
class GenreStructure:
    optimal_section_length: int
    min_section_length: int
    max_section_length: int
    allow_single_section: bool
    preferred_transition: TransitionType


GENRE_STRUCTURES: dict[str, GenreStructure] = {
    "fantasy": GenreStructure(1200, 800, 1800, False, TransitionType.SCENE_BREAK),
    "mystery": GenreStructure(1000, 600, 1400, True, TransitionType.BRIDGE_PARAGRAPH),
    "romance": GenreStructure(900, 600, 1200, True, TransitionType.EMOTIONAL_BRIDGE),
    "thriller": GenreStructure(800, 500, 1200, True, TransitionType.SCENE_BREAK),
    "literary": GenreStructure(1500, 1000, 2000, False, TransitionType.BRIDGE_PARAGRAPH),
    "sci-fi": GenreStructure(1100, 800, 1600, False, TransitionType.SCENE_BREAK),
    "young-adult": GenreStructure(700, 500, 1000, True, TransitionType.BRIDGE_PARAGRAPH),
    "historical": GenreStructure(1300, 1000, 1800, False, TransitionType.BRIDGE_PARAGRAPH),
}

DEFAULT_STRUCTURE = GenreStructure(1000, 600, 1400, True, TransitionType.BRIDGE_PARAGRAPH)


@dataclass(frozen=True)
class SectionPlan:
    number: int
    section_type: SectionType
    word_target: int
    transition_in: TransitionType


def get_genre_structure(genre: str) -> GenreStructure:
    """Rules for a genre; unknown genres get the default structure."""
    normalized = _GENRE_CLEAN_RE.sub("", (genre or "").lower())
    return GENRE_STRUCTURES.get(normalized, DEFAULT_STRUCTURE)


def chapter_word_target(total_words: int, chapter_number: int, total_chapters: int) -> int:
    """Per-chapter target with opening, climax and resolution weighting.

    The multipliers are not normalized, so the targets may sum to a few
    percent more than the book total.
    """
    total_chapters = max(1, total_chapters)
    base = total_words // total_chapters
    position = chapter_number / total_chapters

    multiplier = 1.0
    if position <= 0.2:
        multiplier = 1.1
    elif 0.7 <= position <= 0.9:
        multiplier = 1.15
    elif position > 0.9:
        multiplier = 1.05
    return math.floor(base * multiplier)


def section_count_for(chapter_words: int, genre: str) -> int:
    if chapter_words <= SINGLE_SECTION_MAX_WORDS:
        return 1

    rules = get_genre_structure(genre)
    count = max(1, round_half_up(chapter_words / rules.optimal_section_length))
    per_section = chapter_words / count
    if per_section < MIN_SECTION_WORDS:
        count = max(1, chapter_words // MIN_SECTION_WORDS)
    elif per_section > rules.max_section_length:
        count = math.ceil(chapter_words / rules.max_section_length)

    for bound, cap in _SECTION_CAPS:
        if chapter_words <= bound:
            count = min(count, cap)
            break
    count = max(1, min(MAX_SECTIONS, count))

    if count == 1 and not rules.allow_single_section and chapter_words > FORCED_SPLIT_MIN_WORDS:
        count = 2
    return count


def plan_sections(chapter_words: int, genre: str) -> list[SectionPlan]:
    """Split a chapter target into 1-4 sections; the remainder goes to the last one."""
    return split_sections(chapter_words, section_count_for(chapter_words, genre), genre)


def split_sections(chapter_words: int, count: int, genre: str) -> list[SectionPlan]:
    count = max(1, count)
    rules = get_genre_structure(genre)
    base = chapter_words // count
    remainder = chapter_words % count

    plans = []
    for number in range(1, count + 1):
        if number == 1:
            section_type = SectionType.OPENING
        elif number == count:
            section_type = SectionType.BRIDGE
        else:
            section_type = SectionType.DEVELOPMENT
        plans.append(SectionPlan(
            number=number,
            section_type=section_type,
            word_target=base + (remainder if number == count else 0),
            transition_in=TransitionType.SCENE_BREAK if number == 1 else rules.preferred_transition,
        ))
    return plans


def max_chapters_for_words(total_words: int) -> Optional[int]:
    """Chapter cap for short books, or None when no cap applies."""
    for bound, cap in _CHAPTER_CAPS:
        if total_words <= bound:
            return cap
    return None


def consolidate_chapter_plans(plans: list[ChapterPlan], total_words: int) -> list[ChapterPlan]:
    """Merge story-bible chapter plans down to the short-book cap, renumbered 1..k."""
    cap = max_chapters_for_words(total_words)
    if cap is None or len(plans) <= cap:
        return [replace(p, number=i + 1) for i, p in enumerate(plans)]

    per_group = math.ceil(len(plans) / cap)
    logger.info("Consolidating %d chapter plans into %d for %d words", len(plans), cap, total_words)

    merged = []
    for start in range(0, len(plans), per_group):
        if len(merged) == cap:
            break
        group = plans[start:start + per_group]
        number = len(merged) + 1
        first_title = group[0].title or f"Chapter {number}"
        merged.append(ChapterPlan(
            number=number,
            title=first_title if len(group) == 1 else f"{first_title} & More",
            purpose=" ".join(p.purpose or "Chapter content" for p in group),
            word_count_target=total_words // cap,
            scenes=[s for p in group for s in p.scenes],
            character_arcs=[a for p in group for a in p.character_arcs],
            plot_threads=[t for p in group for t in p.plot_threads],
            research_focus=list(dict.fromkeys(f for p in group for f in p.research_focus)),
        ))
    return merged


def initial_section_count(chapter_words: int, scene_count: int) -> int:
    """Section rows created with a chapter, before the generator reconciles them."""
    max_sections = MAX_SECTIONS
    for bound, cap in _INITIAL_SECTION_BANDS:
        if chapter_words <= bound:
            max_sections = cap
            break
    return max(1, min(scene_count or 1, max_sections))
