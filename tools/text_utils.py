"""English prose utilities: word counting, segmentation, simple metrics."""

import math
import re

_WORD_SPLIT_RE = re.compile(r"\s+")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")

EMOTIONAL_WORDS = (
    "felt", "feel", "emotion", "heart", "love", "hate", "anger", "joy", "sad",
    "happy", "fear", "hope", "despair", "excitement", "relief", "tension",
    "anxiety", "calm", "peace", "fury", "rage", "delight", "sorrow", "pain",
    "pleasure", "warmth", "cold", "trembling", "shaking", "tears", "smile",
    "laugh", "cry", "sob", "gasp", "sigh", "whisper", "shout", "scream",
)
_EMOTIONAL_RE = re.compile(r"\b(" + "|".join(EMOTIONAL_WORDS) + r")\b", re.IGNORECASE)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return math.floor(value + 0.5)


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    if not text:
        return 0
    return len([w for w in _WORD_SPLIT_RE.split(text) if w])


def count_sentences(text: str) -> int:
    """Number of segments between sentence terminators (at least 1).

    A trailing terminator produces an empty final segment which is still
    counted, so "One. Two." counts as 3.
    """
    return max(1, len(_SENTENCE_SPLIT_RE.split(text or "")))


def split_paragraphs(text: str) -> list[str]:
    """Split text into non-empty paragraphs on blank lines."""
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text or "") if p.strip()]


def count_paragraphs(text: str) -> int:
    """Number of blank-line separated blocks (at least 1)."""
    return max(1, len(_PARAGRAPH_SPLIT_RE.split(text or "")))


def emotional_word_count(text: str) -> int:
    return len(_EMOTIONAL_RE.findall(text or ""))


def emotional_density(text: str) -> float:
    """Share of words that are emotional cue words."""
    words = count_words(text)
    if words == 0:
        return 0.0
    return emotional_word_count(text) / words


def quote_density(text: str) -> float:
    """Double-quote marks per word, a rough dialogue indicator."""
    words = count_words(text)
    if words == 0:
        return 0.0
    return (text.count('"') + text.count("“") + text.count("”")) / words


def get_tail(content: str, char_limit: int = 500) -> str:
    """Return the last `char_limit` characters of the content."""
    if not content:
        return ""
    if len(content) <= char_limit:
        return content
    return content[-char_limit:]


def truncate(text: str, char_limit: int) -> str:
    """Cut text to `char_limit` characters, marking the cut with an ellipsis."""
    if not text or len(text) <= char_limit:
        return text or ""
    return text[:char_limit] + "..."
