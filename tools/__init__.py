"""Tools package — completion client, rate limiter, text and JSON utilities."""

from tools.completion_client import CompletionClient, CompletionResult
from tools.json_utils import parse_json_response, try_parse_json
from tools.rate_limiter import RateLimiter, RateLimitStatus, TokenUsageStats
from tools.text_utils import (
    count_words,
    count_sentences,
    count_paragraphs,
    split_paragraphs,
    emotional_density,
    quote_density,
    get_tail,
    round_half_up,
)

__all__ = [
    "CompletionClient",
    "CompletionResult",
    "parse_json_response",
    "try_parse_json",
    "RateLimiter",
    "RateLimitStatus",
    "TokenUsageStats",
    "count_words",
    "count_sentences",
    "count_paragraphs",
    "split_paragraphs",
    "emotional_density",
    "quote_density",
    "get_tail",
    "round_half_up",
]
