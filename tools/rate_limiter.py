"""Per-model request/token rate limiting shared by every generation job.

Usage is counted per model in fixed 60 second windows. A caller that would
exceed either limit of its own model is queued by priority and parked on an
asyncio.Condition. Each model drains its waiters in queue order whenever its
window resets or actual usage turns out lower than estimated; a model that is
out of budget never holds up requests for another model.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from config.exceptions import RateLimitQueueClearedError
from models.enums import RequestPriority

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0

# USD per 1K tokens
TOKEN_PRICING = {
    "claude-opus-4-6": {"input": 0.015, "output": 0.075},
    "claude-sonnet-4-6": {"input": 0.003, "output": 0.015},
    "claude-haiku-4-5": {"input": 0.001, "output": 0.005},
}
_DEFAULT_PRICING_MODEL = "claude-sonnet-4-6"


@dataclass
class ModelLimits:
    requests_per_minute: int
    tokens_per_minute: int


@dataclass
class _WindowUsage:
    requests: int = 0
    tokens: int = 0
    reset_at: float = 0.0


@dataclass
class RateLimitStatus:
    model: str
    requests_remaining: int
    tokens_remaining: int
    reset_in_seconds: float
    is_limited: bool


@dataclass
class _QueuedRequest:
    model: str
    tokens: int
    priority: RequestPriority
    granted: bool = False
    cancelled: bool = False


@dataclass
class TokenUsageStats:
    total_tokens: int = 0
    total_requests: int = 0
    estimated_cost: float = 0.0
    last_reset: datetime = field(default_factory=datetime.now)


class RateLimiter:
    """Async, priority-queued rate limiter.

    Args:
        limits: model -> {"requests_per_minute", "tokens_per_minute"}.
            Models without limits are always allowed.
        clock: Monotonic time source in seconds.
        sleep: Coroutine used to wait for the next window reset.
    """

    def __init__(
        self,
        limits: Optional[dict[str, dict[str, int]]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._limits: dict[str, ModelLimits] = {}
        self._usage: dict[str, _WindowUsage] = {}
        self._queue: list[_QueuedRequest] = []
        self._condition = asyncio.Condition()
        self._wakeup_task: Optional[asyncio.Task] = None
        self._stats = TokenUsageStats()
        for model, config in (limits or {}).items():
            self.set_model_limits(
                model, config["requests_per_minute"], config["tokens_per_minute"],
            )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "RateLimiter":
        return cls(limits=settings.rate_limits, **kwargs)

    def set_model_limits(self, model: str, requests_per_minute: int, tokens_per_minute: int):
        self._limits[model] = ModelLimits(requests_per_minute, tokens_per_minute)
        if model not in self._usage:
            self._usage[model] = _WindowUsage(reset_at=self._clock() + WINDOW_SECONDS)
        logger.info(
            "Rate limits set for %s: %d req/min, %d tokens/min",
            model, requests_per_minute, tokens_per_minute,
        )

    # ---- Window accounting ----

    def _refresh_window(self, model: str):
        usage = self._usage[model]
        now = self._clock()
        if now >= usage.reset_at:
            usage.requests = 0
            usage.tokens = 0
            usage.reset_at = now + WINDOW_SECONDS
            logger.debug("Rate limit window reset for %s", model)

    def can_make_request(self, model: str, estimated_tokens: int) -> bool:
        """Whether a request fits the current window right now."""
        limits = self._limits.get(model)
        if limits is None:
            return True
        self._refresh_window(model)
        usage = self._usage[model]
        return (
            usage.requests < limits.requests_per_minute
            and usage.tokens + estimated_tokens <= limits.tokens_per_minute
        )

    def record_usage(self, model: str, tokens: int):
        """Count one request and its tokens against the current window."""
        usage = self._usage.get(model)
        if usage is None:
            return
        usage.requests += 1
        usage.tokens += tokens
        limits = self._limits[model]
        logger.debug(
            "%s usage: %d/%d requests, %d/%d tokens",
            model, usage.requests, limits.requests_per_minute,
            usage.tokens, limits.tokens_per_minute,
        )

    # ---- Queueing ----

    def _enqueue(self, entry: _QueuedRequest):
        if entry.priority == RequestPriority.HIGH:
            self._queue.insert(0, entry)
        elif entry.priority == RequestPriority.NORMAL:
            self._queue.insert(len(self._queue) // 2, entry)
        else:
            self._queue.append(entry)
        logger.info(
            "Request queued for %s (%s priority). Queue length: %d",
            entry.model, entry.priority.value, len(self._queue),
        )

    def _grant_waiters(self) -> bool:
        """Grant each model's leading waiters while they fit. Caller holds the lock.

        A waiter that does not fit blocks only the waiters behind it for the
        same model, so priority order holds within a model.
        """
        granted = False
        blocked: set[str] = set()
        remaining = []
        for entry in self._queue:
            if entry.model not in blocked and self.can_make_request(entry.model, entry.tokens):
                self.record_usage(entry.model, entry.tokens)
                entry.granted = True
                granted = True
            else:
                blocked.add(entry.model)
                remaining.append(entry)
        self._queue = remaining
        return granted

    def _has_waiters(self, model: str) -> bool:
        return any(e.model == model for e in self._queue)

    async def request_permission(
        self,
        model: str,
        estimated_tokens: int,
        priority: RequestPriority = RequestPriority.NORMAL,
    ):
        """Wait until a request for `model` fits, then count it.

        Raises:
            RateLimitQueueClearedError: If the queue is cleared while waiting.
        """
        async with self._condition:
            if not self._has_waiters(model) and self.can_make_request(model, estimated_tokens):
                self.record_usage(model, estimated_tokens)
                return
            entry = _QueuedRequest(model, estimated_tokens, priority)
            self._enqueue(entry)
            self._ensure_wakeup_task()
            await self._condition.wait_for(lambda: entry.granted or entry.cancelled)
        if entry.cancelled:
            raise RateLimitQueueClearedError(model)

    async def release(self, model: str, estimated_tokens: int, actual_tokens: int):
        """Replace an estimate with the tokens a call actually used."""
        usage = self._usage.get(model)
        async with self._condition:
            if usage is not None:
                usage.tokens = max(0, usage.tokens + actual_tokens - estimated_tokens)
            if self._grant_waiters():
                self._condition.notify_all()

    async def wake_waiters(self):
        """Re-check queued requests against the (possibly reset) windows."""
        async with self._condition:
            if self._grant_waiters():
                self._condition.notify_all()

    def _next_reset_delay(self) -> float:
        now = self._clock()
        pending = {e.model for e in self._queue}
        resets = [self._usage[m].reset_at - now for m in pending if m in self._usage]
        return max(0.0, min(resets)) if resets else 0.0

    def _ensure_wakeup_task(self):
        if self._wakeup_task is None or self._wakeup_task.done():
            self._wakeup_task = asyncio.get_running_loop().create_task(self._wakeup_loop())

    async def _wakeup_loop(self):
        while self._queue:
            await self._sleep(self._next_reset_delay())
            await self.wake_waiters()

    async def clear_queue(self) -> int:
        """Reject every queued request. Returns the number cancelled."""
        async with self._condition:
            cleared = len(self._queue)
            for entry in self._queue:
                entry.cancelled = True
            self._queue = []
            self._condition.notify_all()
        if self._wakeup_task is not None:
            self._wakeup_task.cancel()
            self._wakeup_task = None
        logger.warning("Rate limiter queue cleared (%d requests cancelled)", cleared)
        return cleared

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    # ---- Status ----

    def get_status(self, model: str) -> Optional[RateLimitStatus]:
        limits = self._limits.get(model)
        if limits is None:
            return None
        self._refresh_window(model)
        usage = self._usage[model]
        return RateLimitStatus(
            model=model,
            requests_remaining=max(0, limits.requests_per_minute - usage.requests),
            tokens_remaining=max(0, limits.tokens_per_minute - usage.tokens),
            reset_in_seconds=max(0.0, usage.reset_at - self._clock()),
            is_limited=not self.can_make_request(model, 0),
        )

    def get_all_status(self) -> list[RateLimitStatus]:
        return [self.get_status(m) for m in self._limits]

    # ---- Token estimation and cost tracking ----

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough approximation: 1 token per 4 characters."""
        return math.ceil(len(text or "") / 4)

    @staticmethod
    def estimate_request_tokens(input_text: str, max_tokens: int = 1000) -> int:
        """Input estimate plus the output budget plus a 100 token buffer."""
        return RateLimiter.estimate_tokens(input_text) + max_tokens + 100

    def track_token_usage(
        self, model: str, input_tokens: int, output_tokens: int, context: Optional[str] = None,
    ) -> float:
        """Accumulate session token/cost totals. Returns this call's cost."""
        pricing = TOKEN_PRICING.get(model, TOKEN_PRICING[_DEFAULT_PRICING_MODEL])
        cost = input_tokens / 1000 * pricing["input"] + output_tokens / 1000 * pricing["output"]
        self._stats.total_tokens += input_tokens + output_tokens
        self._stats.total_requests += 1
        self._stats.estimated_cost += cost
        logger.info(
            "Cost tracking: %s - %d tokens (~$%.4f)%s",
            model, input_tokens + output_tokens, cost, f" [{context}]" if context else "",
        )
        return cost

    def get_usage_stats(self) -> TokenUsageStats:
        return TokenUsageStats(
            total_tokens=self._stats.total_tokens,
            total_requests=self._stats.total_requests,
            estimated_cost=self._stats.estimated_cost,
            last_reset=self._stats.last_reset,
        )

    def reset_usage_tracking(self):
        self._stats = TokenUsageStats()
