"""Sliding window rate limiter with a bounded timestamp log."""

import time
import bisect
from dataclasses import dataclass
from typing import Callable, List

from ..constants import DEFAULT_MAX_TRACKED_REQUESTS, MS_PER_SECOND
from ..errors import rate_limit_exceeded

import logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_ms: int


class RateLimiter:
    """
    Admit at most ``max_requests`` within any trailing ``window_secs``.

    Timestamps are kept in ascending order, which lets expired entries be
    dropped with a binary search and one slice deletion. The log is also capped
    at ``max_tracked`` entries so memory stays bounded even when the window or
    the limit is misconfigured.

    Example:
        limiter = RateLimiter(max_requests=10, window_secs=60)
        limiter.check_limit()  # raises BrowserToolError(RATE_LIMIT_EXCEEDED) when full
    """

    def __init__(
        self,
        max_requests: int,
        window_secs: float,
        max_tracked: int = DEFAULT_MAX_TRACKED_REQUESTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_secs <= 0:
            raise ValueError("window_secs must be > 0")
        self.max_requests = int(max_requests)
        self.window_secs = float(window_secs)
        self.max_tracked = max(1, int(max_tracked))
        self._clock = clock
        self._timestamps: List[float] = []

    @property
    def tracked(self) -> int:
        """Number of timestamps currently held."""
        return len(self._timestamps)

    def check_limit(self) -> None:
        """Consume a slot, or raise RATE_LIMIT_EXCEEDED if the window is full."""
        if not self.can_accept():
            logger.warning(
                f"Rate limit reached: {len(self._timestamps)}/{self.max_requests} "
                f"in {self.window_secs:g}s window"
            )
            raise rate_limit_exceeded(self.max_requests, self.window_secs)
        self._record(self._clock())

    consume_token = check_limit

    def can_accept(self) -> bool:
        """Read-only admission check."""
        self._prune(self._clock())
        return len(self._timestamps) < self.max_requests

    def get_status(self) -> RateLimitStatus:
        now = self._clock()
        self._prune(now)

        count = len(self._timestamps)
        if self._timestamps:
            reset_secs = max(0.0, self._timestamps[0] + self.window_secs - now)
            reset_ms = int(round(reset_secs * MS_PER_SECOND))
        else:
            reset_ms = 0

        return RateLimitStatus(
            allowed=count < self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_ms=reset_ms,
        )

    def reset(self) -> None:
        self._timestamps.clear()

    def _record(self, now: float) -> None:
        # bisect in _prune relies on ascending order; a clock that steps back
        # is clamped to the newest entry instead of breaking the ordering.
        if self._timestamps and now < self._timestamps[-1]:
            logger.warning(
                f"Rate limiter clock went backwards by {self._timestamps[-1] - now:.6f}s; "
                "clamping to last recorded timestamp"
            )
            now = self._timestamps[-1]
        self._timestamps.append(now)
        if len(self._timestamps) > self.max_tracked:
            del self._timestamps[: len(self._timestamps) - self.max_tracked]

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_secs
        first_live = bisect.bisect_right(self._timestamps, cutoff)
        if first_live:
            del self._timestamps[:first_live]

        excess = len(self._timestamps) - self.max_tracked
        if excess > 0:
            del self._timestamps[:excess]


__all__ = ["RateLimiter", "RateLimitStatus"]
