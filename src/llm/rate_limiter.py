"""Token bucket limiter for AI provider calls.

Two buckets (requests and tokens) are refilled to capacity once a full
window has elapsed since the last refill; a per-second burst counter caps
how many calls may start within the same second.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from src.settings import get_settings

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class TokenBucketRateLimiter:
    """Thread-safe request/token budget for LLM calls."""

    def __init__(
        self,
        requests_per_minute: int = 60,
        tokens_per_minute: int = 150_000,
        burst_limit: int = 10,
        time_func: Callable[[], float] | None = None,
    ):
        """Initialize the limiter.

        Args:
            requests_per_minute: Request bucket capacity
            tokens_per_minute: Token bucket capacity
            burst_limit: Max calls started within one second
            time_func: Callable returning current time in seconds (default: time.monotonic).
                       Inject a mock clock for deterministic testing.
        """
        self.requests_per_minute = requests_per_minute
        self.tokens_per_minute = tokens_per_minute
        self.burst_limit = burst_limit
        self._time_func = time_func or time.monotonic
        self._lock = threading.Lock()
        self._requests = requests_per_minute
        self._tokens = tokens_per_minute
        self._last_refill = self._time_func()
        self._burst_second: int | None = None
        self._burst_count = 0

    def _refill(self, now: float) -> None:
        if now - self._last_refill >= WINDOW_SECONDS:
            self._requests = self.requests_per_minute
            self._tokens = self.tokens_per_minute
            self._last_refill = now

    def try_consume(self, estimated_tokens: int) -> bool:
        """Take one request and ``estimated_tokens`` tokens if available."""
        with self._lock:
            now = self._time_func()
            self._refill(now)

            second = int(now)
            if second != self._burst_second:
                self._burst_second = second
                self._burst_count = 0

            if self._requests < 1 or self._tokens < estimated_tokens:
                logger.warning(
                    "AI rate limit reached: %d requests, %d tokens left",
                    self._requests,
                    self._tokens,
                )
                return False
            if self._burst_count >= self.burst_limit:
                logger.warning("AI burst limit of %d/s reached", self.burst_limit)
                return False

            self._requests -= 1
            self._tokens -= estimated_tokens
            self._burst_count += 1
            return True

    def seconds_until_refill(self) -> float:
        with self._lock:
            elapsed = self._time_func() - self._last_refill
            return max(0.0, WINDOW_SECONDS - elapsed)

    def status(self) -> dict[str, Any]:
        with self._lock:
            now = self._time_func()
            self._refill(now)
            return {
                "remaining_requests": self._requests,
                "remaining_tokens": self._tokens,
                "seconds_until_refill": round(max(0.0, WINDOW_SECONDS - (now - self._last_refill)), 2),
                "requests_per_minute": self.requests_per_minute,
                "tokens_per_minute": self.tokens_per_minute,
                "burst_limit": self.burst_limit,
            }


_limiter: TokenBucketRateLimiter | None = None
_limiter_lock = threading.Lock()


def get_ai_rate_limiter() -> TokenBucketRateLimiter:
    """Process-wide limiter configured from settings."""
    global _limiter
    if _limiter is None:
        with _limiter_lock:
            if _limiter is None:
                settings = get_settings()
                _limiter = TokenBucketRateLimiter(
                    requests_per_minute=settings.ai_requests_per_minute,
                    tokens_per_minute=settings.ai_tokens_per_minute,
                    burst_limit=settings.ai_burst_limit,
                )
    return _limiter


def reset_ai_rate_limiter() -> None:
    global _limiter
    with _limiter_lock:
        _limiter = None
