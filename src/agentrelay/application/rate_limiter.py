"""
Token-bucket rate limiter.

Every request is checked against two buckets:

1. Per channel config: 60 requests per window.
2. Per user within a config: 20 requests per window.

Buckets refill linearly over the window. Tokens are only consumed when
both buckets admit the request.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from agentrelay.core.domain.channels import RateLimitDecision
from agentrelay.core.interfaces.logging import LoggerProtocol

DEFAULT_CONFIG_LIMIT = 60
DEFAULT_USER_LIMIT = 20
DEFAULT_WINDOW_MS = 60_000

# Denials never ask callers to retry sooner than this.
MIN_RETRY_AFTER_MS = 1_000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class _Bucket:
    tokens: int
    last_refill_at: float


class RateLimiter:
    """Dual-scope token-bucket admission control.

    Args:
        config_limit: Capacity of each per-config bucket.
        user_limit: Capacity of each per-user bucket.
        window_ms: Time for an empty bucket to refill completely.
        clock: Millisecond clock, monotonic by default.
    """

    def __init__(
        self,
        *,
        config_limit: int = DEFAULT_CONFIG_LIMIT,
        user_limit: int = DEFAULT_USER_LIMIT,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Callable[[], float] | None = None,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._config_limit = config_limit
        self._user_limit = user_limit
        self._window_ms = window_ms
        self._clock = clock or _monotonic_ms
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        self._logger = logger or structlog.get_logger().bind(component="rate_limiter")

    def check(self, config_id: str, user_id: str) -> RateLimitDecision:
        """Decide whether a request is admitted, consuming tokens if so.

        The config bucket is evaluated first; when it denies, the user
        bucket is left untouched.
        """
        config_key = f"config:{config_id}"
        user_key = f"user:{config_id}:{user_id}"

        with self._lock:
            now = self._clock()
            config_decision = self._evaluate(config_key, self._config_limit, now)
            if not config_decision.allowed:
                self._logger.debug(
                    "rate_limiter.denied",
                    scope="config",
                    config_id=config_id,
                    retry_after_ms=config_decision.retry_after_ms,
                )
                return config_decision

            user_decision = self._evaluate(user_key, self._user_limit, now)
            if not user_decision.allowed:
                self._logger.debug(
                    "rate_limiter.denied",
                    scope="user",
                    config_id=config_id,
                    user_id=user_id,
                    retry_after_ms=user_decision.retry_after_ms,
                )
                return user_decision

            self._buckets[config_key].tokens -= 1
            self._buckets[user_key].tokens -= 1

        return RateLimitDecision(allowed=True)

    def cleanup(self) -> int:
        """Drop buckets idle for more than twice the window.

        Returns:
            Number of buckets removed.
        """
        max_idle = self._window_ms * 2
        with self._lock:
            now = self._clock()
            stale = [
                key
                for key, bucket in self._buckets.items()
                if now - bucket.last_refill_at > max_idle
            ]
            for key in stale:
                del self._buckets[key]
        if stale:
            self._logger.debug("rate_limiter.cleanup", removed=len(stale))
        return len(stale)

    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evaluate(self, key: str, limit: int, now: float) -> RateLimitDecision:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=limit, last_refill_at=now)
            self._buckets[key] = bucket

        # A clock stepping backwards never drains a bucket.
        elapsed = max(0.0, now - bucket.last_refill_at)
        refill = math.floor(elapsed / self._window_ms * limit)
        if refill > 0:
            bucket.tokens = min(limit, bucket.tokens + refill)
            bucket.last_refill_at = now

        if bucket.tokens <= 0:
            retry_after_ms = max(int(self._window_ms - elapsed), MIN_RETRY_AFTER_MS)
            return RateLimitDecision(allowed=False, retry_after_ms=retry_after_ms)
        return RateLimitDecision(allowed=True)
