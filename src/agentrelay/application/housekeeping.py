"""Periodic cleanup of the relay's in-memory state.

Runs as a background ``asyncio.Task`` and sweeps idle rate-limiter
buckets and expired session-cache entries so memory stays bounded.

Usage::

    housekeeping = Housekeeping(rate_limiter, session_router, interval=300)
    await housekeeping.start()
    ...
    await housekeeping.stop()
"""

from __future__ import annotations

import asyncio

import structlog

from agentrelay.application.rate_limiter import RateLimiter
from agentrelay.application.session_router import SessionRouter

logger = structlog.get_logger(__name__)


class Housekeeping:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        session_router: SessionRouter,
        *,
        interval: float = 300.0,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._session_router = session_router
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._loop(), name="relay-housekeeping")
        logger.info("housekeeping.started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Cancel the background sweep task."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("housekeeping.stopped")

    def sweep(self) -> tuple[int, int]:
        """Run one cleanup pass.

        Returns:
            (removed rate-limit buckets, removed session-cache entries)
        """
        buckets = self._rate_limiter.cleanup()
        sessions = self._session_router.cleanup()
        if buckets or sessions:
            logger.info("housekeeping.swept", buckets=buckets, sessions=sessions)
        return buckets, sessions

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sweep()
            except Exception as exc:
                logger.error("housekeeping.sweep_failed", error=str(exc))
