"""Tests for the Housekeeping sweep loop."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from agentrelay.application.housekeeping import Housekeeping
from agentrelay.application.rate_limiter import RateLimiter
from agentrelay.application.session_router import SessionRouter
from agentrelay.infrastructure.persistence.session_store import InMemorySessionStore


class FakeAgentClient:
    async def create_session(self, agent_name: str | None = None) -> str:
        return "sess-1"


@pytest.mark.asyncio
async def test_sweep_cleans_limiter_and_router(make_config, make_message) -> None:
    ms = {"now": 0.0}
    wall = {"now": datetime(2026, 1, 1, tzinfo=timezone.utc)}
    limiter = RateLimiter(clock=lambda: ms["now"])
    router = SessionRouter(InMemorySessionStore(), time_provider=lambda: wall["now"])
    housekeeping = Housekeeping(limiter, router)

    limiter.check("cfg", "alice")
    await router.resolve(make_config(), make_message(), FakeAgentClient())
    assert housekeeping.sweep() == (0, 0)

    ms["now"] += 200_000
    wall["now"] += timedelta(days=1)

    assert housekeeping.sweep() == (2, 1)


@pytest.mark.asyncio
async def test_background_loop_runs_until_stopped() -> None:
    class CountingLimiter(RateLimiter):
        sweeps = 0

        def cleanup(self) -> int:
            CountingLimiter.sweeps += 1
            return 0

    housekeeping = Housekeeping(
        CountingLimiter(), SessionRouter(InMemorySessionStore()), interval=0.01
    )

    await housekeeping.start()
    assert housekeeping.running
    await asyncio.sleep(0.05)
    await housekeeping.stop()

    assert not housekeeping.running
    assert CountingLimiter.sweeps >= 2
