"""Tests for the dual-scope RateLimiter."""

from agentrelay.application.rate_limiter import MIN_RETRY_AFTER_MS, RateLimiter


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def test_config_bucket_admits_limit_then_denies() -> None:
    limiter = RateLimiter(clock=FakeClock())

    for i in range(60):
        assert limiter.check("cfg", f"user-{i}").allowed

    decision = limiter.check("cfg", "user-new")
    assert not decision.allowed
    assert decision.retry_after_ms is not None
    assert decision.retry_after_ms >= MIN_RETRY_AFTER_MS


def test_user_bucket_denies_while_config_has_capacity() -> None:
    limiter = RateLimiter(clock=FakeClock())

    for _ in range(20):
        assert limiter.check("cfg", "alice").allowed

    assert not limiter.check("cfg", "alice").allowed
    assert limiter.check("cfg", "bob").allowed


def test_user_denial_does_not_consume_config_token() -> None:
    limiter = RateLimiter(config_limit=21, user_limit=20, clock=FakeClock())

    for _ in range(20):
        assert limiter.check("cfg", "alice").allowed
    for _ in range(5):
        assert not limiter.check("cfg", "alice").allowed

    # One config token is still left for another user.
    assert limiter.check("cfg", "bob").allowed
    assert not limiter.check("cfg", "carol").allowed


def test_config_denial_leaves_user_bucket_untouched() -> None:
    limiter = RateLimiter(config_limit=2, user_limit=5, clock=FakeClock())

    assert limiter.check("cfg", "alice").allowed
    assert limiter.check("cfg", "bob").allowed
    assert not limiter.check("cfg", "carol").allowed

    # carol's bucket was never created by the denied request.
    assert limiter.bucket_count() == 3


def test_buckets_refill_over_the_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    for i in range(60):
        limiter.check("cfg", f"user-{i}")
    assert not limiter.check("cfg", "late").allowed

    clock.advance(60_000)
    assert limiter.check("cfg", "late").allowed


def test_partial_refill_is_proportional() -> None:
    clock = FakeClock()
    limiter = RateLimiter(config_limit=60, user_limit=60, clock=clock)

    for _ in range(60):
        limiter.check("cfg", "alice")

    # 5 seconds of a 60 second window refill 5 of 60 tokens.
    clock.advance(5_000)
    admitted = sum(limiter.check("cfg", "alice").allowed for _ in range(10))
    assert admitted == 5


def test_retry_after_is_never_below_minimum() -> None:
    clock = FakeClock()
    limiter = RateLimiter(config_limit=1, user_limit=1, window_ms=60_000, clock=clock)

    assert limiter.check("cfg", "alice").allowed
    clock.advance(59_900)
    decision = limiter.check("cfg", "alice")

    assert not decision.allowed
    assert decision.retry_after_ms == MIN_RETRY_AFTER_MS


def test_retry_after_reflects_remaining_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(config_limit=1, user_limit=1, clock=clock)

    limiter.check("cfg", "alice")
    clock.advance(10_000)

    assert limiter.check("cfg", "alice").retry_after_ms == 50_000


def test_clock_going_backwards_does_not_drain() -> None:
    clock = FakeClock(now=10_000)
    limiter = RateLimiter(config_limit=3, user_limit=3, clock=clock)

    assert limiter.check("cfg", "alice").allowed
    clock.now = 0
    assert limiter.check("cfg", "alice").allowed
    assert limiter.check("cfg", "alice").allowed
    assert not limiter.check("cfg", "alice").allowed


def test_configs_are_independent() -> None:
    limiter = RateLimiter(config_limit=1, user_limit=1, clock=FakeClock())

    assert limiter.check("cfg-a", "alice").allowed
    assert not limiter.check("cfg-a", "alice").allowed
    assert limiter.check("cfg-b", "alice").allowed


def test_cleanup_removes_idle_buckets() -> None:
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    limiter.check("cfg", "alice")
    assert limiter.bucket_count() == 2

    clock.advance(60_000)
    assert limiter.cleanup() == 0

    clock.advance(60_001)
    assert limiter.cleanup() == 2
    assert limiter.bucket_count() == 0


def test_cleanup_keeps_recently_refilled_buckets() -> None:
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    limiter.check("cfg", "alice")
    clock.advance(100_000)
    limiter.check("cfg", "bob")
    clock.advance(30_000)

    # alice's user bucket is idle, the config bucket refilled at 100s.
    assert limiter.cleanup() == 1
    assert limiter.bucket_count() == 2
