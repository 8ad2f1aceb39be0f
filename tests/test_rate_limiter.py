import pytest

from dmmcache.services.rate_limiter import UNKNOWN_IDENTITY, RateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_thirty_first_request_is_rejected():
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=60, max_requests=30, clock=clock)

    decisions = [limiter.check("1.2.3.4") for _ in range(30)]
    assert all(decision.allowed for decision in decisions)
    assert decisions[0].remaining == 29
    assert decisions[-1].remaining == 0

    rejected = limiter.check("1.2.3.4")
    assert not rejected.allowed
    assert rejected.retry_after == 60
    assert rejected.remaining == 0


def test_window_resets_after_expiry():
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=60, max_requests=2, clock=clock)

    limiter.check("a")
    limiter.check("a")
    assert not limiter.check("a").allowed

    # still inside the window at exactly reset_at
    clock.now += 60
    assert not limiter.check("a").allowed

    clock.now += 0.001
    decision = limiter.check("a")
    assert decision.allowed
    assert decision.remaining == 1


def test_identities_are_independent():
    limiter = RateLimiter(window_seconds=60, max_requests=1, clock=FakeClock())

    assert limiter.check("a").allowed
    assert not limiter.check("a").allowed
    assert limiter.check("b").allowed


def test_missing_identity_shares_unknown_bucket():
    limiter = RateLimiter(window_seconds=60, max_requests=1, clock=FakeClock())

    assert limiter.check(None).allowed
    assert not limiter.check("").allowed
    assert not limiter.check(UNKNOWN_IDENTITY).allowed


def test_purge_expired_drops_only_old_windows():
    clock = FakeClock()
    limiter = RateLimiter(window_seconds=60, max_requests=5, clock=clock)

    limiter.check("old")
    clock.now += 61
    limiter.check("fresh")

    assert limiter.purge_expired() == 1
    assert len(limiter) == 1


@pytest.mark.asyncio
async def test_start_and_stop_cleanup_task():
    limiter = RateLimiter(cleanup_interval=3600)
    limiter.check("a")

    limiter.start()
    assert limiter._cleanup_task is not None

    await limiter.stop()
    assert limiter._cleanup_task is None
    assert len(limiter) == 0
