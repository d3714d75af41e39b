"""Tests for SlidingWindowRateLimiter."""

import pytest


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestSlidingWindow:
    def test_allows_up_to_limit(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=3, window_seconds=60, clock=clock)

        assert [limiter.check_and_increment("a") for _ in range(4)] == [True, True, True, False]

    def test_clients_are_independent(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=60, clock=clock)

        assert limiter.check_and_increment("a")
        assert not limiter.check_and_increment("a")
        assert limiter.check_and_increment("b")

    def test_window_slides(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=2, window_seconds=60, clock=clock)

        limiter.check_and_increment("a")
        clock.now += 30
        limiter.check_and_increment("a")
        assert not limiter.check_and_increment("a")

        clock.now += 30
        assert limiter.check_and_increment("a")
        assert not limiter.check_and_increment("a")

    def test_rejected_requests_do_not_count(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=10, clock=clock)

        limiter.check_and_increment("a")
        for _ in range(5):
            limiter.check_and_increment("a")
        clock.now += 10

        assert limiter.check_and_increment("a")

    def test_status_headers(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=10, window_seconds=60, clock=clock)

        assert limiter.status("new").headers() == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "10",
            "X-RateLimit-Reset": "1060",
        }

        limiter.check_and_increment("a")
        clock.now += 5
        limiter.check_and_increment("a")
        status = limiter.status("a")

        assert status.remaining == 8
        assert status.reset_at == 1060.0

    def test_reset(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=1, clock=clock)
        limiter.check_and_increment("a")

        limiter.reset()

        assert limiter.check_and_increment("a")

    def test_invalid_limit(self):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(limit=0)


class TestForgetsIdleClients:
    def test_returning_client_entry_is_pruned(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=5, window_seconds=60, clock=clock)

        limiter.check_and_increment("a")
        clock.now += 60

        assert limiter.status("a").remaining == 5
        assert "a" not in limiter._hits

    def test_status_of_unknown_client_adds_nothing(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=5, window_seconds=60, clock=clock)

        limiter.status("stranger")

        assert limiter._hits == {}

    def test_idle_clients_are_swept(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=5, window_seconds=60, clock=clock)

        for i in range(100):
            limiter.check_and_increment(f"client-{i}")
        assert len(limiter._hits) == 100

        clock.now += 61
        limiter.check_and_increment("new")

        assert list(limiter._hits) == ["new"]

    def test_active_clients_survive_sweep(self, clock):
        from huddle.common.rate_limiter import SlidingWindowRateLimiter
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=60, clock=clock)

        limiter.check_and_increment("idle")
        clock.now += 30
        limiter.check_and_increment("busy")
        clock.now += 31

        assert limiter.check_and_increment("other")
        assert set(limiter._hits) == {"busy", "other"}
        assert not limiter.check_and_increment("busy")
