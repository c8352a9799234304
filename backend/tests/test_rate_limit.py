"""
DreamWeaver Backend — Rate Limiter Tests
=========================================

The limiter takes an explicit `now`, so the window is exercised without
sleeping.
"""

from dreamweaver.middleware.rate_limit import SlidingWindowLimiter


class TestSlidingWindowLimiter:

    def test_allows_up_to_limit(self):
        limiter = SlidingWindowLimiter(max_requests=3, window_seconds=60)
        assert [limiter.hit("1.2.3.4", now=t) for t in (0, 1, 2)] == [None, None, None]

    def test_refuses_over_limit_with_retry_after(self):
        limiter = SlidingWindowLimiter(max_requests=2, window_seconds=60)
        limiter.hit("1.2.3.4", now=0)
        limiter.hit("1.2.3.4", now=10)

        retry_after = limiter.hit("1.2.3.4", now=20)

        # Oldest hit (t=0) leaves the window at t=60
        assert retry_after == 41

    def test_window_slides(self):
        limiter = SlidingWindowLimiter(max_requests=2, window_seconds=60)
        limiter.hit("1.2.3.4", now=0)
        limiter.hit("1.2.3.4", now=10)
        assert limiter.hit("1.2.3.4", now=30) is not None

        assert limiter.hit("1.2.3.4", now=61) is None

    def test_refused_hits_are_not_counted(self):
        limiter = SlidingWindowLimiter(max_requests=1, window_seconds=60)
        limiter.hit("1.2.3.4", now=0)
        for t in range(1, 50):
            limiter.hit("1.2.3.4", now=t)

        assert limiter.hit("1.2.3.4", now=60.5) is None

    def test_keys_are_independent(self):
        limiter = SlidingWindowLimiter(max_requests=1, window_seconds=60)
        limiter.hit("1.2.3.4", now=0)
        assert limiter.hit("5.6.7.8", now=1) is None

    def test_prune_drops_idle_keys(self):
        limiter = SlidingWindowLimiter(max_requests=5, window_seconds=60)
        limiter.hit("idle", now=0)
        limiter.hit("busy", now=100)

        removed = limiter.prune(now=120)

        assert removed == 1
        assert len(limiter) == 1
