"""Tests for the token-bucket RateLimiter."""

import asyncio
import threading

import pytest

from agora.errors import RateLimited
from agora.models import RateLimitPolicy
from agora.rate_limit import RateLimiter, raise_if_denied


class TestAllow:
    """Tests for allow()."""

    def test_burst_then_denial(self, limiter, clock):
        """Capacity 10 at 2/s: ten grants, then a denial asking for one second."""
        results = [limiter.allow("k", capacity=10, refill_rate=2) for _ in range(10)]
        assert all(r.granted for r in results)
        assert [r.remaining for r in results] == list(range(9, -1, -1))

        denied = limiter.allow("k", capacity=10, refill_rate=2)
        assert not denied.granted
        assert denied.retry_after == 1
        assert denied.remaining == 0
        assert denied.limit == 10

    def test_retry_after_elapsed_grants(self, limiter, clock):
        for _ in range(10):
            limiter.allow("k", capacity=10, refill_rate=2)
        denied = limiter.allow("k", capacity=10, refill_rate=2)

        clock.advance(denied.retry_after)

        assert limiter.allow("k", capacity=10, refill_rate=2).granted

    def test_retry_after_rounds_up(self, limiter, clock):
        for _ in range(5):
            limiter.allow("k", capacity=5, refill_rate=0.5)
        clock.advance(1)  # half a token back

        denied = limiter.allow("k", capacity=5, refill_rate=0.5)

        assert not denied.granted
        assert denied.retry_after == 1

    def test_refill_capped_at_capacity(self, limiter, clock):
        limiter.allow("k", capacity=3, refill_rate=1)
        clock.advance(3600)

        granted = [limiter.allow("k", capacity=3, refill_rate=1).granted for _ in range(4)]

        assert granted == [True, True, True, False]

    @pytest.mark.parametrize("capacity,rate,window", [(10, 2, 7.5), (5, 1, 3), (60, 1, 30)])
    def test_rolling_window_bound(self, limiter, clock, capacity, rate, window):
        """Over any window, grants never exceed capacity + rate * window."""
        granted = 0
        steps = 40
        for _ in range(steps):
            for _ in range(5):
                if limiter.allow("k", capacity=capacity, refill_rate=rate).granted:
                    granted += 1
            clock.advance(window / steps)

        assert granted <= capacity + rate * window

    def test_cost_above_capacity_is_error(self, limiter):
        with pytest.raises(ValueError):
            limiter.allow("k", capacity=5, refill_rate=1, cost=6)

    def test_keys_are_independent(self, limiter):
        for _ in range(3):
            limiter.allow("a", capacity=3, refill_rate=1)

        assert not limiter.allow("a", capacity=3, refill_rate=1).granted
        assert limiter.allow("b", capacity=3, refill_rate=1).granted

    def test_concurrent_threads_never_overgrant(self):
        """Refill-and-debit is atomic per key."""
        limiter = RateLimiter(
            RateLimitPolicy("address", 100, 10),
            RateLimitPolicy("credential", 60, 1),
            clock=lambda: 0.0,
        )
        granted = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                if limiter.allow("shared", capacity=100, refill_rate=1).granted:
                    with lock:
                        granted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(granted) == 100


class TestAdmit:
    """Tests for the two-policy admission."""

    def test_coarse_denial_wins_and_spares_credential(self, clock):
        limiter = RateLimiter(
            RateLimitPolicy("address", 2, 1),
            RateLimitPolicy("credential", 60, 1),
            clock=clock,
        )
        limiter.admit("1.2.3.4", "key")
        limiter.admit("1.2.3.4", "key")

        denied = limiter.admit("1.2.3.4", "key")

        assert not denied.granted
        assert denied.limit == 2
        # Credential bucket was debited twice, not three times.
        fine = limiter.check(limiter.credential_policy, "key")
        assert fine.remaining == 57

    def test_credential_result_reported(self, limiter):
        result = limiter.admit("1.2.3.4", "key")

        assert result.granted
        assert result.limit == 60
        assert result.remaining == 59

    def test_credential_denial(self, clock):
        limiter = RateLimiter(
            RateLimitPolicy("address", 100, 10),
            RateLimitPolicy("credential", 1, 1),
            clock=clock,
        )
        limiter.admit("addr", "key")

        with pytest.raises(RateLimited) as exc_info:
            limiter.enforce("addr", "key")

        assert exc_info.value.retry_after == 1
        assert exc_info.value.to_dict()["retryAfter"] == 1


class TestRaiseIfDenied:
    def test_granted_is_noop(self, limiter):
        raise_if_denied(limiter.allow("k", capacity=1, refill_rate=1))

    def test_denied_raises(self, limiter):
        limiter.allow("k", capacity=1, refill_rate=1)
        with pytest.raises(RateLimited):
            raise_if_denied(limiter.allow("k", capacity=1, refill_rate=1))


class TestSweep:
    """Tests for idle bucket eviction."""

    def test_sweep_removes_idle_full_buckets(self, limiter, clock):
        limiter.allow("idle", capacity=10, refill_rate=1)
        clock.advance(3600)
        limiter.allow("busy", capacity=10, refill_rate=1)

        removed = limiter.sweep(idle_seconds=3600)

        assert removed == 1
        assert len(limiter) == 1

    def test_sweep_keeps_recent_buckets(self, limiter, clock):
        limiter.allow("k", capacity=10, refill_rate=1)
        clock.advance(10)

        assert limiter.sweep(idle_seconds=3600) == 0
        assert len(limiter) == 1

    def test_sweep_keeps_buckets_not_yet_refilled(self, limiter, clock):
        for _ in range(10):
            limiter.allow("k", capacity=10, refill_rate=0.001)
        clock.advance(60)

        assert limiter.sweep(idle_seconds=30) == 0

    def test_swept_key_starts_full(self, limiter, clock):
        for _ in range(3):
            limiter.allow("k", capacity=3, refill_rate=1)
        clock.advance(100)
        limiter.sweep(idle_seconds=50)

        assert limiter.allow("k", capacity=3, refill_rate=1).remaining == 2

    async def test_run_sweeper_stops_on_cancel(self, limiter):
        task = asyncio.create_task(limiter.run_sweeper(0.01, 3600))
        await asyncio.sleep(0.03)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert task.done()


class TestResetAt:
    def test_reset_at_uses_wall_clock(self, limiter, clock):
        result = limiter.allow("k", capacity=10, refill_rate=2)
        assert limiter.reset_at(result) == int(clock.now + 0.5)
