"""
Hypothesis Property-Based Tests for SlidingWindowRateLimiter.

Replays random attempt schedules against a simple model of the window.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from visionai.services.rate_limiter import SlidingWindowRateLimiter

# ============================================================================
# Hypothesis Strategies
# ============================================================================

max_attempts = st.integers(min_value=1, max_value=10)
windows = st.integers(min_value=1, max_value=3600)
# Gaps between consecutive attempts, in seconds
gaps = st.lists(st.integers(min_value=0, max_value=2000), min_size=1, max_size=60)
clients = st.sampled_from(["10.0.0.1", "10.0.0.2", "10.0.0.3"])


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestRateLimiterProperties:
    """Invariants of the window counter."""

    @given(limit=max_attempts, window=windows, schedule=gaps)
    @settings(max_examples=200)
    def test_allowed_attempts_per_window_never_exceed_limit(
        self, limit: int, window: int, schedule: list[int]
    ) -> None:
        """Within any one window at most `limit` attempts are allowed."""
        clock = Clock()
        limiter = SlidingWindowRateLimiter("prop", limit, window, clock=clock)

        window_start: float | None = None
        allowed_in_window = 0
        for gap in schedule:
            clock.now += gap
            decision = limiter.check_and_record("ip")

            if window_start is None or clock.now - window_start > window:
                window_start = clock.now
                allowed_in_window = 0
            if decision.allowed:
                allowed_in_window += 1

            assert allowed_in_window <= limit
            assert 0 <= decision.remaining <= limit - 1 or not decision.allowed

    @given(limit=max_attempts, window=windows, schedule=gaps)
    @settings(max_examples=200)
    def test_matches_reference_model(
        self, limit: int, window: int, schedule: list[int]
    ) -> None:
        clock = Clock()
        limiter = SlidingWindowRateLimiter("prop", limit, window, clock=clock)

        count = 0
        start: float | None = None
        for gap in schedule:
            clock.now += gap
            if start is None or clock.now - start > window:
                count, start, expected = 1, clock.now, True
            elif count >= limit:
                expected = False
            else:
                count, expected = count + 1, True

            decision = limiter.check_and_record("ip")
            assert decision.allowed is expected
            if not decision.allowed:
                assert 1 <= decision.retry_after_seconds <= window

    @given(limit=max_attempts, window=windows, attempts=st.lists(clients, max_size=40))
    @settings(max_examples=100)
    def test_clients_do_not_affect_each_other(
        self, limit: int, window: int, attempts: list[str]
    ) -> None:
        shared = SlidingWindowRateLimiter("prop", limit, window, clock=Clock())
        separate = {ip: SlidingWindowRateLimiter("prop", limit, window, clock=Clock()) for ip in set(attempts)}

        for ip in attempts:
            assert shared.check_and_record(ip).allowed is separate[ip].check_and_record(ip).allowed

    @given(schedule=gaps, cleanup=st.integers(min_value=1, max_value=3000))
    @settings(max_examples=100)
    def test_sweep_keeps_only_recent_clients(self, schedule: list[int], cleanup: int) -> None:
        clock = Clock()
        limiter = SlidingWindowRateLimiter(
            "prop", 5, 900, cleanup_after_seconds=cleanup, clock=clock
        )
        last_seen: dict[str, float] = {}
        for i, gap in enumerate(schedule):
            clock.now += gap
            ip = f"10.0.0.{i % 4}"
            limiter.check_and_record(ip)
            last_seen[ip] = clock.now

        limiter.sweep()

        for ip, seen in last_seen.items():
            assert (ip in limiter) is (clock.now - seen <= cleanup)
