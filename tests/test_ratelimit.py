"""Tests for request pacing."""

from __future__ import annotations

import pytest

from taskbridge.core.ratelimit import RateLimiter


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    def test_disabled_never_sleeps(self):
        clock = FakeClock()
        limiter = RateLimiter(0, clock=clock, sleep=clock.sleep)
        for _ in range(10):
            assert limiter.wait() == 0.0
        assert clock.sleeps == []

    def test_first_call_is_immediate(self):
        clock = FakeClock()
        limiter = RateLimiter(2, clock=clock, sleep=clock.sleep)
        assert limiter.wait() == 0.0

    def test_back_to_back_calls_are_spaced(self):
        clock = FakeClock()
        limiter = RateLimiter(4, clock=clock, sleep=clock.sleep)

        delays = [limiter.wait() for _ in range(3)]

        assert delays == pytest.approx([0.0, 0.25, 0.25])
        assert clock.now == pytest.approx(100.5)

    def test_idle_time_is_not_banked(self):
        clock = FakeClock()
        limiter = RateLimiter(1, clock=clock, sleep=clock.sleep)
        limiter.wait()
        clock.now += 10

        assert limiter.wait() == 0.0
        assert limiter.wait() == pytest.approx(1.0)

    def test_interval(self):
        assert RateLimiter(3).interval == pytest.approx(1 / 3)
        assert RateLimiter(-1).interval == 0.0
