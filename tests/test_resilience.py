"""
Tests for services/resilience.py

Clocks are faked so rate-limit windows and circuit-breaker open periods
advance instantly.
"""

import pytest

from conftest import FakeGateway
from services.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    RateLimiter,
    RateLimitExceeded,
    ResilientGateway,
    is_transient,
)


class FakeClock:

    def __init__(self):
        self.now = 1_000.0
        self.slept = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


# ---------------------------------------------------------------------------
# RateLimiter
# ---------------------------------------------------------------------------


class TestRateLimiter:

    def test_waits_for_next_window(self):
        clock = FakeClock()
        limiter = RateLimiter("market", limit=2, period=1.0, timeout=5.0, clock=clock, sleep=clock.sleep)
        limiter.acquire()
        limiter.acquire()
        limiter.acquire()
        assert clock.slept == [pytest.approx(1.0)]

    def test_raises_when_wait_exceeds_timeout(self):
        clock = FakeClock()
        limiter = RateLimiter("trading", limit=1, period=10.0, timeout=5.0, clock=clock, sleep=clock.sleep)
        limiter.acquire()
        with pytest.raises(RateLimitExceeded):
            limiter.acquire()

    def test_invalid_settings(self):
        with pytest.raises(ValueError):
            RateLimiter("bad", limit=0)


# ---------------------------------------------------------------------------
# CircuitBreaker
# ---------------------------------------------------------------------------


class TestCircuitBreaker:

    def _breaker(self, clock):
        return CircuitBreaker(
            "test", failure_rate_threshold=0.5, window_size=10, minimum_calls=5,
            open_seconds=30, half_open_calls=3, clock=clock,
        )

    def test_stays_closed_below_minimum_calls(self):
        breaker = self._breaker(FakeClock())
        for _ in range(4):
            breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED

    def test_opens_at_failure_rate(self):
        clock = FakeClock()
        breaker = self._breaker(clock)
        for _ in range(3):
            breaker.record_success()
        for _ in range(3):
            breaker.record_failure()
        assert breaker.state is CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_half_open_then_closed_after_good_trials(self):
        clock = FakeClock()
        breaker = self._breaker(clock)
        for _ in range(5):
            breaker.record_failure()

        clock.now += 30
        assert breaker.state is CircuitState.HALF_OPEN
        for _ in range(3):
            breaker.before_call()
            breaker.record_success()
        assert breaker.state is CircuitState.CLOSED

    def test_half_open_limits_trial_calls(self):
        clock = FakeClock()
        breaker = self._breaker(clock)
        for _ in range(5):
            breaker.record_failure()
        clock.now += 30
        for _ in range(3):
            breaker.before_call()
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_failed_trials_reopen(self):
        clock = FakeClock()
        breaker = self._breaker(clock)
        for _ in range(5):
            breaker.record_failure()
        clock.now += 30
        for _ in range(3):
            breaker.before_call()
            breaker.record_failure()
        assert breaker.state is CircuitState.OPEN


# ---------------------------------------------------------------------------
# ResilientGateway
# ---------------------------------------------------------------------------


class FlakyGateway(FakeGateway):
    """Raises the queued errors on get_current_price, then answers."""

    def __init__(self, errors):
        super().__init__(price=123.0)
        self.errors = list(errors)
        self.attempts = 0

    def get_current_price(self, symbol):
        self.attempts += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.price


class TestResilientGateway:

    def test_retries_transient_errors(self):
        inner = FlakyGateway([ConnectionError("reset"), RuntimeError("Request timed out")])
        gateway = ResilientGateway(inner, retry_wait=0)
        assert gateway.get_current_price("BTCUSDT") == 123.0
        assert inner.attempts == 3

    def test_gives_up_after_attempts(self):
        inner = FlakyGateway([ConnectionError("a"), ConnectionError("b"), ConnectionError("c")])
        gateway = ResilientGateway(inner, retry_wait=0)
        with pytest.raises(ConnectionError):
            gateway.get_current_price("BTCUSDT")
        assert inner.attempts == 3

    def test_does_not_retry_business_errors(self):
        inner = FlakyGateway([ValueError("Insufficient margin")])
        gateway = ResilientGateway(inner, retry_wait=0)
        with pytest.raises(ValueError):
            gateway.get_current_price("BTCUSDT")
        assert inner.attempts == 1

    def test_open_circuit_is_not_retried(self):
        clock = FakeClock()
        breaker = CircuitBreaker(minimum_calls=1, window_size=1, clock=clock)
        breaker.record_failure()
        inner = FlakyGateway([])
        gateway = ResilientGateway(inner, breaker=breaker, retry_wait=0)
        with pytest.raises(CircuitOpenError):
            gateway.get_current_price("BTCUSDT")
        assert inner.attempts == 0

    def test_passes_calls_through(self):
        inner = FakeGateway()
        gateway = ResilientGateway(inner, retry_wait=0)
        gateway.set_leverage("BTCUSDT", 5)
        gateway.enter_short_position("BTCUSDT", 0.5)
        assert inner.calls == [("set_leverage", "BTCUSDT", 5), ("enter_short_position", "BTCUSDT", 0.5)]
        assert gateway.NAME == "resilient-fake"


@pytest.mark.parametrize(
    "error, expected",
    [
        (ConnectionError("x"), True),
        (TimeoutError("x"), True),
        (RuntimeError("429 rate limit"), True),
        (RuntimeError("Service temporarily unavailable"), True),
        (ValueError("bad symbol"), False),
        (CircuitOpenError("open"), False),
    ],
)
def test_is_transient(error, expected):
    assert is_transient(error) is expected
