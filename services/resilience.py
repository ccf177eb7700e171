# resilience.py - Rate limiting, circuit breaking and retry around a live gateway.
"""
ResilientGateway decorates any ExchangeGateway. Each call goes through:

    retry (tenacity) -> rate limiter (per call category) -> circuit breaker -> gateway

Call categories and default limits:
- trading  (leverage, entries, exits):  8 calls / 10 s, wait up to 5 s
- market   (candles, price):           30 calls / 1 s,  wait up to 3 s
- account  (margin balance):            2 calls / 1 s,  wait up to 5 s

Circuit breaker: count-based window of 10 calls; opens at >= 50% failures
once 5 calls are recorded; stays open 30 s; then allows 3 trial calls.

Retry: 3 attempts, 1 s apart, only for transient errors (connection,
timeout, rate limit, temporarily unavailable).
"""

import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from models import Candle
from services.broker_base import ExchangeGateway


class CircuitOpenError(RuntimeError):
    """Call rejected because the circuit breaker is open."""


class RateLimitExceeded(RuntimeError):
    """No rate limit permit became available within the timeout."""


TRANSIENT_MARKERS = ("rate limit", "timeout", "timed out", "connection", "temporarily unavailable")


def is_transient(error: BaseException) -> bool:
    """Errors worth retrying: network failures and throttling."""
    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


class RateLimiter:
    """Fixed-window limiter: `limit` permits per `period` seconds."""

    def __init__(
        self,
        name: str,
        limit: int,
        period: float = 1.0,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if limit < 1 or period <= 0 or timeout < 0:
            raise ValueError(f"Invalid rate limiter {name}: limit={limit} period={period} timeout={timeout}")
        self.name = name
        self.limit = limit
        self.period = period
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._window_start = clock()
        self._used = 0

    def _try_acquire(self) -> float:
        """Take a permit (returns 0) or return seconds until the next window."""
        with self._lock:
            now = self._clock()
            elapsed = now - self._window_start
            if elapsed >= self.period:
                windows = int(elapsed // self.period)
                self._window_start += windows * self.period
                self._used = 0
            if self._used < self.limit:
                self._used += 1
                return 0.0
            return self._window_start + self.period - now

    def acquire(self) -> None:
        deadline = self._clock() + self.timeout
        while True:
            wait = self._try_acquire()
            if wait <= 0:
                return
            if self._clock() + wait > deadline:
                raise RateLimitExceeded(f"{self.name} rate limit exceeded")
            self._sleep(wait)


class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Count-based circuit breaker."""

    def __init__(
        self,
        name: str = "exchange-api",
        failure_rate_threshold: float = 0.5,
        window_size: int = 10,
        minimum_calls: int = 5,
        open_seconds: float = 30.0,
        half_open_calls: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not 0 < failure_rate_threshold <= 1:
            raise ValueError(f"failure_rate_threshold ({failure_rate_threshold}) must be in (0, 1]")
        if window_size < 1 or minimum_calls < 1 or half_open_calls < 1:
            raise ValueError("window_size, minimum_calls and half_open_calls must be >= 1")
        self.name = name
        self.failure_rate_threshold = failure_rate_threshold
        self.window_size = window_size
        self.minimum_calls = min(minimum_calls, window_size)
        self.open_seconds = open_seconds
        self.half_open_calls = half_open_calls
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._results: deque[bool] = deque(maxlen=window_size)  # True = failure
        self._opened_at = 0.0
        self._trial_permits = 0
        self._trial_results: list[bool] = []

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def failure_rate(self) -> float:
        with self._lock:
            if not self._results:
                return 0.0
            return sum(self._results) / len(self._results)

    def _maybe_half_open(self) -> None:
        if self._state is CircuitState.OPEN and self._clock() - self._opened_at >= self.open_seconds:
            self._state = CircuitState.HALF_OPEN
            self._trial_permits = self.half_open_calls
            self._trial_results = []
            print(f"[Gateway] Circuit {self.name} HALF_OPEN")

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._results.clear()
        print(f"[Gateway] Circuit {self.name} OPEN for {self.open_seconds:.0f}s")

    def before_call(self) -> None:
        """Raise CircuitOpenError unless a call is permitted now."""
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.OPEN:
                raise CircuitOpenError(f"Circuit {self.name} is open")
            if self._state is CircuitState.HALF_OPEN:
                if self._trial_permits <= 0:
                    raise CircuitOpenError(f"Circuit {self.name} is half-open, trial calls in flight")
                self._trial_permits -= 1

    def _record(self, failed: bool) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._trial_results.append(failed)
                if len(self._trial_results) >= self.half_open_calls:
                    rate = sum(self._trial_results) / len(self._trial_results)
                    if rate >= self.failure_rate_threshold:
                        self._open()
                    else:
                        self._state = CircuitState.CLOSED
                        self._results.clear()
                        print(f"[Gateway] Circuit {self.name} CLOSED")
                return

            if self._state is CircuitState.OPEN:
                return

            self._results.append(failed)
            if len(self._results) >= self.minimum_calls:
                rate = sum(self._results) / len(self._results)
                if rate >= self.failure_rate_threshold:
                    self._open()

    def record_success(self) -> None:
        self._record(False)

    def record_failure(self) -> None:
        self._record(True)


class ResilientGateway(ExchangeGateway):
    """Decorator gateway adding rate limiting, circuit breaking and retry."""

    def __init__(
        self,
        inner: ExchangeGateway,
        trading_limiter: RateLimiter | None = None,
        market_limiter: RateLimiter | None = None,
        account_limiter: RateLimiter | None = None,
        breaker: CircuitBreaker | None = None,
        retry_attempts: int = 3,
        retry_wait: float = 1.0,
    ):
        self.inner = inner
        self.NAME = f"resilient-{inner.NAME}"
        self.limiters = {
            "trading": trading_limiter or RateLimiter("trading", limit=8, period=10.0, timeout=5.0),
            "market": market_limiter or RateLimiter("market", limit=30, period=1.0, timeout=3.0),
            "account": account_limiter or RateLimiter("account", limit=2, period=1.0, timeout=5.0),
        }
        self.breaker = breaker or CircuitBreaker()
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait

    def _guarded(self, category: str, fn: Callable[..., Any], *args) -> Any:
        self.limiters[category].acquire()
        self.breaker.before_call()
        try:
            result = fn(*args)
        except Exception:
            self.breaker.record_failure()
            raise
        self.breaker.record_success()
        return result

    def _call(self, category: str, fn: Callable[..., Any], *args) -> Any:
        for attempt in Retrying(
            reraise=True,
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_wait),
            retry=retry_if_exception(is_transient),
            before_sleep=lambda state: print(
                f"[Gateway] {fn.__name__} failed ({state.outcome.exception()}), "
                f"retry {state.attempt_number}/{self.retry_attempts - 1}"
            ),
        ):
            with attempt:
                return self._guarded(category, fn, *args)

    # === ExchangeGateway ===

    def fetch_ohlcv(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        return self._call("market", self.inner.fetch_ohlcv, symbol, timeframe, limit)

    def get_current_price(self, symbol: str) -> float:
        return self._call("market", self.inner.get_current_price, symbol)

    def get_margin_balance(self) -> float:
        return self._call("account", self.inner.get_margin_balance)

    def set_leverage(self, symbol: str, leverage: int) -> None:
        self._call("trading", self.inner.set_leverage, symbol, leverage)

    def enter_long_position(self, symbol: str, quantity: float) -> None:
        self._call("trading", self.inner.enter_long_position, symbol, quantity)

    def enter_short_position(self, symbol: str, quantity: float) -> None:
        self._call("trading", self.inner.enter_short_position, symbol, quantity)

    def exit_long_position(self, symbol: str, quantity: float) -> None:
        self._call("trading", self.inner.exit_long_position, symbol, quantity)

    def exit_short_position(self, symbol: str, quantity: float) -> None:
        self._call("trading", self.inner.exit_short_position, symbol, quantity)
