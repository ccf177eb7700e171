"""
Shared test fixtures for the trading engine tests.

Provides reusable fixtures for:
- Candle factories (epoch-ms bars from a list of closes)
- A scripted in-memory ExchangeGateway that records every call
- A scripted indicator calculator for driving engine decisions
- Reset of the process-wide context state between tests
"""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Project root on sys.path (flat layout)
sys.path.insert(0, str(Path(__file__).parent.parent))

import context
from models import Candle, IndicatorSnapshot, TradingConfig
from services.broker_base import ExchangeGateway


MINUTE_MS = 60_000
DAY_MS = 86_400_000


# ---------------------------------------------------------------------------
# Candle factories
# ---------------------------------------------------------------------------


def make_candle(index, close, high=None, low=None, interval_ms=MINUTE_MS, start_ms=0):
    """One bar; high/low default to the close."""
    close = Decimal(str(close))
    high = Decimal(str(high)) if high is not None else close
    low = Decimal(str(low)) if low is not None else close
    open_time = start_ms + index * interval_ms
    return Candle(
        open_time=open_time,
        open=close,
        high=high,
        low=low,
        close=close,
        volume=Decimal("1"),
        close_time=open_time + interval_ms - 1,
    )


def candles_from_closes(closes, interval_ms=MINUTE_MS, start_ms=0):
    return [make_candle(i, c, interval_ms=interval_ms, start_ms=start_ms) for i, c in enumerate(closes)]


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeGateway(ExchangeGateway):
    """Scripted gateway: fixed candles, price and balance; records calls."""

    NAME = "fake"

    def __init__(self, candles=None, price=50_000.0, balance=10_000.0):
        self.candles = list(candles or [])
        self.price = price
        self.balance = balance
        self.leverage = None
        self.calls = []
        self.fail_on = set()

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def order_calls(self):
        return [c for c in self.calls if c[0].startswith(("enter_", "exit_"))]

    def fetch_ohlcv(self, symbol, timeframe, limit):
        self.calls.append(("fetch_ohlcv", symbol, timeframe, limit))
        return self.candles[-limit:] if limit > 0 else []

    def get_current_price(self, symbol):
        self._record("get_current_price", symbol)
        return self.price

    def get_margin_balance(self):
        self._record("get_margin_balance")
        return self.balance

    def set_leverage(self, symbol, leverage):
        self._record("set_leverage", symbol, leverage)
        self.leverage = leverage

    def enter_long_position(self, symbol, quantity):
        self._record("enter_long_position", symbol, quantity)

    def enter_short_position(self, symbol, quantity):
        self._record("enter_short_position", symbol, quantity)

    def exit_long_position(self, symbol, quantity):
        self._record("exit_long_position", symbol, quantity)

    def exit_short_position(self, symbol, quantity):
        self._record("exit_short_position", symbol, quantity)


class FakeCalculator:
    """Returns a preset IndicatorSnapshot (or None) per timeframe."""

    def __init__(self, snapshots=None):
        self.snapshots = dict(snapshots or {})
        self.compute_calls = []
        self.configs = []

    def compute(self, timeframe, symbol):
        self.compute_calls.append((timeframe, symbol))
        return self.snapshots.get(timeframe)

    def update_config(self, config):
        self.configs.append(config)


def snapshot(rsi=50.0, macd=0.0, macd_signal=0.0, lower=0.0, upper=1e12):
    return IndicatorSnapshot(
        rsi=rsi,
        macd=macd,
        macd_signal=macd_signal,
        bollinger_lower=lower,
        bollinger_upper=upper,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_context():
    """Each test starts with an empty bot registry and notification queue."""
    context.active_bots.clear()
    context.drain_log_queue()
    context.shutdown_event.clear()
    yield
    context.active_bots.clear()
    context.drain_log_queue()
    context.shutdown_event.clear()


@pytest.fixture
def trading_config():
    return TradingConfig(symbol="BTCUSDT", trade_amount=0.1, leverage=3, trailing_stop_percent=1.0)


@pytest.fixture
def gateway():
    return FakeGateway()
