# strategies/indicators.py
"""
IndicatorCalculator - latest RSI / MACD / Bollinger values per (symbol, timeframe).

Values are cached and only recomputed when the exchange reports a candle that
closed after the one the cache was built from. Between new bars every call is
a single 1-candle freshness probe plus a dict lookup.
"""

import math

from models import Candle, IndicatorSnapshot, TradingConfig
from services.broker_base import ExchangeGateway
from strategies._ta import bbands, closes_of, macd, rsi


class IndicatorCalculator:
    """Computes and caches IndicatorSnapshot objects."""

    CANDLE_LIMIT = 100

    def __init__(
        self,
        gateway: ExchangeGateway,
        config: TradingConfig,
        candle_limit: int = CANDLE_LIMIT,
        verbose: bool = True,
    ):
        self.gateway = gateway
        self.config = config
        self.candle_limit = max(candle_limit, config.min_candles)
        self.verbose = verbose

        self._cache: dict[tuple[str, str], IndicatorSnapshot] = {}
        self._last_seen: dict[tuple[str, str], int] = {}
        self.recompute_count = 0

    def compute(self, timeframe: str, symbol: str) -> IndicatorSnapshot | None:
        """
        Latest indicators for symbol on timeframe.

        Returns:
            IndicatorSnapshot, or None when history is too short
        """
        key = (symbol.upper(), timeframe)

        latest = self.gateway.fetch_ohlcv(symbol, timeframe, 1)
        if not latest:
            self._log(f"No candles for {symbol} {timeframe}")
            return None

        cached = self._cache.get(key)
        last_seen = self._last_seen.get(key)
        if cached is not None and last_seen is not None and latest[-1].close_time <= last_seen:
            return cached

        if cached is not None:
            self._log(f"New {timeframe} candle for {symbol}, invalidating cache")
            self.evict(symbol, timeframe)

        candles = self.gateway.fetch_ohlcv(symbol, timeframe, self.candle_limit)
        snapshot = self.calculate(candles)
        if snapshot is None:
            self._log(
                f"Insufficient data for indicators: {symbol} {timeframe} "
                f"({len(candles)}/{self.config.min_candles} candles)"
            )
            return None

        self._cache[key] = snapshot
        self._last_seen[key] = candles[-1].close_time
        return snapshot

    def calculate(self, candles: list[Candle]) -> IndicatorSnapshot | None:
        """Pure computation over a candle window (no caching)."""
        cfg = self.config
        if len(candles) < cfg.min_candles:
            return None

        self.recompute_count += 1
        closes = closes_of(candles)

        rsi_values = rsi(closes, cfg.rsi_lookback)
        macd_line, signal_line, _ = macd(
            closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal_period
        )
        upper, _, lower = bbands(
            closes, cfg.bollinger_period, cfg.bollinger_std_dev, cfg.bollinger_std_dev
        )

        values = (rsi_values[-1], macd_line[-1], signal_line[-1], lower[-1], upper[-1])
        if any(math.isnan(v) for v in values):
            return None

        return IndicatorSnapshot(
            rsi=float(values[0]),
            macd=float(values[1]),
            macd_signal=float(values[2]),
            bollinger_lower=float(values[3]),
            bollinger_upper=float(values[4]),
        )

    def update_config(self, config: TradingConfig) -> None:
        """Swap periods; cached values built from other periods are dropped."""
        changed = config.min_candles != self.config.min_candles or (
            config.rsi_lookback, config.macd_fast, config.macd_slow, config.macd_signal_period,
            config.bollinger_period, config.bollinger_std_dev,
        ) != (
            self.config.rsi_lookback, self.config.macd_fast, self.config.macd_slow,
            self.config.macd_signal_period, self.config.bollinger_period,
            self.config.bollinger_std_dev,
        )
        self.config = config
        self.candle_limit = max(self.candle_limit, config.min_candles)
        if changed:
            self.clear()

    def evict(self, symbol: str, timeframe: str) -> None:
        key = (symbol.upper(), timeframe)
        self._cache.pop(key, None)
        self._last_seen.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()
        self._last_seen.clear()

    def _log(self, message: str) -> None:
        if self.verbose:
            print(f"[Indicators] {message}")
