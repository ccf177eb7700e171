# models.py - Pure data classes with NO dependencies.
"""
This module contains all shared data classes used across the application.
Having them in a separate file prevents circular imports.

All classes here should be:
- Pure dataclasses or enums
- Have NO imports from other project modules
- Be importable by any module in the project
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


MAX_LEVERAGE = 125


class TradeDirection(Enum):
    """Direction of a position. `sign` is +1 for LONG, -1 for SHORT."""
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        return 1 if self is TradeDirection.LONG else -1

    @property
    def entry_side(self) -> "OrderSide":
        return OrderSide.BUY if self is TradeDirection.LONG else OrderSide.SELL

    @property
    def exit_side(self) -> "OrderSide":
        return OrderSide.SELL if self is TradeDirection.LONG else OrderSide.BUY


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


class PositionStatus(Enum):
    NONE = "NONE"
    OPEN = "OPEN"


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. Times are epoch milliseconds."""
    open_time: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    close_time: int


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Latest indicator values for one (symbol, timeframe)."""
    rsi: float
    macd: float
    macd_signal: float
    bollinger_lower: float
    bollinger_upper: float


@dataclass(frozen=True)
class TradingConfig:
    """Immutable trading parameters. Validated on construction."""

    symbol: str = "BTCUSDT"
    trade_amount: float = 0.001
    leverage: int = 3
    trailing_stop_percent: float = 1.0  # 1.0 = 1%

    rsi_lookback: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0

    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal_period: int = 9

    bollinger_period: int = 20
    bollinger_std_dev: float = 2.0

    check_interval_seconds: int = 900

    def __post_init__(self):
        """Fail fast on malformed values - nothing is clamped."""
        if not self.symbol:
            raise ValueError("symbol cannot be empty")
        if self.trade_amount <= 0:
            raise ValueError(f"trade_amount ({self.trade_amount}) must be positive")
        if not isinstance(self.leverage, int) or isinstance(self.leverage, bool):
            raise ValueError(f"leverage ({self.leverage!r}) must be an integer")
        if not 1 <= self.leverage <= MAX_LEVERAGE:
            raise ValueError(f"leverage ({self.leverage}) must be between 1 and {MAX_LEVERAGE}")
        if not 0 < self.trailing_stop_percent < 100:
            raise ValueError(
                f"trailing_stop_percent ({self.trailing_stop_percent}) must be in (0, 100)"
            )
        if not 0 <= self.rsi_oversold < self.rsi_overbought <= 100:
            raise ValueError(
                f"RSI thresholds must satisfy 0 <= oversold ({self.rsi_oversold}) "
                f"< overbought ({self.rsi_overbought}) <= 100"
            )
        for name in ("rsi_lookback", "macd_fast", "macd_slow", "macd_signal_period", "bollinger_period"):
            if getattr(self, name) < 2:
                raise ValueError(f"{name} ({getattr(self, name)}) must be >= 2")
        if self.macd_fast >= self.macd_slow:
            raise ValueError(
                f"macd_fast ({self.macd_fast}) must be less than macd_slow ({self.macd_slow})"
            )
        if self.bollinger_std_dev <= 0:
            raise ValueError(f"bollinger_std_dev ({self.bollinger_std_dev}) must be positive")
        if self.check_interval_seconds <= 0:
            raise ValueError(
                f"check_interval_seconds ({self.check_interval_seconds}) must be positive"
            )

    @property
    def min_candles(self) -> int:
        """Fewest candles for which every indicator is defined."""
        return max(
            self.rsi_lookback + 1,
            self.macd_slow + self.macd_signal_period - 1,
            self.bollinger_period,
        )

    @classmethod
    def from_env(cls) -> "TradingConfig":
        """Build config from environment variables (defaults for anything unset)."""
        defaults = cls()
        return cls(
            symbol=os.getenv("TRADING_SYMBOL", defaults.symbol),
            trade_amount=float(os.getenv("TRADE_AMOUNT", defaults.trade_amount)),
            leverage=int(os.getenv("LEVERAGE", defaults.leverage)),
            trailing_stop_percent=float(
                os.getenv("TRAILING_STOP_PERCENT", defaults.trailing_stop_percent)
            ),
            rsi_lookback=int(os.getenv("LOOKBACK_PERIOD_RSI", defaults.rsi_lookback)),
            rsi_oversold=float(os.getenv("RSI_OVERSOLD", defaults.rsi_oversold)),
            rsi_overbought=float(os.getenv("RSI_OVERBOUGHT", defaults.rsi_overbought)),
            macd_fast=int(os.getenv("MACD_FAST", defaults.macd_fast)),
            macd_slow=int(os.getenv("MACD_SLOW", defaults.macd_slow)),
            macd_signal_period=int(os.getenv("MACD_SIGNAL", defaults.macd_signal_period)),
            bollinger_period=int(os.getenv("BB_PERIOD", defaults.bollinger_period)),
            bollinger_std_dev=float(os.getenv("BB_STD", defaults.bollinger_std_dev)),
            check_interval_seconds=int(os.getenv("INTERVAL", defaults.check_interval_seconds)),
        )


@dataclass(frozen=True)
class PositionView:
    """Read-only view of an open position handed to exit conditions."""
    symbol: str
    direction: TradeDirection
    entry_price: float
    current_price: float
    leverage: int

    @property
    def liquidation_price(self) -> float:
        return liquidation_price(self.entry_price, self.leverage, self.direction)


@dataclass
class BotStatus:
    """Snapshot returned by the control surface."""
    running: bool
    direction: TradeDirection
    symbol: str
    position_status: PositionStatus
    entry_price: float
    leverage: int
    sentiment_enabled: bool = False

    def to_dict(self) -> dict:
        return {
            "running": self.running,
            "direction": self.direction.value,
            "symbol": self.symbol,
            "position_status": self.position_status.value,
            "entry_price": self.entry_price,
            "leverage": self.leverage,
            "sentiment_enabled": self.sentiment_enabled,
        }


@dataclass
class LogMessage:
    """Represents a message for the notification queue."""
    message: str
    level: str = "info"  # "info", "warning", "error", "trade"


def liquidation_price(entry_price: float, leverage: int, direction: TradeDirection) -> float:
    """entry × (1 - 1/L) for LONG, entry × (1 + 1/L) for SHORT."""
    return entry_price * (1 - direction.sign / leverage)
