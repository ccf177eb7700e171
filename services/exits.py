# services/exits.py
"""
Centralized exit conditions - single source of truth.

Used by the trading engine in every mode (live, paper, replay), so exit
behavior is identical across them. Each condition looks at a read-only
PositionView and answers one question: close now?

To add a new exit type:
1. Subclass ExitCondition here and implement should_exit()
2. Pass an instance in the engine's exit_conditions list
3. No engine changes needed
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable

from models import PositionView, TradeDirection

if TYPE_CHECKING:
    from strategies.indicators import IndicatorCalculator
    from strategies.trailing_stop import TrailingStopTracker


class ExitCondition(ABC):

    @abstractmethod
    def should_exit(self, position: PositionView) -> bool:
        """True when the position should be closed this cycle."""


class TrailingStopExit(ExitCondition):
    """
    Trailing stop evaluated from outside the engine.

    The engine already runs its own tracker at config.trailing_stop_percent.
    This condition drives a second, caller-owned tracker (for example a
    tighter stop passed in exit_conditions): it initializes the tracker on
    the first view of a new entry price, updates it with the current price
    and reports whether its stop was crossed.
    """

    def __init__(self, tracker: "TrailingStopTracker"):
        self.tracker = tracker

    def should_exit(self, position: PositionView) -> bool:
        if not self.tracker.active or self.tracker.entry_price != position.entry_price:
            self.tracker.initialize(position.entry_price)
        self.tracker.update(position.current_price)
        return self.tracker.check_triggered(position.current_price)


class RSIExit(ExitCondition):
    """
    Momentum exhaustion exit.

    LONG exits once RSI >= threshold. SHORT exits once RSI <= 100 - threshold.
    """

    def __init__(self, calculator: "IndicatorCalculator", timeframe: str = "1d", threshold: float = 70.0):
        self.calculator = calculator
        self.timeframe = timeframe
        self.threshold = threshold

    def should_exit(self, position: PositionView) -> bool:
        snapshot = self.calculator.compute(self.timeframe, position.symbol)
        if snapshot is None:
            return False
        if position.direction is TradeDirection.LONG:
            return snapshot.rsi >= self.threshold
        return snapshot.rsi <= 100 - self.threshold


class MACDExit(ExitCondition):
    """Exit on a MACD cross against the position."""

    def __init__(self, calculator: "IndicatorCalculator", timeframe: str = "1d"):
        self.calculator = calculator
        self.timeframe = timeframe

    def should_exit(self, position: PositionView) -> bool:
        snapshot = self.calculator.compute(self.timeframe, position.symbol)
        if snapshot is None:
            return False
        if position.direction is TradeDirection.LONG:
            return snapshot.macd < snapshot.macd_signal
        return snapshot.macd > snapshot.macd_signal


class LiquidationRiskExit(ExitCondition):
    """Exit when price comes within `buffer` (fraction) of the liquidation price."""

    def __init__(self, buffer: float = 0.05):
        if buffer < 0:
            raise ValueError(f"buffer ({buffer}) must be >= 0")
        self.buffer = buffer

    def should_exit(self, position: PositionView) -> bool:
        liq = position.liquidation_price
        if position.direction is TradeDirection.LONG:
            return position.current_price <= liq * (1 + self.buffer)
        return position.current_price >= liq * (1 - self.buffer)


class NeverExit(ExitCondition):
    """Placeholder condition; the trailing stop alone decides."""

    def should_exit(self, position: PositionView) -> bool:
        return False


def any_exit(conditions: Iterable[ExitCondition], position: PositionView) -> bool:
    """Logical OR over conditions (short-circuits)."""
    return any(condition.should_exit(position) for condition in conditions)
