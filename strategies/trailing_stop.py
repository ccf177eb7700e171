# strategies/trailing_stop.py
"""
Trailing stop that follows the best price seen since entry.

LONG tracks the highest price and triggers on a pullback below it.
SHORT tracks the lowest price and triggers on a bounce above it.
"""

from models import TradeDirection


class TrailingStopTracker:

    def __init__(self, direction: TradeDirection, trailing_stop_percent: float):
        if not 0 < trailing_stop_percent < 100:
            raise ValueError(
                f"trailing_stop_percent ({trailing_stop_percent}) must be in (0, 100)"
            )
        self.direction = direction
        self.trailing_stop_percent = trailing_stop_percent
        self.entry_price = 0.0
        self._extreme_price = 0.0
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def extreme_price(self) -> float:
        return self._extreme_price

    @property
    def stop_price(self) -> float | None:
        if not self._active:
            return None
        offset = self.trailing_stop_percent / 100
        if self.direction is TradeDirection.LONG:
            return self._extreme_price * (1 - offset)
        return self._extreme_price * (1 + offset)

    def initialize(self, entry_price: float) -> None:
        self.entry_price = entry_price
        self._extreme_price = entry_price
        self._active = True

    def update(self, price: float) -> None:
        """Move the extreme in the favourable direction only. No-op while inactive."""
        if not self._active:
            return
        if self.direction is TradeDirection.LONG:
            if price > self._extreme_price:
                self._extreme_price = price
        elif price < self._extreme_price:
            self._extreme_price = price

    def check_triggered(self, price: float) -> bool:
        stop = self.stop_price
        if stop is None:
            return False
        if self.direction is TradeDirection.LONG:
            return price <= stop
        return price >= stop

    def set_trailing_percent(self, trailing_stop_percent: float) -> None:
        if not 0 < trailing_stop_percent < 100:
            raise ValueError(
                f"trailing_stop_percent ({trailing_stop_percent}) must be in (0, 100)"
            )
        self.trailing_stop_percent = trailing_stop_percent

    def reset(self) -> None:
        self.entry_price = 0.0
        self._extreme_price = 0.0
        self._active = False
