# strategies/__init__.py
"""
strategies/ - Trading decision logic.

Usage:
    from strategies import TradingDecisionEngine

    engine = TradingDecisionEngine(config, gateway, TradeDirection.LONG)
    engine.start()          # live: periodic asyncio task
    engine.step()           # replay: one decision cycle
"""

from strategies._trading_mech import (
    LeverageError,
    PositionEntryError,
    PositionExitError,
    PositionState,
    TradingDecisionEngine,
    validate_leverage,
)
from strategies.indicators import IndicatorCalculator
from strategies.trailing_stop import TrailingStopTracker

__all__ = [
    "IndicatorCalculator",
    "LeverageError",
    "PositionEntryError",
    "PositionExitError",
    "PositionState",
    "TradingDecisionEngine",
    "TrailingStopTracker",
    "validate_leverage",
]
