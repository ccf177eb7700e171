# backtest/execution/__init__.py
"""Trade execution simulation for replay."""

from .simulator import ExecutionSimulator
from .account import SimulatedAccount, EquityPoint
from .position import PendingOrder, SimulatedPosition, Trade, TradeStatus

__all__ = [
    "ExecutionSimulator",
    "SimulatedAccount",
    "EquityPoint",
    "PendingOrder",
    "SimulatedPosition",
    "Trade",
    "TradeStatus",
]
