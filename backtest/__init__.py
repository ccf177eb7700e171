# backtest/__init__.py
"""Deterministic replay of the trading engine over historical candles."""

from .config import BacktestConfig, DEFAULT_WARMUP
from .data_loader import DataLoadError, load_candles
from .execution import ExecutionSimulator, Trade, TradeStatus
from .metrics import BacktestResult, PerformanceStats
from .replay import ReplayDriver, run_replay

__all__ = [
    "BacktestConfig",
    "DEFAULT_WARMUP",
    "DataLoadError",
    "load_candles",
    "ExecutionSimulator",
    "Trade",
    "TradeStatus",
    "BacktestResult",
    "PerformanceStats",
    "ReplayDriver",
    "run_replay",
]
