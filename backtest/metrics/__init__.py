# backtest/metrics/__init__.py
"""Performance metrics calculation for replay runs."""

from .calculator import (
    BacktestResult,
    PerformanceStats,
    calculate_stats,
    build_backtest_result,
)
from .report import generate_report, save_results, print_summary

__all__ = [
    "BacktestResult",
    "PerformanceStats",
    "calculate_stats",
    "build_backtest_result",
    "generate_report",
    "save_results",
    "print_summary",
]
