# backtest/metrics/calculator.py
"""Performance metrics for replay runs: trade statistics plus equity-curve risk."""

from dataclasses import asdict, dataclass, field
from itertools import groupby
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from backtest.execution.position import Trade
from models import TradeDirection


@dataclass
class PerformanceStats:
    """Trade and equity statistics for one replay run. PnL figures are net of fees."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    liquidations: int = 0
    win_rate: float = 0.0

    total_pnl: float = 0.0
    total_pnl_pct: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0

    max_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0
    sharpe_ratio: float = 0.0

    final_equity: float = 0.0
    peak_equity: float = 0.0

    largest_winner: float = 0.0
    largest_loser: float = 0.0
    avg_trade_duration_minutes: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {k: round(v, 2) if isinstance(v, float) else v for k, v in asdict(self).items()}


@dataclass
class BacktestResult:
    """
    Outcome of a replay run.

    final_balance is the free margin balance after the last bar; margin held
    by a still-open position is not included (see stats.final_equity).
    """

    final_balance: float
    total_profit: float
    total_trades: int

    trades: List[Trade] = field(default_factory=list)
    total_fees: float = 0.0
    liquidations: int = 0
    rejected_orders: int = 0
    equity_curve: pd.DataFrame = field(default_factory=pd.DataFrame)
    stats: PerformanceStats = field(default_factory=PerformanceStats)

    symbol: str = ""
    direction: TradeDirection = TradeDirection.LONG
    initial_balance: float = 0.0
    bars_processed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        summary = {
            "symbol": self.symbol,
            "direction": self.direction.value,
            "initial_balance": round(self.initial_balance, 2),
            "final_balance": round(self.final_balance, 2),
            "total_profit": round(self.total_profit, 2),
            "total_trades": self.total_trades,
            "total_fees": round(self.total_fees, 4),
            "liquidations": self.liquidations,
            "rejected_orders": self.rejected_orders,
            "bars_processed": self.bars_processed,
        }
        summary.update({f"stats_{k}": v for k, v in self.stats.to_dict().items()})
        return summary


def calculate_stats(
    trades: List[Trade],
    equity_curve: pd.DataFrame,
    starting_balance: float,
) -> PerformanceStats:
    """
    Statistics for a finished run.

    Args:
        trades: Closed trades (exits and liquidations)
        equity_curve: DataFrame with a 'total_equity' column (may be empty)
        starting_balance: Initial balance

    Returns:
        PerformanceStats
    """
    stats = PerformanceStats(final_equity=starting_balance, peak_equity=starting_balance)
    if trades:
        _fill_trade_stats(stats, trades, starting_balance)

    if equity_curve.empty or "total_equity" not in equity_curve.columns:
        stats.final_equity = starting_balance + stats.total_pnl
        return stats

    equity = equity_curve["total_equity"].to_numpy(dtype=float)
    stats.final_equity = float(equity[-1])
    stats.peak_equity = float(max(equity.max(), starting_balance))
    stats.max_drawdown, stats.max_drawdown_pct = _drawdown(equity)
    stats.sharpe_ratio = _sharpe(equity_curve)
    return stats


def _fill_trade_stats(stats: PerformanceStats, trades: List[Trade], starting_balance: float) -> None:
    net = pd.Series([t.net_pnl for t in trades], dtype=float)
    winners = net[net > 0]
    losers = net[net <= 0]

    stats.total_trades = len(net)
    stats.winning_trades = len(winners)
    stats.losing_trades = len(losers)
    stats.liquidations = sum(t.is_liquidation for t in trades)
    stats.win_rate = stats.winning_trades / stats.total_trades * 100

    stats.total_pnl = float(net.sum())
    if starting_balance > 0:
        stats.total_pnl_pct = stats.total_pnl / starting_balance * 100

    stats.avg_win = float(winners.mean()) if not winners.empty else 0.0
    stats.avg_loss = float(losers.mean()) if not losers.empty else 0.0

    gross_loss = -float(losers.sum())
    stats.profit_factor = float(winners.sum()) / gross_loss if gross_loss > 0 else 0.0

    hit = stats.winning_trades / stats.total_trades
    stats.expectancy = hit * stats.avg_win + (1 - hit) * stats.avg_loss

    stats.largest_winner = float(net.max())
    stats.largest_loser = float(net.min())
    stats.avg_trade_duration_minutes = float(np.mean([t.duration_minutes for t in trades]))
    stats.consecutive_wins, stats.consecutive_losses = _longest_streaks(trades)


def _longest_streaks(trades: List[Trade]) -> tuple[int, int]:
    """(longest run of winners, longest run of non-winners)."""
    longest = {True: 0, False: 0}
    for won, run in groupby(trades, key=lambda t: t.is_winner):
        longest[won] = max(longest[won], sum(1 for _ in run))
    return longest[True], longest[False]


def _drawdown(equity: np.ndarray) -> tuple[float, float]:
    """Deepest peak-to-trough fall, absolute and as % of the peak."""
    peaks = np.maximum.accumulate(equity)
    falls = peaks - equity
    fall_pct = np.divide(falls, peaks, out=np.zeros_like(falls), where=peaks > 0) * 100
    return float(falls.max()), float(fall_pct.max())


def _sharpe(equity_curve: pd.DataFrame) -> float:
    """Annualized Sharpe of per-bar equity returns (zero risk-free rate)."""
    returns = (
        equity_curve["total_equity"].pct_change().replace([np.inf, -np.inf], np.nan).dropna()
    )
    if len(returns) < 2:
        return 0.0

    std_returns = float(returns.std(ddof=0))
    if std_returns <= 0:
        return 0.0

    # Bars per year from the median bar spacing
    bars_per_year = 365.0
    if isinstance(equity_curve.index, pd.DatetimeIndex) and len(equity_curve.index) > 1:
        spacing = pd.Series(equity_curve.index).diff().dropna().median()
        if spacing.total_seconds() > 0:
            bars_per_year = 365 * 24 * 3600 / spacing.total_seconds()

    return float(returns.mean() / std_returns * np.sqrt(bars_per_year))


def build_backtest_result(
    simulator: Any,
    starting_balance: float,
    symbol: str = "",
    direction: TradeDirection = TradeDirection.LONG,
    bars_processed: int = 0,
) -> BacktestResult:
    """Collect a BacktestResult from a finished ExecutionSimulator."""
    trades = simulator.trades
    equity_curve = simulator.account.get_equity_curve_df()
    if not equity_curve.empty:
        equity_curve = equity_curve.set_index("timestamp")

    final_balance = simulator.get_margin_balance()

    return BacktestResult(
        final_balance=final_balance,
        total_profit=final_balance - starting_balance,
        total_trades=len(trades),
        trades=trades,
        total_fees=simulator.total_fees,
        liquidations=simulator.liquidations,
        rejected_orders=simulator.rejected_orders,
        equity_curve=equity_curve,
        stats=calculate_stats(trades, equity_curve, starting_balance),
        symbol=symbol,
        direction=direction,
        initial_balance=starting_balance,
        bars_processed=bars_processed,
    )
