# backtest/metrics/report.py
"""Text reports, console summary and on-disk results for replay runs."""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd

from backtest.config import BacktestConfig
from models import TradingConfig

from .calculator import BacktestResult

WIDTH = 60

GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"

Section = Tuple[str, List[Tuple[str, str]]]


def _report_sections(
    result: BacktestResult,
    trading_config: TradingConfig,
    config: BacktestConfig,
) -> List[Section]:
    stats = result.stats
    return [
        ("Setup", [
            ("Symbol", result.symbol),
            ("Direction", result.direction.value),
            ("Leverage", f"{trading_config.leverage}x"),
            ("Trade Amount", f"{trading_config.trade_amount}"),
            ("Trailing Stop", f"{trading_config.trailing_stop_percent}%"),
            ("Latency", f"{config.latency_ms} ms"),
            ("Slippage", f"{config.slippage_fraction:.4%}"),
            ("Taker Fee", f"{config.taker_fee_rate:.4%}"),
            ("Start Balance", f"${result.initial_balance:,.2f}"),
            ("Bars", f"{result.bars_processed}"),
        ]),
        ("Outcome", [
            ("Final Balance", f"${result.final_balance:,.2f}"),
            ("Total Profit", f"${result.total_profit:+,.2f}"),
            ("Final Equity", f"${stats.final_equity:,.2f}"),
            ("Peak Equity", f"${stats.peak_equity:,.2f}"),
            ("Fees Paid", f"${result.total_fees:,.4f}"),
        ]),
        ("Trades", [
            ("Total Trades", f"{result.total_trades}"),
            ("Winners", f"{stats.winning_trades} ({stats.win_rate:.1f}%)"),
            ("Losers", f"{stats.losing_trades}"),
            ("Liquidations", f"{result.liquidations}"),
            ("Rejected", f"{result.rejected_orders}"),
            ("Mean Win", f"${stats.avg_win:,.2f}"),
            ("Mean Loss", f"${stats.avg_loss:,.2f}"),
            ("Best Trade", f"${stats.largest_winner:,.2f}"),
            ("Worst Trade", f"${stats.largest_loser:,.2f}"),
            ("Mean Duration", f"{stats.avg_trade_duration_minutes:.1f} min"),
            ("Win Streak", f"{stats.consecutive_wins}"),
            ("Loss Streak", f"{stats.consecutive_losses}"),
        ]),
        ("Risk", [
            ("Profit Factor", f"{stats.profit_factor:.2f}"),
            ("Expectancy", f"${stats.expectancy:,.2f}"),
            ("Max Drawdown", f"${stats.max_drawdown:,.2f} ({stats.max_drawdown_pct:.2f}%)"),
            ("Sharpe", f"{stats.sharpe_ratio:.2f}"),
        ]),
    ]


def generate_report(
    result: BacktestResult,
    trading_config: TradingConfig,
    config: BacktestConfig,
) -> str:
    """
    Build the plain-text report written to report.txt.

    Args:
        result: Finished replay
        trading_config: Engine parameters used for the run
        config: Execution settings (latency, slippage, fee)
    """
    lines = ["=" * WIDTH, "BACKTEST RESULTS", "=" * WIDTH]
    for title, rows in _report_sections(result, trading_config, config):
        lines += ["", f"[{title}]"]
        lines += [f"  {label + ':':<16}{value}" for label, value in rows]
    lines += ["", "=" * WIDTH]
    return "\n".join(lines)


def save_results(
    result: Optional[BacktestResult],
    trading_config: TradingConfig,
    config: BacktestConfig,
    results_dir: Path | str | None = None,
) -> Path:
    """
    Write trades.csv, equity.csv, summary.csv and report.txt into a
    timestamped run directory and return that directory.
    """
    run_dir = Path(results_dir or config.results_dir) / datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir.mkdir(parents=True, exist_ok=True)

    if result is None:
        print("[REPLAY] Nothing to save")
        return run_dir

    trades = pd.DataFrame([t.to_dict() for t in result.trades])
    trades.to_csv(run_dir / "trades.csv", index=False)
    result.equity_curve.round(4).to_csv(run_dir / "equity.csv")
    pd.DataFrame([result.to_dict()]).to_csv(run_dir / "summary.csv", index=False)
    (run_dir / "report.txt").write_text(
        generate_report(result, trading_config, config), encoding="utf-8"
    )

    print(f"[REPLAY] {len(trades)} trades and report written to {run_dir}")
    return run_dir


def print_summary(result: BacktestResult):
    """Short colored console summary."""
    stats = result.stats
    tone = GREEN if result.total_profit >= 0 else RED
    liq_tone = RED if result.liquidations else ""

    rows = [
        ("Trades", f"{result.total_trades}"),
        ("Win Rate", f"{stats.win_rate:.1f}%"),
        ("Liquidations", f"{liq_tone}{result.liquidations}{RESET}"),
        ("Fees", f"${result.total_fees:,.4f}"),
        ("Max Drawdown", f"{RED}{stats.max_drawdown_pct:.2f}%{RESET}"),
        ("Profit", f"{tone}${result.total_profit:+,.2f}{RESET}"),
        ("Final Balance", f"{tone}${result.final_balance:,.2f}{RESET}"),
    ]

    print("\n" + "=" * 50)
    print(f"REPLAY {result.symbol} {result.direction.value}")
    print("-" * 50)
    for label, value in rows:
        print(f"{label + ':':<16}{value}")
    print("=" * 50)
