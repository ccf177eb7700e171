#!/usr/bin/env python3
"""
Backtest Runner - replays the live trading engine over a candle CSV.

This script:
1. Loads historical candles (openTime,open,high,low,close,volume,closeTime)
2. Builds the trading config from .env (overridable on the command line)
3. Runs the engine bar by bar against the execution simulator
4. Prints performance metrics and optionally saves all results

Usage:
    python run_backtest.py --csv data/backtest/ohlc/BTCUSDT_1d.csv
    python run_backtest.py --csv btc.csv --direction SHORT --leverage 5 --latency-ms 500 --save
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from backtest.config import DEFAULT_WARMUP, BacktestConfig
from backtest.data_loader import DataLoadError
from backtest.metrics import print_summary, save_results
from backtest.replay import ReplayDriver
from models import TradeDirection, TradingConfig

PROJECT_ROOT = Path(__file__).parent

# Load environment variables
load_dotenv(PROJECT_ROOT / ".env")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay the trading engine over historical candles")
    parser.add_argument("--csv", required=True, type=Path, help="Candle CSV file")
    parser.add_argument("--symbol", help="Trading symbol (default: TRADING_SYMBOL or BTCUSDT)")
    parser.add_argument(
        "--direction",
        default="LONG",
        type=str.upper,
        choices=[d.value for d in TradeDirection],
        help="Engine direction",
    )
    parser.add_argument("--leverage", type=int, help="Leverage (default: LEVERAGE or 3)")
    parser.add_argument("--latency-ms", type=int, default=0, help="Order latency in ms")
    parser.add_argument("--slippage", type=float, default=0.0, help="Slippage fraction (0.0005 = 0.05%%)")
    parser.add_argument("--fee", type=float, default=0.0, help="Taker fee rate (0.0004 = 0.04%%)")
    parser.add_argument("--balance", type=float, default=10_000.0, help="Initial balance")
    parser.add_argument("--warmup", type=int, default=DEFAULT_WARMUP, help="Bars before the first cycle")
    parser.add_argument("--save", action="store_true", help="Save trades, equity curve and report")
    parser.add_argument("--verbose", action="store_true", help="Print every simulated fill")
    return parser


def main(argv: list[str] | None = None):
    """Run the backtest."""
    args = build_parser().parse_args(argv)

    try:
        trading_config = TradingConfig.from_env()
        overrides = {}
        if args.symbol:
            overrides["symbol"] = args.symbol
        if args.leverage is not None:
            overrides["leverage"] = args.leverage
        trading_config = replace(trading_config, **overrides)

        config = BacktestConfig(
            direction=TradeDirection(args.direction),
            latency_ms=args.latency_ms,
            slippage_fraction=args.slippage,
            taker_fee_rate=args.fee,
            initial_balance=args.balance,
            warmup=args.warmup,
            save_results=args.save,
            verbose=args.verbose,
        )
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        return None

    print("=" * 60)
    print("BACKTEST ENGINE")
    print("=" * 60)
    print(f"Data:          {args.csv}")
    print(f"Symbol:        {trading_config.symbol}")
    print(f"Direction:     {config.direction.value}")
    print(f"Leverage:      {trading_config.leverage}x")
    print(f"Balance:       ${config.initial_balance:,.0f}")
    print(f"Latency:       {config.latency_ms} ms")
    print(f"Slippage:      {config.slippage_fraction}")
    print(f"Taker fee:     {config.taker_fee_rate}")
    print("=" * 60)

    try:
        driver = ReplayDriver(args.csv, trading_config, config)
    except DataLoadError as e:
        print(f"❌ {e}")
        return None

    result = driver.run()
    print_summary(result)

    if config.save_results:
        save_results(result, trading_config, config)

    print("\nBacktest complete!")
    return result


if __name__ == "__main__":
    sys.exit(0 if main() is not None else 1)
