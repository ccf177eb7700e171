# backtest/replay.py
"""
Replay driver - runs the live decision engine over historical candles.

Per bar, in this order:
1. simulator.set_market_context(history, i)   (cursor + liquidation sweep)
2. simulator.process_pending_orders()          (fills due orders)
3. engine.step()                               (one decision cycle)

Replay is single-threaded with no wall clock: identical inputs produce
identical balances.
"""

from pathlib import Path
from typing import Iterable, Sequence

from backtest.config import BacktestConfig
from backtest.data_loader import load_candles
from backtest.execution import ExecutionSimulator
from backtest.metrics import BacktestResult, build_backtest_result
from models import Candle, TradeDirection, TradingConfig
from services.exits import ExitCondition, NeverExit
from services.sentiment import StaticSentiment
from strategies import TradingDecisionEngine


class ReplayDriver:
    """Wires an ExecutionSimulator and a TradingDecisionEngine for one run."""

    def __init__(
        self,
        candles: Sequence[Candle] | Path | str,
        trading_config: TradingConfig,
        config: BacktestConfig | None = None,
        exit_conditions: Iterable[ExitCondition] | None = None,
    ):
        self.config = config or BacktestConfig()
        self.trading_config = trading_config

        if isinstance(candles, (str, Path)):
            candles = load_candles(candles)
        self.candles: list[Candle] = sorted(candles, key=lambda c: c.open_time)

        self.simulator = ExecutionSimulator(
            latency_ms=self.config.latency_ms,
            slippage_fraction=self.config.slippage_fraction,
            taker_fee_rate=self.config.taker_fee_rate,
            initial_balance=self.config.initial_balance,
            lot_step=self.config.lot_step,
            verbose=self.config.verbose,
        )
        self.engine = TradingDecisionEngine(
            trading_config,
            self.simulator,
            self.config.direction,
            exit_conditions=list(exit_conditions) if exit_conditions is not None else [NeverExit()],
            sentiment=StaticSentiment(),
            replay_mode=True,
        )

    @property
    def warmup(self) -> int:
        """First bar index that gets a decision cycle."""
        return max(self.config.warmup, self.trading_config.min_candles)

    def run(self) -> BacktestResult:
        start = self.warmup
        bars = 0

        print(
            f"[Replay] {self.trading_config.symbol} {self.config.direction.value}: "
            f"{len(self.candles)} candles, warm-up {start}, "
            f"latency {self.config.latency_ms}ms, slippage {self.config.slippage_fraction}, "
            f"fee {self.config.taker_fee_rate}"
        )

        for i in range(start, len(self.candles)):
            self.simulator.set_market_context(self.candles, i)
            self.simulator.process_pending_orders()
            self.engine.step()
            self.simulator.record_equity()
            bars += 1

        if bars == 0:
            print(f"[Replay] Not enough candles: {len(self.candles)} <= warm-up {start}")

        result = build_backtest_result(
            self.simulator,
            starting_balance=self.config.initial_balance,
            symbol=self.trading_config.symbol,
            direction=self.config.direction,
            bars_processed=bars,
        )

        print(
            f"[Replay] Done: {result.total_trades} trades, final balance "
            f"{result.final_balance:.2f} ({result.total_profit:+.2f})"
        )
        return result


def run_replay(
    candles: Sequence[Candle] | Path | str,
    trading_config: TradingConfig,
    latency_ms: int = 0,
    slippage_fraction: float = 0.0,
    taker_fee_rate: float = 0.0,
    direction: TradeDirection = TradeDirection.LONG,
    **backtest_options,
) -> BacktestResult:
    """
    Replay trading_config over candles.

    Raises:
        ValueError: negative latency (or any other invalid execution setting)
    """
    config = BacktestConfig(
        direction=direction,
        latency_ms=latency_ms,
        slippage_fraction=slippage_fraction,
        taker_fee_rate=taker_fee_rate,
        **backtest_options,
    )
    return ReplayDriver(candles, trading_config, config).run()
