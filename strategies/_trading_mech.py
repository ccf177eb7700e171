# strategies/_trading_mech.py - Trading decision engine.
"""
_trading_mech.py - Core trading mechanics for one (symbol, direction) bot.

The engine is a small state machine:

    STOPPED --start()--> RUNNING (NO_POSITION) --entry--> RUNNING (IN_POSITION)
       ^                        ^                              |
       |                        +------------exit--------------+
       +--------stop()------------------------------------------

Every decision cycle is one call to step(). Live mode schedules step() on a
fixed cadence from an asyncio task; replay calls it once per historical bar.
The engine only talks to an ExchangeGateway, so it behaves identically in
live, paper and replay mode.

Position Management:
- Entry: indicator predicate on the signal timeframe, confirmation RSI on the
  higher timeframe, optional sentiment gate, margin check
- Exit: trailing stop (direction-aware) OR any pluggable ExitCondition
- Fire-and-forget: the engine records the position optimistically on submit
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Iterable

import context
from models import (
    MAX_LEVERAGE,
    BotStatus,
    IndicatorSnapshot,
    PositionStatus,
    PositionView,
    TradeDirection,
    TradingConfig,
)
from services.broker_base import ExchangeGateway
from services.exits import ExitCondition, any_exit
from services.sentiment import SentimentAnalyzer, StaticSentiment
from strategies.indicators import IndicatorCalculator
from strategies.trailing_stop import TrailingStopTracker


class PositionEntryError(Exception):
    """The gateway rejected or failed an entry submission."""


class PositionExitError(Exception):
    """The gateway rejected or failed an exit submission."""


class LeverageError(ValueError):
    """The gateway failed to apply a (valid) leverage value."""


@dataclass
class PositionState:
    """Mutable engine state. Direction never changes after construction."""
    direction: TradeDirection
    status: PositionStatus = PositionStatus.NONE
    entry_price: float = 0.0
    running: bool = False
    sentiment_gate_enabled: bool = False
    current_leverage: int = 1


def validate_leverage(leverage: int) -> int:
    if not isinstance(leverage, int) or isinstance(leverage, bool):
        raise ValueError(f"leverage ({leverage!r}) must be an integer")
    if not 1 <= leverage <= MAX_LEVERAGE:
        raise ValueError(f"leverage ({leverage}) must be between 1 and {MAX_LEVERAGE}")
    return leverage


class TradingDecisionEngine:
    """
    Decides when to open and close one leveraged position.

    Args:
        config: Trading parameters (hot-swappable via update_config)
        gateway: Execution contract (live adapter, paper, or simulator)
        direction: LONG or SHORT, fixed for the engine's lifetime
        exit_conditions: Extra exit predicates OR-ed with the trailing stop
        sentiment: Analyzer consulted when the sentiment gate is enabled
        replay_mode: No per-cycle memo, no operator notifications
    """

    SIGNAL_TIMEFRAME = "1d"
    CONFIRMATION_TIMEFRAME = "1w"

    # Entry tolerance around the Bollinger band touch
    BAND_TOLERANCE = 0.01

    def __init__(
        self,
        config: TradingConfig,
        gateway: ExchangeGateway,
        direction: TradeDirection = TradeDirection.LONG,
        *,
        exit_conditions: Iterable[ExitCondition] | None = None,
        sentiment: SentimentAnalyzer | None = None,
        indicator_calculator: IndicatorCalculator | None = None,
        replay_mode: bool = False,
        signal_timeframe: str = SIGNAL_TIMEFRAME,
        confirmation_timeframe: str = CONFIRMATION_TIMEFRAME,
    ):
        self.config = config
        self.gateway = gateway
        self.replay_mode = replay_mode
        self.signal_timeframe = signal_timeframe
        self.confirmation_timeframe = confirmation_timeframe

        self.calculator = indicator_calculator or IndicatorCalculator(
            gateway, config, verbose=not replay_mode
        )
        self.tracker = TrailingStopTracker(direction, config.trailing_stop_percent)
        self.exit_conditions: list[ExitCondition] = list(exit_conditions or [])
        self.sentiment = sentiment or StaticSentiment()

        self.state = PositionState(direction=direction, current_leverage=config.leverage)

        self._task: asyncio.Task | None = None
        self._cycle_lock = threading.Lock()
        self._memo: dict[str, IndicatorSnapshot | None] = {}

        self._apply_leverage(config.leverage)

    # === PROPERTIES ===

    @property
    def direction(self) -> TradeDirection:
        return self.state.direction

    @property
    def symbol(self) -> str:
        return self.config.symbol

    @property
    def in_position(self) -> bool:
        return self.state.status is PositionStatus.OPEN

    @property
    def name(self) -> str:
        return f"Engine {self.symbol} {self.direction.value}"

    # === LIFECYCLE ===

    def start(self) -> asyncio.Task | None:
        """
        Begin the periodic loop on the running event loop.

        Must be called from async context. A second start() while running
        only warns.
        """
        if self.state.running:
            self.log("Already running, start ignored", "warning")
            return self._task

        self.state.running = True
        self._task = asyncio.get_running_loop().create_task(self._run_loop())
        self.log(
            f"Started ({self.state.current_leverage}x, every {self.config.check_interval_seconds}s)",
            "info",
        )
        return self._task

    async def stop(self, close_position: bool = True) -> None:
        """Stop the loop and, if in a position, close it (best effort)."""
        was_running = self.state.running
        self.state.running = False

        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if close_position and self.in_position:
            await asyncio.to_thread(self.force_close)

        if was_running:
            self.log("Stopped", "info")

    async def _run_loop(self) -> None:
        interval = self.config.check_interval_seconds
        while self.state.running:
            try:
                await asyncio.to_thread(self.step)
            except asyncio.CancelledError:
                break
            except Exception as e:
                print(f"[{self.name}] Cycle error: {e}")
                context.log(f"[{self.name}] Cycle error: {e}", "error")

            interval = self.config.check_interval_seconds
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

        self.state.running = False

    # === DECISION CYCLE ===

    def step(self) -> None:
        """Run exactly one decision cycle."""
        with self._cycle_lock:
            self._memo.clear()
            if self.in_position:
                self._check_exit()
            else:
                self._check_entry()

    def _indicators(self, timeframe: str) -> IndicatorSnapshot | None:
        if self.replay_mode:
            return self.calculator.compute(timeframe, self.symbol)
        if timeframe not in self._memo:
            self._memo[timeframe] = self.calculator.compute(timeframe, self.symbol)
        return self._memo[timeframe]

    def entry_signal(
        self,
        signal: IndicatorSnapshot,
        confirmation: IndicatorSnapshot,
        price: float,
    ) -> bool:
        """Indicator predicate for opening in this engine's direction."""
        cfg = self.config
        if self.direction is TradeDirection.LONG:
            return (
                signal.rsi <= cfg.rsi_oversold
                and signal.macd > signal.macd_signal
                and price <= signal.bollinger_lower * (1 + self.BAND_TOLERANCE)
                and confirmation.rsi < cfg.rsi_overbought
            )
        return (
            signal.rsi >= cfg.rsi_overbought
            and signal.macd < signal.macd_signal
            and price >= signal.bollinger_upper * (1 - self.BAND_TOLERANCE)
            and confirmation.rsi > cfg.rsi_oversold
        )

    def _sentiment_agrees(self) -> bool:
        if not self.state.sentiment_gate_enabled:
            return True
        if self.direction is TradeDirection.LONG:
            return self.sentiment.is_positive(self.symbol)
        return self.sentiment.is_negative(self.symbol)

    def _check_entry(self) -> None:
        signal = self._indicators(self.signal_timeframe)
        confirmation = self._indicators(self.confirmation_timeframe)
        if signal is None or confirmation is None:
            self.log("Insufficient history for indicators, no action", "debug")
            return

        price = self.gateway.get_current_price(self.symbol)
        if not self.entry_signal(signal, confirmation, price):
            return

        if not self._sentiment_agrees():
            self.log(f"Entry signal @ {price:.2f} vetoed by sentiment", "info")
            return

        with context.get_symbol_lock(self.symbol):
            leverage = self.state.current_leverage
            required = self.config.trade_amount * price / leverage
            balance = self.gateway.get_margin_balance()
            if balance < required:
                self.log(
                    f"Insufficient margin: {balance:.2f} < {required:.2f} required, skipping entry",
                    "warning",
                )
                return

            try:
                if self.direction is TradeDirection.LONG:
                    self.gateway.enter_long_position(self.symbol, self.config.trade_amount)
                else:
                    self.gateway.enter_short_position(self.symbol, self.config.trade_amount)
            except Exception as e:
                raise PositionEntryError(f"{self.name}: entry failed: {e}") from e

            self.state.status = PositionStatus.OPEN
            self.state.entry_price = price
            self.tracker.initialize(price)

        self.log(
            f"Opened {self.direction.value} {self.config.trade_amount} @ {price:.2f} "
            f"({leverage}x, RSI {signal.rsi:.1f})",
            "trade",
        )

    def _check_exit(self) -> None:
        price = self.gateway.get_current_price(self.symbol)
        self.tracker.update(price)

        view = PositionView(
            symbol=self.symbol,
            direction=self.direction,
            entry_price=self.state.entry_price,
            current_price=price,
            leverage=self.state.current_leverage,
        )

        if self.tracker.check_triggered(price):
            self._close_position(price, "trailing stop")
        elif any_exit(self.exit_conditions, view):
            self._close_position(price, "exit condition")

    def _close_position(self, price: float, reason: str) -> None:
        try:
            if self.direction is TradeDirection.LONG:
                self.gateway.exit_long_position(self.symbol, self.config.trade_amount)
            else:
                self.gateway.exit_short_position(self.symbol, self.config.trade_amount)
        except Exception as e:
            raise PositionExitError(f"{self.name}: exit failed: {e}") from e

        entry = self.state.entry_price
        self.state.status = PositionStatus.NONE
        self.state.entry_price = 0.0
        self.tracker.reset()

        move_pct = (price - entry) / entry * 100 * self.direction.sign if entry else 0.0
        self.log(f"Closed {self.direction.value} @ {price:.2f} ({reason}, {move_pct:+.2f}%)", "trade")

    def force_close(self) -> bool:
        """Close any open position now. Errors are logged, not raised."""
        with self._cycle_lock:
            if not self.in_position:
                return False
            try:
                price = self.gateway.get_current_price(self.symbol)
                self._close_position(price, "stop requested")
            except Exception as e:
                print(f"[{self.name}] Failed to close position on stop: {e}")
                context.log(f"[{self.name}] Failed to close position on stop: {e}", "error")
                return False
            return True

    # === CONTROL ===

    def _apply_leverage(self, leverage: int) -> None:
        try:
            self.gateway.set_leverage(self.symbol, leverage)
        except Exception as e:
            raise LeverageError(f"Failed to set leverage {leverage}x on {self.symbol}: {e}") from e
        self.state.current_leverage = leverage

    def set_leverage(self, leverage: int) -> None:
        """Validate and re-apply leverage, with or without an open position."""
        validate_leverage(leverage)
        self._apply_leverage(leverage)
        self.log(f"Leverage set to {leverage}x", "info")

    def update_config(self, config: TradingConfig) -> None:
        """Swap parameters between cycles. An open position is kept."""
        with self._cycle_lock:
            if config.symbol != self.config.symbol and self.in_position:
                raise ValueError(
                    f"Cannot change symbol {self.config.symbol} -> {config.symbol} "
                    "while a position is open"
                )
            self.config = config
            self._apply_leverage(config.leverage)
            self.tracker.set_trailing_percent(config.trailing_stop_percent)
            self.calculator.update_config(config)
        self.log("Configuration updated", "info")

    def enable_sentiment_analysis(self, enabled: bool) -> None:
        self.state.sentiment_gate_enabled = enabled
        self.log(f"Sentiment gate {'enabled' if enabled else 'disabled'}", "info")

    def restore_position(self, entry_price: float) -> None:
        """Resume IN_POSITION after a restart (position already on the exchange)."""
        if entry_price <= 0:
            raise ValueError(f"entry_price ({entry_price}) must be positive")
        with self._cycle_lock:
            self.state.status = PositionStatus.OPEN
            self.state.entry_price = entry_price
            self.tracker.initialize(entry_price)
        self.log(f"Restored {self.direction.value} position @ {entry_price:.2f}", "info")

    def status(self) -> BotStatus:
        return BotStatus(
            running=self.state.running,
            direction=self.direction,
            symbol=self.symbol,
            position_status=self.state.status,
            entry_price=self.state.entry_price,
            leverage=self.state.current_leverage,
            sentiment_enabled=self.state.sentiment_gate_enabled,
        )

    # === LOGGING ===

    def log(self, message: str, level: str = "info") -> None:
        """Print with the engine prefix; notify the operator in live mode."""
        if self.replay_mode and level not in ("trade", "warning", "error"):
            return
        print(f"[{self.name}] {message}")
        if not self.replay_mode and level != "debug":
            context.log(f"[{self.name}] {message}", level)
