# backtest/execution/simulator.py
"""Execution simulator - an ExchangeGateway backed by historical candles."""

from collections import deque
from typing import Deque, List, Optional, Sequence

from models import MAX_LEVERAGE, Candle, OrderSide
from services.broker_base import ExchangeGateway

from .account import SimulatedAccount
from .position import PendingOrder, SimulatedPosition, Trade, floor_to_step


class ExecutionSimulator(ExchangeGateway):
    """
    Simulates a leveraged futures exchange for replay.

    Supports both LONG and SHORT positions with:
    - Order latency (orders fill on the first bar at or after submit + latency)
    - Adverse slippage and taker fees
    - Margin checks on entry (unaffordable entries are dropped)
    - Liquidation when a bar's range crosses the liquidation price

    The replay driver moves the cursor with set_market_context(); everything
    the engine can see (candles, price) ends at the cursor.
    """

    NAME = "simulator"

    def __init__(
        self,
        latency_ms: int = 0,
        slippage_fraction: float = 0.0,
        taker_fee_rate: float = 0.0,
        initial_balance: float = 10_000.0,
        lot_step: float = 0.001,
        verbose: bool = False,
    ):
        """
        Args:
            latency_ms: Delay between submit and earliest fill
            slippage_fraction: Slippage as a fraction (0.001 = 0.1%)
            taker_fee_rate: Fee as a fraction of fill notional
            initial_balance: Starting free margin
            lot_step: Quantities are floored to a multiple of this
            verbose: Print every fill (liquidations are always printed)
        """
        if latency_ms < 0:
            raise ValueError(f"latency_ms ({latency_ms}) must be >= 0")
        if slippage_fraction < 0:
            raise ValueError(f"slippage_fraction ({slippage_fraction}) must be >= 0")
        if taker_fee_rate < 0:
            raise ValueError(f"taker_fee_rate ({taker_fee_rate}) must be >= 0")
        if lot_step <= 0:
            raise ValueError(f"lot_step ({lot_step}) must be positive")

        self.latency_ms = latency_ms
        self.slippage_fraction = slippage_fraction
        self.taker_fee_rate = taker_fee_rate
        self.lot_step = lot_step
        self.verbose = verbose

        self.account = SimulatedAccount(initial_balance=initial_balance)
        self._queue: Deque[PendingOrder] = deque()
        self._history: Sequence[Candle] = ()
        self._index: int = -1

    # === MARKET CONTEXT ===

    @property
    def current_candle(self) -> Optional[Candle]:
        if self._index < 0:
            return None
        return self._history[self._index]

    @property
    def current_time(self) -> int:
        candle = self.current_candle
        if candle is None:
            raise RuntimeError("Market context not set; call set_market_context() first")
        return candle.close_time

    def set_market_context(self, history: Sequence[Candle], index: int) -> None:
        """Move the cursor to history[index] and run the liquidation sweep."""
        if not 0 <= index < len(history):
            raise IndexError(f"index {index} out of range for {len(history)} candles")
        self._history = history
        self._index = index
        self._check_liquidations(history[index])

    def _check_liquidations(self, candle: Candle) -> None:
        low, high = float(candle.low), float(candle.high)
        for position in list(self.account.positions.values()):
            if position.is_liquidated_by(low, high):
                trade = self.account.liquidate(position.symbol, position.direction, candle.close_time)
                print(
                    f"[Simulator] LIQUIDATION {position.direction.value} {position.quantity} "
                    f"{position.symbol} @ {trade.exit_price:.2f} "
                    f"(entry {position.entry_price:.2f}, {position.leverage}x)"
                )

    # === ORDER PROCESSING ===

    def process_pending_orders(self) -> int:
        """Fill every queued order due at or before the current time (FIFO)."""
        now = self.current_time
        processed = 0
        while self._queue and self._queue[0].execution_timestamp <= now:
            self._execute(self._queue.popleft())
            processed += 1
        return processed

    def fill_price(self, side: OrderSide) -> float:
        """Current close moved against the taker by the slippage fraction."""
        close = float(self.current_candle.close)
        if side is OrderSide.BUY:
            return close * (1 + self.slippage_fraction)
        return close * (1 - self.slippage_fraction)

    def _execute(self, order: PendingOrder) -> None:
        price = self.fill_price(order.side)
        fee = price * order.quantity * self.taker_fee_rate
        direction = order.direction
        now = self.current_time

        if order.is_entry:
            if self.account.open_position(order.symbol, direction, order.quantity, price, fee, now):
                self._log(f"Filled {direction.value} entry {order.quantity} {order.symbol} @ {price:.2f}")
            else:
                print(
                    f"[Simulator] Entry rejected: {direction.value} {order.quantity} {order.symbol} "
                    f"@ {price:.2f} (balance {self.account.margin_balance:.2f})"
                )
            return

        trade = self.account.close_position(order.symbol, direction, price, fee, now)
        if trade is None:
            self._log(f"Exit dropped: no {direction.value} position in {order.symbol}")
        else:
            self._log(
                f"Filled {direction.value} exit {trade.quantity} {order.symbol} @ {price:.2f} "
                f"(pnl {trade.pnl:+.2f}, fees {trade.commission:.4f})"
            )

    def quantize(self, quantity: float) -> float:
        """Floor quantity to a multiple of the lot step."""
        return floor_to_step(quantity, self.lot_step)

    def _submit(self, symbol: str, quantity: float, side: OrderSide, is_entry: bool) -> None:
        qty = self.quantize(quantity)
        if qty <= 0:
            self._log(f"Order dropped: {quantity} {symbol} below lot step {self.lot_step}")
            return
        self._queue.append(
            PendingOrder(
                symbol=symbol.upper(),
                quantity=qty,
                side=side,
                is_entry=is_entry,
                execution_timestamp=self.current_time + self.latency_ms,
            )
        )

    # === ExchangeGateway ===

    def fetch_ohlcv(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        # Timeframe is ignored: replay has a single candle series
        if self._index < 0 or limit <= 0:
            return []
        start = max(0, self._index - limit + 1)
        return list(self._history[start:self._index + 1])

    def get_current_price(self, symbol: str) -> float:
        candle = self.current_candle
        if candle is None:
            raise RuntimeError("Market context not set; call set_market_context() first")
        return float(candle.close)

    def get_margin_balance(self) -> float:
        return self.account.margin_balance

    def set_leverage(self, symbol: str, leverage: int) -> None:
        if not 1 <= leverage <= MAX_LEVERAGE:
            raise ValueError(f"leverage ({leverage}) must be between 1 and {MAX_LEVERAGE}")
        self.account.leverage = leverage

    def enter_long_position(self, symbol: str, quantity: float) -> None:
        self._submit(symbol, quantity, OrderSide.BUY, is_entry=True)

    def enter_short_position(self, symbol: str, quantity: float) -> None:
        self._submit(symbol, quantity, OrderSide.SELL, is_entry=True)

    def exit_long_position(self, symbol: str, quantity: float) -> None:
        self._submit(symbol, quantity, OrderSide.SELL, is_entry=False)

    def exit_short_position(self, symbol: str, quantity: float) -> None:
        self._submit(symbol, quantity, OrderSide.BUY, is_entry=False)

    # === RESULTS ===

    @property
    def trades(self) -> List[Trade]:
        return list(self.account.trades)

    @property
    def liquidations(self) -> int:
        return sum(1 for t in self.account.trades if t.is_liquidation)

    @property
    def total_fees(self) -> float:
        return self.account.total_fees

    @property
    def rejected_orders(self) -> int:
        return self.account.rejected_orders

    @property
    def pending_orders(self) -> tuple[PendingOrder, ...]:
        return tuple(self._queue)

    @property
    def open_positions(self) -> List[SimulatedPosition]:
        return list(self.account.positions.values())

    def record_equity(self) -> None:
        candle = self.current_candle
        prices = {p.symbol: float(candle.close) for p in self.account.positions.values()}
        self.account.record_equity(candle.close_time, prices)

    def reset(self) -> None:
        """Reset simulator for a new run."""
        self.account.reset()
        self._queue.clear()
        self._history = ()
        self._index = -1

    def _log(self, message: str) -> None:
        if self.verbose:
            print(f"[Simulator] {message}")
