# paper.py - Paper trading gateway (live prices, simulated fills).
"""
PaperGateway wraps a market-data gateway (e.g. a read-only
HyperliquidGateway) and fills every order immediately against the latest
price into a simulated margin account. Nothing is sent to the exchange.

Fills use the same margin, fee and lot rules as the replay simulator but
without latency. Every price read (each engine cycle and each fill) sweeps
open positions in that symbol for liquidation.
"""

import os
import threading
import time
from typing import Callable

from backtest.execution.account import SimulatedAccount
from backtest.execution.position import SimulatedPosition, floor_to_step
from models import MAX_LEVERAGE, Candle, OrderSide, TradeDirection
from services.broker_base import ExchangeGateway


class PaperGateway(ExchangeGateway):
    """Immediate-fill simulated execution over a live price feed."""

    NAME = "paper"

    def __init__(
        self,
        market_data: ExchangeGateway,
        initial_balance: float | None = None,
        slippage_fraction: float = 0.0,
        taker_fee_rate: float = 0.0,
        lot_step: float = 0.001,
        clock: Callable[[], int] | None = None,
    ):
        if initial_balance is None:
            initial_balance = float(os.getenv("PAPER_STARTING_BALANCE", "10000"))
        if slippage_fraction < 0 or taker_fee_rate < 0:
            raise ValueError("slippage_fraction and taker_fee_rate must be >= 0")
        if lot_step <= 0:
            raise ValueError(f"lot_step ({lot_step}) must be positive")

        self.market_data = market_data
        self.slippage_fraction = slippage_fraction
        self.taker_fee_rate = taker_fee_rate
        self.lot_step = lot_step
        self.account = SimulatedAccount(initial_balance=initial_balance)

        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()

        print(f"[Paper] Starting balance: ${initial_balance:,.2f} (data: {market_data.NAME})")

    # === MARKET DATA (delegated) ===

    def fetch_ohlcv(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        return self.market_data.fetch_ohlcv(symbol, timeframe, limit)

    def get_current_price(self, symbol: str) -> float:
        price = self.market_data.get_current_price(symbol)
        with self._lock:
            self._liquidate_if_crossed(symbol, price, self._clock())
        return price

    # === ACCOUNT ===

    def get_margin_balance(self) -> float:
        with self._lock:
            return self.account.margin_balance

    def set_leverage(self, symbol: str, leverage: int) -> None:
        if not 1 <= leverage <= MAX_LEVERAGE:
            raise ValueError(f"leverage ({leverage}) must be between 1 and {MAX_LEVERAGE}")
        with self._lock:
            self.account.leverage = leverage
        print(f"[Paper] Leverage {symbol}: {leverage}x")

    @property
    def open_positions(self) -> list[SimulatedPosition]:
        with self._lock:
            return list(self.account.positions.values())

    # === ORDERS ===

    def _fill(self, symbol: str, quantity: float, side: OrderSide, direction: TradeDirection, is_entry: bool) -> None:
        qty = floor_to_step(quantity, self.lot_step)
        if qty <= 0:
            print(f"[Paper] Order dropped: {quantity} {symbol} below lot step {self.lot_step}")
            return

        price = self.get_current_price(symbol)
        fill = price * (1 + self.slippage_fraction) if side is OrderSide.BUY else price * (1 - self.slippage_fraction)
        fee = fill * qty * self.taker_fee_rate
        now = self._clock()

        with self._lock:
            if is_entry:
                if self.account.open_position(symbol, direction, qty, fill, fee, now):
                    print(f"[Paper] Filled {direction.value} entry {qty} {symbol} @ {fill:.2f}")
                else:
                    print(
                        f"[Paper] Entry rejected: {direction.value} {qty} {symbol} @ {fill:.2f} "
                        f"(balance {self.account.margin_balance:.2f})"
                    )
                return

            trade = self.account.close_position(symbol, direction, fill, fee, now)
            if trade is None:
                print(f"[Paper] Exit dropped: no {direction.value} position in {symbol}")
            else:
                print(
                    f"[Paper] Filled {direction.value} exit {trade.quantity} {symbol} @ {fill:.2f} "
                    f"(pnl {trade.pnl:+.2f})"
                )

    def _liquidate_if_crossed(self, symbol: str, price: float, now: int) -> None:
        for direction in TradeDirection:
            position = self.account.get_position(symbol, direction)
            if position is not None and position.is_liquidated_by(price, price):
                self.account.liquidate(symbol, direction, now)
                print(f"[Paper] LIQUIDATION {direction.value} {position.quantity} {symbol} @ {price:.2f}")

    def enter_long_position(self, symbol: str, quantity: float) -> None:
        self._fill(symbol, quantity, OrderSide.BUY, TradeDirection.LONG, is_entry=True)

    def enter_short_position(self, symbol: str, quantity: float) -> None:
        self._fill(symbol, quantity, OrderSide.SELL, TradeDirection.SHORT, is_entry=True)

    def exit_long_position(self, symbol: str, quantity: float) -> None:
        self._fill(symbol, quantity, OrderSide.SELL, TradeDirection.LONG, is_entry=False)

    def exit_short_position(self, symbol: str, quantity: float) -> None:
        self._fill(symbol, quantity, OrderSide.BUY, TradeDirection.SHORT, is_entry=False)
