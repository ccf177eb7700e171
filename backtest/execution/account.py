# backtest/execution/account.py
"""Simulated margin account: free balance, leveraged positions, equity curve."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from models import TradeDirection

from .position import SimulatedPosition, Trade, TradeStatus, ms_to_datetime


PositionKey = Tuple[str, TradeDirection]


@dataclass
class EquityPoint:
    """A point in the equity curve."""

    timestamp: int
    balance: float
    margin_in_use: float
    unrealized_pnl: float
    total_equity: float


@dataclass
class SimulatedAccount:
    """
    Margin account for leveraged futures.

    margin_balance is the free balance. Opening a position moves its margin
    (plus the entry fee) out of it; closing credits margin + pnl - fee back.
    The balance never goes below zero.
    """

    initial_balance: float = 10_000.0
    leverage: int = 1
    margin_balance: float = field(init=False)
    positions: Dict[PositionKey, SimulatedPosition] = field(default_factory=dict)
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    total_fees: float = 0.0
    rejected_orders: int = 0

    def __post_init__(self):
        if self.initial_balance < 0:
            raise ValueError(f"initial_balance ({self.initial_balance}) must be >= 0")
        self.margin_balance = self.initial_balance

    def get_position(self, symbol: str, direction: TradeDirection) -> Optional[SimulatedPosition]:
        return self.positions.get((symbol.upper(), direction))

    def open_position(
        self,
        symbol: str,
        direction: TradeDirection,
        quantity: float,
        fill_price: float,
        fee: float,
        timestamp: int,
    ) -> bool:
        """
        Debit margin + fee and open a position.

        Returns False (and counts a rejection) when the free balance cannot
        cover margin + fee, or a position for symbol+direction already exists.
        """
        key = (symbol.upper(), direction)
        if key in self.positions:
            self.rejected_orders += 1
            return False

        margin = quantity * fill_price / self.leverage
        if self.margin_balance < margin + fee:
            self.rejected_orders += 1
            return False

        self.margin_balance -= margin + fee
        self.total_fees += fee
        self.positions[key] = SimulatedPosition(
            symbol=key[0],
            direction=direction,
            quantity=quantity,
            entry_price=fill_price,
            initial_margin=margin,
            leverage=self.leverage,
            entry_time=timestamp,
            entry_fee=fee,
        )
        return True

    def close_position(
        self,
        symbol: str,
        direction: TradeDirection,
        fill_price: float,
        fee: float,
        timestamp: int,
    ) -> Optional[Trade]:
        """Close the whole position at fill_price. None if nothing is open."""
        position = self.positions.pop((symbol.upper(), direction), None)
        if position is None:
            return None

        pnl = position.pnl(fill_price)
        self.margin_balance = max(0.0, self.margin_balance + position.initial_margin + pnl - fee)
        self.total_fees += fee

        return self._record_trade(position, fill_price, timestamp, pnl, fee, TradeStatus.CLOSED_EXIT)

    def liquidate(self, symbol: str, direction: TradeDirection, timestamp: int) -> Optional[Trade]:
        """Force-close at the liquidation price. No fee; the credit floors at zero."""
        position = self.positions.pop((symbol.upper(), direction), None)
        if position is None:
            return None

        exit_price = position.liquidation_price
        pnl = position.pnl(exit_price)
        self.margin_balance += max(0.0, position.initial_margin + pnl)

        return self._record_trade(
            position, exit_price, timestamp, pnl, 0.0, TradeStatus.CLOSED_LIQUIDATION
        )

    def _record_trade(
        self,
        position: SimulatedPosition,
        exit_price: float,
        timestamp: int,
        pnl: float,
        exit_fee: float,
        status: TradeStatus,
    ) -> Trade:
        trade = Trade(
            trade_id=len(self.trades) + 1,
            symbol=position.symbol,
            direction=position.direction,
            quantity=position.quantity,
            leverage=position.leverage,
            entry_price=position.entry_price,
            entry_time=position.entry_time,
            exit_price=exit_price,
            exit_time=timestamp,
            initial_margin=position.initial_margin,
            status=status,
            pnl=pnl,
            commission=position.entry_fee + exit_fee,
        )
        self.trades.append(trade)
        return trade

    def margin_in_use(self) -> float:
        return sum(p.initial_margin for p in self.positions.values())

    def unrealized_pnl(self, prices: Dict[str, float]) -> float:
        total = 0.0
        for (symbol, _), position in self.positions.items():
            total += position.pnl(prices.get(symbol, position.entry_price))
        return total

    def record_equity(self, timestamp: int, prices: Dict[str, float]) -> None:
        margin = self.margin_in_use()
        unrealized = self.unrealized_pnl(prices)
        self.equity_curve.append(
            EquityPoint(
                timestamp=timestamp,
                balance=self.margin_balance,
                margin_in_use=margin,
                unrealized_pnl=unrealized,
                total_equity=self.margin_balance + margin + unrealized,
            )
        )

    def get_equity_curve_df(self) -> pd.DataFrame:
        """Equity curve as DataFrame."""
        columns = ["timestamp", "balance", "margin_in_use", "unrealized_pnl", "total_equity"]
        if not self.equity_curve:
            return pd.DataFrame(columns=columns)

        data = [
            {
                "timestamp": ms_to_datetime(p.timestamp),
                "balance": p.balance,
                "margin_in_use": p.margin_in_use,
                "unrealized_pnl": p.unrealized_pnl,
                "total_equity": p.total_equity,
            }
            for p in self.equity_curve
        ]
        return pd.DataFrame(data, columns=columns)

    def reset(self) -> None:
        self.margin_balance = self.initial_balance
        self.positions.clear()
        self.trades.clear()
        self.equity_curve.clear()
        self.total_fees = 0.0
        self.rejected_orders = 0
