# backtest/execution/position.py
"""Order, position and trade records for the execution simulator."""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Any, Dict

from models import OrderSide, TradeDirection, liquidation_price


class TradeStatus(Enum):
    """Exit reason of a closed trade."""
    CLOSED_EXIT = "EXIT"
    CLOSED_LIQUIDATION = "LIQUIDATION"


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def floor_to_step(quantity: float, step: float) -> float:
    """Floor quantity to a multiple of step (exact decimal arithmetic)."""
    step_dec = Decimal(str(step))
    steps = (Decimal(str(quantity)) / step_dec).to_integral_value(rounding=ROUND_FLOOR)
    return float(steps * step_dec)


@dataclass(frozen=True)
class PendingOrder:
    """An order waiting out the simulated latency."""

    symbol: str
    quantity: float
    side: OrderSide
    is_entry: bool
    execution_timestamp: int  # epoch ms

    @property
    def direction(self) -> TradeDirection:
        """Direction of the position this order opens or closes."""
        if self.is_entry:
            return TradeDirection.LONG if self.side is OrderSide.BUY else TradeDirection.SHORT
        return TradeDirection.LONG if self.side is OrderSide.SELL else TradeDirection.SHORT


@dataclass
class SimulatedPosition:
    """An open leveraged position held by the simulated account."""

    symbol: str
    direction: TradeDirection
    quantity: float
    entry_price: float
    initial_margin: float
    leverage: int
    entry_time: int  # epoch ms
    entry_fee: float = 0.0

    @property
    def liquidation_price(self) -> float:
        return liquidation_price(self.entry_price, self.leverage, self.direction)

    def pnl(self, price: float) -> float:
        """Unrealized P&L at price."""
        if self.direction is TradeDirection.LONG:
            return (price - self.entry_price) * self.quantity
        return (self.entry_price - price) * self.quantity

    def is_liquidated_by(self, low: float, high: float) -> bool:
        """True if the bar's range touched the liquidation price."""
        if self.direction is TradeDirection.LONG:
            return low <= self.liquidation_price
        return high >= self.liquidation_price


@dataclass
class Trade:
    """A completed round trip (entry + exit or liquidation)."""

    trade_id: int
    symbol: str
    direction: TradeDirection
    quantity: float
    leverage: int
    entry_price: float
    entry_time: int
    exit_price: float
    exit_time: int
    initial_margin: float
    status: TradeStatus = TradeStatus.CLOSED_EXIT
    pnl: float = 0.0  # Gross price P&L
    commission: float = 0.0  # Entry + exit fees

    @property
    def net_pnl(self) -> float:
        return self.pnl - self.commission

    @property
    def return_on_margin(self) -> float:
        if self.initial_margin == 0:
            return 0.0
        return self.net_pnl / self.initial_margin

    @property
    def is_winner(self) -> bool:
        return self.net_pnl > 0

    @property
    def is_liquidation(self) -> bool:
        return self.status is TradeStatus.CLOSED_LIQUIDATION

    @property
    def duration_minutes(self) -> float:
        return (self.exit_time - self.entry_time) / 60_000

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for export."""
        return {
            "Trade_ID": self.trade_id,
            "Symbol": self.symbol,
            "Direction": self.direction.value,
            "Quantity": round(self.quantity, 6),
            "Leverage": self.leverage,
            "Entry_Price": round(self.entry_price, 4),
            "Entry_Time": ms_to_datetime(self.entry_time),
            "Exit_Price": round(self.exit_price, 4),
            "Exit_Time": ms_to_datetime(self.exit_time),
            "Margin": round(self.initial_margin, 2),
            "Status": self.status.value,
            "PnL": round(self.pnl, 2),
            "Commission": round(self.commission, 4),
            "Net_PnL": round(self.net_pnl, 2),
            "Return_On_Margin_Pct": round(self.return_on_margin * 100, 2),
            "Duration_Minutes": round(self.duration_minutes, 2),
            "Is_Winner": self.is_winner,
        }
