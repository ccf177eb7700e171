# broker_base.py - Abstract execution contract for exchanges.
"""
This module defines the interface that every exchange implementation must follow.
The trading engine only ever talks to an ExchangeGateway, so it cannot tell
whether it is trading live, paper trading, or replaying history.

Implementations:
- services/hyperliquid.py       HyperliquidGateway  (live perpetuals)
- services/paper.py             PaperGateway        (live prices, simulated fills)
- backtest/execution/simulator  ExecutionSimulator  (historical replay)
- services/resilience.py        ResilientGateway    (decorator around a live gateway)

To add a new exchange:
1. Create a new file (e.g., services/my_exchange.py)
2. Implement a class that inherits from ExchangeGateway
3. Decorate it with @register_gateway("my_exchange")
4. Set EXCHANGE=my_exchange in .env
"""

from abc import ABC, abstractmethod

from models import Candle


class ExchangeGateway(ABC):
    """
    Abstract base class for all exchange implementations.

    Mutating calls (leverage, entries, exits) are fire-and-forget from the
    engine's point of view: it never waits for or observes a fill.
    """

    # Override in subclass
    NAME: str = "base"

    @abstractmethod
    def fetch_ohlcv(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        """
        Fetch the most recent candles.

        Args:
            symbol: Trading symbol (e.g., "BTCUSDT")
            timeframe: Bar interval (e.g., "1d", "1w")
            limit: Max number of candles

        Returns:
            Candles ordered by open time, newest last
        """

    @abstractmethod
    def get_current_price(self, symbol: str) -> float:
        """Latest traded (or mid) price."""

    @abstractmethod
    def get_margin_balance(self) -> float:
        """Free margin in quote currency."""

    @abstractmethod
    def set_leverage(self, symbol: str, leverage: int) -> None:
        """Apply leverage for a symbol."""

    @abstractmethod
    def enter_long_position(self, symbol: str, quantity: float) -> None:
        """Open a long (buy) position."""

    @abstractmethod
    def enter_short_position(self, symbol: str, quantity: float) -> None:
        """Open a short (sell) position."""

    @abstractmethod
    def exit_long_position(self, symbol: str, quantity: float) -> None:
        """Close a long position (sell)."""

    @abstractmethod
    def exit_short_position(self, symbol: str, quantity: float) -> None:
        """Close a short position (buy back)."""


# Registry of available live gateways
# Add new exchanges here after implementing them
GATEWAY_REGISTRY: dict[str, type[ExchangeGateway]] = {}


def register_gateway(name: str):
    """Decorator to register a gateway implementation."""
    def decorator(cls: type[ExchangeGateway]):
        GATEWAY_REGISTRY[name.lower()] = cls
        return cls
    return decorator


def get_gateway(name: str) -> type[ExchangeGateway]:
    """Get a gateway class by name."""
    name_lower = name.lower()
    if name_lower not in GATEWAY_REGISTRY:
        available = ", ".join(GATEWAY_REGISTRY.keys())
        raise ValueError(f"Unknown exchange: {name}. Available: {available}")
    return GATEWAY_REGISTRY[name_lower]


def list_gateways() -> list[str]:
    """List all registered gateway names."""
    return list(GATEWAY_REGISTRY.keys())
