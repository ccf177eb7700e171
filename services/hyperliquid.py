# hyperliquid.py - Hyperliquid perpetual futures gateway.
"""
This gateway provides Hyperliquid perpetual trading for the decision engine.
Implements ExchangeGateway for multi-exchange support.

Hyperliquid is a decentralized perpetual futures exchange.
Uses Ethereum wallet addresses for authentication.

Supports:
- Perpetual futures (BTC, ETH, etc.) with per-coin leverage
- Fractional quantities
- Long and short positions
- Testnet (HYPERLIQUID_TESTNET=true)
- Read-only mode without a private key (market data only, used by paper mode)

Calls are synchronous; the engine runs them from a worker thread.
Failures raise so the engine (and ResilientGateway) can see them.
"""

import os
import time
from decimal import Decimal

from models import Candle
from services.broker_base import ExchangeGateway, register_gateway

# Hyperliquid SDK import - will be installed via requirements
try:
    from hyperliquid.info import Info
    from hyperliquid.exchange import Exchange
    from hyperliquid.utils import constants
    from eth_account import Account
    HYPERLIQUID_AVAILABLE = True
except ImportError:
    HYPERLIQUID_AVAILABLE = False
    Info = None
    Exchange = None
    constants = None
    Account = None


class HyperliquidError(RuntimeError):
    """The exchange returned a non-ok response."""


def normalize_symbol(symbol: str) -> str:
    """BTCUSDT / BTC-PERP / BTC/USD -> BTC."""
    symbol = symbol.upper()
    for suffix in ["USDT", "USD", "-PERP", "_PERP", "PERP"]:
        if symbol.endswith(suffix):
            symbol = symbol[:-len(suffix)]
            break
    return symbol.replace("/", "").replace("-", "").replace("_", "")


@register_gateway("hyperliquid")
class HyperliquidGateway(ExchangeGateway):
    """
    Hyperliquid perpetual futures gateway.

    Uses the official hyperliquid-python-sdk: Info for market data and
    account state, Exchange for leverage and market orders.
    """

    NAME = "hyperliquid"

    INTERVAL_MS = {
        "1m": 60_000,
        "5m": 300_000,
        "15m": 900_000,
        "30m": 1_800_000,
        "1h": 3_600_000,
        "4h": 14_400_000,
        "1d": 86_400_000,
        "1w": 604_800_000,
    }

    # Price band for aggressive market orders
    MARKET_SLIPPAGE = 0.05

    def __init__(
        self,
        private_key: str | None = None,
        testnet: bool | None = None,
        read_only: bool = False,
    ):
        if not HYPERLIQUID_AVAILABLE:
            raise ImportError(
                "hyperliquid-python-sdk not installed. Run: pip install hyperliquid-python-sdk"
            )

        self.private_key = "" if read_only else (private_key or os.getenv("HYPERLIQUID_PRIVATE_KEY", ""))
        if testnet is None:
            testnet = os.getenv("HYPERLIQUID_TESTNET", "false").lower() == "true"
        self.testnet = testnet

        # Mainnet: https://api.hyperliquid.xyz
        # Testnet: https://api.hyperliquid-testnet.xyz
        self.base_url = constants.TESTNET_API_URL if testnet else constants.MAINNET_API_URL
        env_label = "Testnet" if testnet else "Mainnet"
        print(f"[Hyperliquid] Connecting to {env_label} ({self.base_url})")

        self._info = Info(self.base_url, skip_ws=True)
        self._exchange: Exchange | None = None
        self.wallet_address = ""

        if self.private_key:
            wallet = Account.from_key(self.private_key)
            self._exchange = Exchange(wallet=wallet, base_url=self.base_url)
            self.wallet_address = wallet.address
            print(f"[Hyperliquid] Wallet: {wallet.address}")
        else:
            print("[Hyperliquid] No private key: read-only (market data only)")

    @property
    def can_trade(self) -> bool:
        return self._exchange is not None

    def _require_exchange(self) -> "Exchange":
        if self._exchange is None:
            raise HyperliquidError("Trading requires HYPERLIQUID_PRIVATE_KEY")
        return self._exchange

    # === MARKET DATA ===

    def fetch_ohlcv(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        if timeframe not in self.INTERVAL_MS:
            raise ValueError(
                f"Unsupported timeframe {timeframe!r}. Available: {', '.join(self.INTERVAL_MS)}"
            )
        if limit <= 0:
            return []

        coin = normalize_symbol(symbol)
        end_time = int(time.time() * 1000)
        start_time = end_time - (limit + 1) * self.INTERVAL_MS[timeframe]

        # Hyperliquid format: {"t": open ms, "T": close ms, "o", "h", "l", "c", "v": strings}
        raw = self._info.candles_snapshot(coin, timeframe, start_time, end_time) or []
        candles = [
            Candle(
                open_time=int(c["t"]),
                open=Decimal(str(c["o"])),
                high=Decimal(str(c["h"])),
                low=Decimal(str(c["l"])),
                close=Decimal(str(c["c"])),
                volume=Decimal(str(c["v"])),
                close_time=int(c["T"]),
            )
            for c in raw
        ]
        candles.sort(key=lambda c: c.open_time)
        return candles[-limit:]

    def get_current_price(self, symbol: str) -> float:
        coin = normalize_symbol(symbol)
        all_mids = self._info.all_mids()
        if not all_mids or coin not in all_mids:
            raise HyperliquidError(f"No mid price for {coin}")
        return float(all_mids[coin])

    # === ACCOUNT ===

    def get_margin_balance(self) -> float:
        """accountValue - totalMarginUsed from the user's margin summary."""
        if not self.wallet_address:
            raise HyperliquidError("Margin balance requires HYPERLIQUID_PRIVATE_KEY")
        user_state = self._info.user_state(self.wallet_address)
        margin_summary = user_state.get("marginSummary", {})
        account_value = float(margin_summary.get("accountValue", 0))
        total_margin_used = float(margin_summary.get("totalMarginUsed", 0))
        return account_value - total_margin_used

    def set_leverage(self, symbol: str, leverage: int) -> None:
        coin = normalize_symbol(symbol)
        result = self._require_exchange().update_leverage(leverage, coin, is_cross=True)
        self._check_result(result, f"update_leverage {coin} {leverage}x")
        print(f"[Hyperliquid] Leverage {coin}: {leverage}x")

    # === ORDERS ===

    def _market_open(self, symbol: str, is_buy: bool, quantity: float) -> None:
        coin = normalize_symbol(symbol)
        side = "BUY" if is_buy else "SELL"
        print(f"[Hyperliquid] {side} {quantity} {coin} (market open)")
        result = self._require_exchange().market_open(
            coin, is_buy, quantity, None, self.MARKET_SLIPPAGE
        )
        self._check_result(result, f"market_open {side} {quantity} {coin}")

    def _market_close(self, symbol: str, quantity: float) -> None:
        coin = normalize_symbol(symbol)
        print(f"[Hyperliquid] CLOSE {quantity} {coin} (market close)")
        result = self._require_exchange().market_close(
            coin, quantity, None, self.MARKET_SLIPPAGE
        )
        self._check_result(result, f"market_close {quantity} {coin}")

    def enter_long_position(self, symbol: str, quantity: float) -> None:
        self._market_open(symbol, True, quantity)

    def enter_short_position(self, symbol: str, quantity: float) -> None:
        self._market_open(symbol, False, quantity)

    def exit_long_position(self, symbol: str, quantity: float) -> None:
        self._market_close(symbol, quantity)

    def exit_short_position(self, symbol: str, quantity: float) -> None:
        self._market_close(symbol, quantity)

    @staticmethod
    def _check_result(result: dict | None, action: str) -> None:
        """Raise unless the SDK response is ok and carries no per-order error."""
        if not result or result.get("status") != "ok":
            raise HyperliquidError(f"{action} failed: {result}")

        response = result.get("response", {})
        if isinstance(response, dict) and response.get("type") == "order":
            statuses = response.get("data", {}).get("statuses", [])
            for status in statuses:
                if "error" in status:
                    raise HyperliquidError(f"{action} rejected: {status['error']}")
