# bot_manager.py - Live control surface for many trading engines.
"""
BotManager owns every live TradingDecisionEngine in the process.

Each operation is a pass-through into one engine, looked up by bot id.
Configuration errors (ValueError) propagate to the caller; unknown ids
raise KeyError. Blocking gateway work (leverage, closing positions) runs
in worker threads so the event loop keeps serving other bots.

Bots are registered in context.active_bots so other components can see them.
"""

import asyncio
import os
import uuid
from typing import Callable

import context
from models import BotStatus, TradeDirection, TradingConfig
from services.broker_base import ExchangeGateway, get_gateway, list_gateways
from services.sentiment import SentimentAnalyzer
from strategies import TradingDecisionEngine


GatewayFactory = Callable[[bool], ExchangeGateway]


class EnvGatewayFactory:
    """
    Builds gateways from environment settings, one instance per mode.

    EXCHANGE selects the registered live gateway (default: hyperliquid).
    Paper mode wraps a read-only instance of it in a PaperGateway.
    Both are wrapped in ResilientGateway.
    """

    def __init__(self, exchange: str | None = None):
        self.exchange = (exchange or os.getenv("EXCHANGE", "hyperliquid")).lower()
        self._instances: dict[bool, ExchangeGateway] = {}

    def __call__(self, paper_mode: bool) -> ExchangeGateway:
        if paper_mode not in self._instances:
            self._instances[paper_mode] = self._build(paper_mode)
        return self._instances[paper_mode]

    def _build(self, paper_mode: bool) -> ExchangeGateway:
        from services.paper import PaperGateway
        from services.resilience import ResilientGateway

        # Conditional import registers the gateway class
        if self.exchange == "hyperliquid":
            from services.hyperliquid import HyperliquidGateway  # noqa: F401

        try:
            GatewayClass = get_gateway(self.exchange)
        except ValueError:
            print(f"Unknown exchange: {self.exchange}. Available: {', '.join(list_gateways())}")
            raise

        if paper_mode:
            return PaperGateway(ResilientGateway(GatewayClass(read_only=True)))
        return ResilientGateway(GatewayClass())


class BotManager:
    """Creates, controls and reports on live bots."""

    def __init__(
        self,
        gateway_factory: GatewayFactory | None = None,
        sentiment: SentimentAnalyzer | None = None,
    ):
        self.gateway_factory = gateway_factory or EnvGatewayFactory()
        self.sentiment = sentiment

    # === LOOKUP ===

    def get_bot(self, bot_id: str) -> TradingDecisionEngine:
        engine = context.active_bots.get(bot_id)
        if engine is None:
            raise KeyError(f"Unknown bot: {bot_id}")
        return engine

    # === LIFECYCLE ===

    async def create_bot(
        self,
        config: TradingConfig,
        direction: TradeDirection = TradeDirection.LONG,
        paper_mode: bool = False,
        bot_id: str | None = None,
    ) -> str:
        """Build an engine (applies leverage on the gateway) and register it. Not started."""
        bot_id = bot_id or f"bot-{uuid.uuid4().hex[:6]}"
        if context.active_bots.get(bot_id) is not None:
            raise ValueError(f"Bot id already exists: {bot_id}")

        def build() -> TradingDecisionEngine:
            gateway = self.gateway_factory(paper_mode)
            return TradingDecisionEngine(config, gateway, direction, sentiment=self.sentiment)

        engine = await asyncio.to_thread(build)
        context.active_bots.set(bot_id, engine)

        mode = "paper" if paper_mode else "live"
        print(f"[BotManager] Created {bot_id}: {config.symbol} {direction.value} {config.leverage}x ({mode})")
        context.log(f"Created {bot_id}: {config.symbol} {direction.value} ({mode})", "info")
        return bot_id

    async def start_bot(self, bot_id: str) -> None:
        self.get_bot(bot_id).start()

    async def stop_bot(self, bot_id: str, close_position: bool = True, timeout: float = 30.0) -> None:
        """Stop a bot; the position close is bounded by timeout (seconds)."""
        engine = self.get_bot(bot_id)
        try:
            await asyncio.wait_for(engine.stop(close_position=close_position), timeout)
        except asyncio.TimeoutError:
            print(f"[BotManager] {bot_id} did not stop within {timeout}s")
            context.log(f"{bot_id} did not stop within {timeout}s", "error")

    async def delete_bot(self, bot_id: str, timeout: float = 30.0) -> None:
        await self.stop_bot(bot_id, close_position=True, timeout=timeout)
        context.active_bots.delete(bot_id)
        print(f"[BotManager] Deleted {bot_id}")

    async def shutdown(self, deadline: float = 30.0) -> None:
        """Stop every bot (closing positions) within one overall deadline."""
        bot_ids = context.active_bots.keys()
        if not bot_ids:
            return

        print(f"[BotManager] Shutting down {len(bot_ids)} bot(s)...")
        engines = [self.get_bot(bot_id) for bot_id in bot_ids]
        try:
            await asyncio.wait_for(
                asyncio.gather(*(e.stop(close_position=True) for e in engines), return_exceptions=True),
                deadline,
            )
        except asyncio.TimeoutError:
            print(f"[BotManager] Shutdown deadline ({deadline}s) reached")
        context.active_bots.clear()

    # === CONTROL ===

    async def set_leverage(self, bot_id: str, leverage: int) -> None:
        engine = self.get_bot(bot_id)
        await asyncio.to_thread(engine.set_leverage, leverage)

    async def update_config(self, bot_id: str, config: TradingConfig) -> None:
        engine = self.get_bot(bot_id)
        await asyncio.to_thread(engine.update_config, config)

    def enable_sentiment_analysis(self, bot_id: str, enabled: bool) -> None:
        engine = self.get_bot(bot_id)
        if enabled and self.sentiment is None:
            raise ValueError("No sentiment analyzer configured (set SENTIMENT_API_KEY)")
        engine.enable_sentiment_analysis(enabled)

    # === STATUS ===

    def get_status(self, bot_id: str) -> BotStatus:
        return self.get_bot(bot_id).status()

    def list_bots(self) -> dict[str, BotStatus]:
        return {bot_id: engine.status() for bot_id, engine in context.active_bots.copy().items()}
