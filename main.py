# main.py - Live trading entry point.
"""
This file:
1. Loads .env and starts terminal logging
2. Builds the trading config from the environment
3. Creates one bot per direction in TRADING_DIRECTIONS through BotManager
4. Runs until SIGINT/SIGTERM, relaying operator notifications
5. Stops every bot (closing open positions) before exiting

Supports multiple exchanges via the EXCHANGE env var (default: hyperliquid).
PAPER_MODE=true fills orders against live prices without touching the exchange.

Run with: python main.py
"""

import asyncio
import os
import signal
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent

load_dotenv(PROJECT_ROOT / ".env")

import context
from models import TradeDirection, TradingConfig
from services.bot_manager import BotManager
from services.logger import NotificationJournal, format_notification, terminal_logger
from services.sentiment import LLMSentimentAnalyzer

# Notification relay cadence (seconds)
NOTIFY_TICK = 1.0

# Deadline for closing positions on shutdown (seconds)
SHUTDOWN_DEADLINE = 30.0


def env_flag(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def parse_directions(raw: str) -> list[TradeDirection]:
    """'LONG,SHORT' -> [LONG, SHORT]. Raises ValueError on unknown names."""
    directions = []
    for part in raw.split(","):
        name = part.strip().upper()
        if not name:
            continue
        direction = TradeDirection(name)
        if direction not in directions:
            directions.append(direction)
    if not directions:
        raise ValueError("TRADING_DIRECTIONS must name at least one of LONG, SHORT")
    return directions


def relay_notifications(journal: NotificationJournal) -> int:
    """Print queued notifications and append them to the journal."""
    messages = context.drain_log_queue()
    for msg in messages:
        print(format_notification(msg))
    return journal.write(messages)


def handle_shutdown(signum, frame):
    print(f"\n[MAIN] Signal {signum} received, shutting down")
    context.shutdown_event.set()


async def launch_bots(
    manager: BotManager,
    config: TradingConfig,
    directions: list[TradeDirection],
    paper_mode: bool,
    gate_sentiment: bool,
) -> list[str]:
    """Create and start one bot per direction; returns the bot ids."""
    bot_ids = []
    for direction in directions:
        bot_id = await manager.create_bot(config, direction, paper_mode=paper_mode)
        if gate_sentiment:
            manager.enable_sentiment_analysis(bot_id, True)
        await manager.start_bot(bot_id)
        bot_ids.append(bot_id)
    return bot_ids


async def main():
    log_path = terminal_logger.start()

    exchange = os.getenv("EXCHANGE", "hyperliquid").lower()
    paper_mode = env_flag("PAPER_MODE")
    mode = "PAPER" if paper_mode else "LIVE"

    print("=" * 50)
    print(f"[MAIN] Futures bot starting: {exchange} ({mode})")
    print(f"[MAIN] Session log: {log_path}")
    print("=" * 50)

    try:
        config = TradingConfig.from_env()
        directions = parse_directions(os.getenv("TRADING_DIRECTIONS", "LONG"))
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        terminal_logger.stop()
        return

    sentiment = LLMSentimentAnalyzer() if os.getenv("SENTIMENT_API_KEY") else None
    if sentiment is not None:
        print(f"[MAIN] Sentiment analyzer ready ({sentiment.model_name})")

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, handle_shutdown)

    manager = BotManager(sentiment=sentiment)
    journal = NotificationJournal()

    try:
        bot_ids = await launch_bots(
            manager,
            config,
            directions,
            paper_mode,
            gate_sentiment=sentiment is not None and env_flag("SENTIMENT_GATE"),
        )
        print(f"[MAIN] {len(bot_ids)} bot(s) trading {config.symbol} at {config.leverage}x. Ctrl+C to stop.")
        while not context.shutdown_event.is_set():
            relay_notifications(journal)
            await asyncio.sleep(NOTIFY_TICK)
    except ImportError as e:
        print(f"❌ Missing exchange SDK: {e}")
        if exchange == "hyperliquid":
            print("   pip install hyperliquid-python-sdk")
    except asyncio.CancelledError:
        pass
    except Exception as e:
        print(f"❌ Bot startup failed: {e}")
    finally:
        print("[MAIN] Stopping bots...")
        context.shutdown_event.set()
        await manager.shutdown(SHUTDOWN_DEADLINE)
        relay_notifications(journal)
        print("[MAIN] Stopped.")
        terminal_logger.stop()


if __name__ == "__main__":
    asyncio.run(main())
