# context.py - Process-wide state shared by the bot manager and the engines.
"""
Shared state between the async control surface (BotManager) and the
trading engines running in worker threads:

- log_queue: operator notifications (trade/info/warning/error)
- active_bots: registry of live bots keyed by bot id
- per-symbol locks serializing the balance-check-then-enter step
- shutdown_event

Position state is never shared here; each engine owns its PositionState.
"""

import queue
import threading
from collections import defaultdict
from typing import Any, Iterator

from models import LogMessage


class BotRegistry:
    """Bot id -> engine mapping guarded by one lock."""

    def __init__(self):
        self._bots: dict[str, Any] = {}
        self._lock = threading.RLock()

    def get(self, bot_id: str, default: Any = None) -> Any:
        with self._lock:
            return self._bots.get(bot_id, default)

    def set(self, bot_id: str, engine: Any) -> None:
        with self._lock:
            self._bots[bot_id] = engine

    def delete(self, bot_id: str) -> None:
        with self._lock:
            self._bots.pop(bot_id, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._bots)

    def copy(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._bots)

    def clear(self) -> None:
        with self._lock:
            self._bots.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._bots)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())


log_queue: queue.Queue[LogMessage] = queue.Queue()

active_bots = BotRegistry()

shutdown_event = threading.Event()

_symbol_locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
_symbol_locks_guard = threading.Lock()


def log(message: str, level: str = "info") -> None:
    """Queue an operator notification."""
    log_queue.put(LogMessage(message=message, level=level))


def drain_log_queue() -> list[LogMessage]:
    """Remove and return every queued notification, oldest first."""
    drained = []
    while not log_queue.empty():
        try:
            drained.append(log_queue.get_nowait())
        except queue.Empty:
            break
    return drained


def get_symbol_lock(symbol: str) -> threading.Lock:
    with _symbol_locks_guard:
        return _symbol_locks[symbol.upper()]
