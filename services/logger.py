# services/logger.py - Session logging.
"""
Two per-session artifacts under data/logs, both stamped in UTC:

- terminal_*.txt: every line printed to stdout/stderr, timestamped
- notifications_*.csv: the operator notifications drained from context.log()
"""

import csv
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, TextIO

from models import LogMessage


LOG_DIR = Path(__file__).parent.parent / "data" / "logs"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TeeWriter:
    """Stream wrapper copying writes to a log file, each line prefixed with [HH:MM:SS]."""

    def __init__(self, original: TextIO, log_file: TextIO, clock: Callable[[], datetime] = utc_now):
        self.original = original
        self.log_file = log_file
        self._clock = clock
        self._lock = threading.Lock()
        self.at_line_start = True

    def _stamp(self, message: str) -> str:
        timestamp = f"[{self._clock().strftime('%H:%M:%S')}] "
        out = []
        lines = message.split("\n")
        for i, part in enumerate(lines):
            if i < len(lines) - 1:
                out.append((timestamp if self.at_line_start else "") + part + "\n")
                self.at_line_start = True
            elif part:
                out.append((timestamp if self.at_line_start else "") + part)
                self.at_line_start = False
        return "".join(out)

    def write(self, message: str) -> int:
        with self._lock:
            stamped = self._stamp(message)
            for stream in (self.original, self.log_file):
                stream.write(stamped)
            self.log_file.flush()
        return len(message)

    def flush(self) -> None:
        self.original.flush()
        with self._lock:
            if not self.log_file.closed:
                self.log_file.flush()

    def fileno(self) -> int:
        return self.original.fileno()

    def isatty(self) -> bool:
        return self.original.isatty()


class TerminalLogger:
    """
    Mirrors stdout/stderr into data/logs/terminal_YYYYmmdd_HHMMSS.txt.

        terminal_logger.start()
        print("captured")
        terminal_logger.stop()
    """

    def __init__(self, log_dir: Path = LOG_DIR):
        self.log_dir = Path(log_dir)
        self._session_file: Path | None = None
        self._handle: TextIO | None = None
        self._saved_streams: tuple[TextIO, TextIO] | None = None

    @property
    def active(self) -> bool:
        return self._saved_streams is not None

    @property
    def log_path(self) -> Path | None:
        return self._session_file

    def start(self) -> Path:
        """Begin mirroring; calling again while active returns the same file."""
        if self.active:
            return self._session_file

        opened_at = utc_now()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._session_file = self.log_dir / f"terminal_{opened_at:%Y%m%d_%H%M%S}.txt"
        self._handle = self._session_file.open("w", encoding="utf-8")
        self._handle.write(f"# session opened {opened_at.isoformat()}\n\n")
        self._handle.flush()

        self._saved_streams = (sys.stdout, sys.stderr)
        sys.stdout, sys.stderr = (TeeWriter(stream, self._handle) for stream in self._saved_streams)
        return self._session_file

    def stop(self) -> None:
        if not self.active:
            return

        sys.stdout, sys.stderr = self._saved_streams
        self._saved_streams = None

        if self._handle is not None:
            self._handle.write(f"\n# session closed {utc_now().isoformat()}\n")
            self._handle.close()
            self._handle = None


# Process-wide instance used by main.py
terminal_logger = TerminalLogger()


LEVEL_ICONS = {
    "trade": "💰",
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "❌",
}


class NotificationJournal:
    """Appends LogMessage batches to a session CSV (timestamp, level, message)."""

    HEADER = ["timestamp", "level", "message"]

    def __init__(self, log_dir: Path = LOG_DIR):
        self.log_dir = Path(log_dir)
        self._path: Path | None = None
        self._lock = threading.Lock()

    @property
    def log_path(self) -> Path | None:
        return self._path

    def _ensure_file(self) -> Path:
        if self._path is None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = utc_now().strftime("%Y%m%d_%H%M%S")
            self._path = self.log_dir / f"notifications_{timestamp}.csv"
            with open(self._path, "w", newline="", encoding="utf-8") as f:
                csv.writer(f).writerow(self.HEADER)
        return self._path

    def write(self, messages: list[LogMessage]) -> int:
        """Append messages; returns how many were written."""
        if not messages:
            return 0
        with self._lock:
            path = self._ensure_file()
            now = utc_now().isoformat()
            with open(path, "a", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                for msg in messages:
                    writer.writerow([now, msg.level, msg.message])
        return len(messages)


def format_notification(msg: LogMessage) -> str:
    """One-line operator view of a notification."""
    return f"{LEVEL_ICONS.get(msg.level, '•')} {msg.message}"
