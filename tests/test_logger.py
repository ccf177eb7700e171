"""Tests for services/logger.py"""

import csv
import io
import sys
from datetime import datetime, timezone

from models import LogMessage
from services.logger import NotificationJournal, TeeWriter, TerminalLogger, format_notification


def fixed_clock():
    return datetime(2024, 1, 2, 12, 30, 45, tzinfo=timezone.utc)


class TestTeeWriter:

    def test_prefixes_each_line(self):
        original, log_file = io.StringIO(), io.StringIO()
        writer = TeeWriter(original, log_file, clock=fixed_clock)

        writer.write("first\nsecond")
        writer.write(" continued\n")

        expected = "[12:30:45] first\n[12:30:45] second continued\n"
        assert original.getvalue() == expected
        assert log_file.getvalue() == expected

    def test_empty_write(self):
        writer = TeeWriter(io.StringIO(), io.StringIO(), clock=fixed_clock)
        assert writer.write("") == 0


class TestTerminalLogger:

    def test_captures_and_restores_stdout(self, tmp_path):
        logger = TerminalLogger(log_dir=tmp_path)
        original = sys.stdout
        path = logger.start()
        try:
            print("hello from the bot")
        finally:
            logger.stop()

        assert sys.stdout is original
        assert path.name.startswith("terminal_")
        assert "hello from the bot" in path.read_text(encoding="utf-8")

    def test_start_is_idempotent(self, tmp_path):
        logger = TerminalLogger(log_dir=tmp_path)
        try:
            assert logger.start() == logger.start()
        finally:
            logger.stop()


class TestNotificationJournal:

    def test_appends_rows(self, tmp_path):
        journal = NotificationJournal(log_dir=tmp_path)
        assert journal.write([]) == 0
        assert journal.log_path is None

        journal.write([LogMessage("Opened LONG", "trade")])
        journal.write([LogMessage("Circuit open", "error"), LogMessage("Started", "info")])

        with open(journal.log_path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [(r["level"], r["message"]) for r in rows] == [
            ("trade", "Opened LONG"),
            ("error", "Circuit open"),
            ("info", "Started"),
        ]


def test_format_notification():
    assert format_notification(LogMessage("Closed", "trade")) == "💰 Closed"
    assert format_notification(LogMessage("x", "debug")) == "• x"
