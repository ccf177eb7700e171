"""Tests for backtest/data_loader.py"""

from decimal import Decimal

import pytest

from backtest.data_loader import DataLoadError, load_candles, save_candles
from conftest import candles_from_closes


HEADER = "openTime,open,high,low,close,volume,closeTime\n"


def write_csv(tmp_path, body, header=HEADER):
    path = tmp_path / "candles.csv"
    path.write_text(header + body)
    return path


class TestLoadCandles:

    def test_parses_exact_decimals(self, tmp_path):
        path = write_csv(tmp_path, "0,50000.10,50100.25,49900.5,50050.75,12.5,59999\n")
        candle = load_candles(path)[0]
        assert candle.close == Decimal("50050.75")
        assert candle.open == Decimal("50000.10")
        assert candle.open_time == 0
        assert candle.close_time == 59999

    def test_sorted_by_open_time(self, tmp_path):
        path = write_csv(
            tmp_path,
            "120000,3,3,3,3,1,179999\n"
            "0,1,1,1,1,1,59999\n"
            "60000,2,2,2,2,1,119999\n",
        )
        assert [c.open_time for c in load_candles(path)] == [0, 60000, 120000]

    def test_round_trip_through_save(self, tmp_path):
        candles = candles_from_closes([100, 101.5, 99.25])
        path = save_candles(candles, tmp_path / "out" / "btc.csv")
        assert load_candles(path) == candles

    def test_empty_file_body(self, tmp_path):
        """Edge case: header only -> no candles."""
        assert load_candles(write_csv(tmp_path, "")) == []


class TestErrors:

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataLoadError, match="file not found"):
            load_candles(tmp_path / "nope.csv")

    def test_missing_column(self, tmp_path):
        path = write_csv(tmp_path, "0,1,1,1,1,59999\n", header="openTime,open,high,low,close,closeTime\n")
        with pytest.raises(DataLoadError, match="volume"):
            load_candles(path)

    def test_non_numeric_price(self, tmp_path):
        path = write_csv(tmp_path, "0,1,1,1,abc,1,59999\n")
        with pytest.raises(DataLoadError, match="non-numeric price"):
            load_candles(path)

    def test_non_numeric_time(self, tmp_path):
        path = write_csv(tmp_path, "soon,1,1,1,1,1,59999\n")
        with pytest.raises(DataLoadError, match="openTime"):
            load_candles(path)

    def test_empty_cell(self, tmp_path):
        path = write_csv(tmp_path, "0,1,1,,1,1,59999\n")
        with pytest.raises(DataLoadError, match="empty value"):
            load_candles(path)

    def test_error_carries_path(self, tmp_path):
        with pytest.raises(DataLoadError) as exc_info:
            load_candles(tmp_path / "nope.csv")
        assert exc_info.value.path.name == "nope.csv"
