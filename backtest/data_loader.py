# backtest/data_loader.py
"""
Historical candle loader.

CSV format (header row required):
    openTime,open,high,low,close,volume,closeTime

Times are epoch milliseconds. Prices are parsed as Decimal from their text
so replay arithmetic starts from the exact file values.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path

import pandas as pd

from models import Candle


CSV_COLUMNS = ["openTime", "open", "high", "low", "close", "volume", "closeTime"]
PRICE_COLUMNS = ["open", "high", "low", "close", "volume"]


class DataLoadError(Exception):
    """A candle file is missing or malformed."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


def load_candles_df(path: Path | str) -> pd.DataFrame:
    """Read and validate a candle CSV into a DataFrame sorted by openTime."""
    path = Path(path)
    if not path.exists():
        raise DataLoadError(path, "file not found")

    try:
        df = pd.read_csv(path, dtype=str)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise DataLoadError(path, f"unreadable CSV ({e})") from e

    df.columns = [c.strip() for c in df.columns]
    missing = [c for c in CSV_COLUMNS if c not in df.columns]
    if missing:
        raise DataLoadError(path, f"missing columns: {', '.join(missing)}")

    df = df[CSV_COLUMNS]
    if df.isna().any().any():
        bad_row = int(df.isna().any(axis=1).to_numpy().argmax())
        raise DataLoadError(path, f"empty value in data row {bad_row + 1}")

    for column in ("openTime", "closeTime"):
        times = pd.to_numeric(df[column].str.strip(), errors="coerce")
        if times.isna().any():
            bad_row = int(times.isna().to_numpy().argmax())
            raise DataLoadError(path, f"non-numeric {column} in data row {bad_row + 1}")
        df[column] = times.astype("int64")

    return df.sort_values("openTime", kind="stable").reset_index(drop=True)


def load_candles(path: Path | str) -> list[Candle]:
    """
    Load candles from a CSV file.

    Raises:
        DataLoadError: file missing, header wrong, or a value unparsable
    """
    df = load_candles_df(path)

    candles = []
    for row_num, row in enumerate(df.itertuples(index=False), start=1):
        try:
            open_, high, low, close, volume = (
                Decimal(str(getattr(row, c)).strip()) for c in PRICE_COLUMNS
            )
        except InvalidOperation as e:
            raise DataLoadError(path, f"non-numeric price in data row {row_num}") from e

        candles.append(
            Candle(
                open_time=int(row.openTime),
                open=open_,
                high=high,
                low=low,
                close=close,
                volume=volume,
                close_time=int(row.closeTime),
            )
        )

    print(f"[Replay] Loaded {len(candles)} candles from {Path(path).name}")
    return candles


def candles_to_df(candles: list[Candle]) -> pd.DataFrame:
    """Candles as a DataFrame in the CSV column layout."""
    return pd.DataFrame(
        [
            {
                "openTime": c.open_time,
                "open": str(c.open),
                "high": str(c.high),
                "low": str(c.low),
                "close": str(c.close),
                "volume": str(c.volume),
                "closeTime": c.close_time,
            }
            for c in candles
        ],
        columns=CSV_COLUMNS,
    )


def save_candles(candles: list[Candle], path: Path | str) -> Path:
    """Write candles in the loader's CSV format."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    candles_to_df(candles).to_csv(path, index=False)
    return path
