# strategies/_ta.py
"""
Technical Analysis utilities for the trading engine.

Provides simple, lowercase indicator functions that return numpy arrays.
All indicators follow the industry-standard naming convention (TA-Lib, pandas-ta).

Contains:
- Candle -> numpy conversion
- Technical indicators (rsi, macd, bbands)

Usage:
    from strategies._ta import closes_of, rsi, macd, bbands

    closes = closes_of(candles)
    rsi_series = rsi(closes, period=14)  # Returns array
    current_rsi = rsi_series[-1]  # Get last value
"""

from typing import Sequence

import numpy as np
import talib

from models import Candle


def closes_of(candles: Sequence[Candle]) -> np.ndarray:
    """Close prices as a float array (oldest first)."""
    return np.array([float(c.close) for c in candles], dtype=float)


# =============================================================================
# INDICATORS (talib wrappers)
# =============================================================================

def rsi(closes: Sequence[float], period: int = 14) -> np.ndarray:
    """Relative Strength Index."""
    return talib.RSI(np.asarray(closes, dtype=float), timeperiod=period)


def macd(
    closes: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Moving Average Convergence Divergence.

    Returns:
        (macd, signal, histogram) arrays
    """
    return talib.MACD(
        np.asarray(closes, dtype=float),
        fastperiod=fast_period,
        slowperiod=slow_period,
        signalperiod=signal_period,
    )


def bbands(
    closes: Sequence[float],
    period: int = 20,
    nbdevup: float = 2.0,
    nbdevdn: float = 2.0
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Bollinger Bands.

    Returns:
        (upper, middle, lower) arrays
    """
    return talib.BBANDS(
        np.asarray(closes, dtype=float),
        timeperiod=period,
        nbdevup=nbdevup,
        nbdevdn=nbdevdn,
        matype=0  # SMA
    )
