# backtest/config.py
"""Configuration dataclass for replay runs."""

from dataclasses import dataclass, field
from pathlib import Path

from models import TradeDirection


# Project root directory (parent of backtest/)
PROJECT_ROOT = Path(__file__).parent.parent

# Standard data directories
DATA_DIR = PROJECT_ROOT / "data"
BACKTEST_DATA_DIR = DATA_DIR / "backtest"
RESULTS_DIR = BACKTEST_DATA_DIR / "results"

# Bars skipped before the first decision cycle
DEFAULT_WARMUP = 100


@dataclass
class BacktestConfig:
    """Execution knobs for a replay run (trading parameters live in TradingConfig)."""

    direction: TradeDirection = TradeDirection.LONG

    # Execution simulation
    latency_ms: int = 0
    slippage_fraction: float = 0.0005  # 0.05% slippage
    taker_fee_rate: float = 0.0004  # 0.04% of notional
    initial_balance: float = 10_000.0
    lot_step: float = 0.001

    # Bars before the first cycle (raised to the longest lookback if smaller)
    warmup: int = DEFAULT_WARMUP

    # Output options
    save_results: bool = False  # Save trades.csv / equity.csv / summary.csv
    verbose: bool = False  # Print every simulated fill

    results_dir: str = field(default_factory=lambda: str(RESULTS_DIR))

    def __post_init__(self):
        """Validate configuration. Nothing is clamped."""
        if isinstance(self.direction, str):
            self.direction = TradeDirection(self.direction.upper())
        if self.latency_ms < 0:
            raise ValueError(f"latency_ms ({self.latency_ms}) must be >= 0")
        if self.slippage_fraction < 0:
            raise ValueError(f"slippage_fraction ({self.slippage_fraction}) must be >= 0")
        if self.taker_fee_rate < 0:
            raise ValueError(f"taker_fee_rate ({self.taker_fee_rate}) must be >= 0")
        if self.initial_balance <= 0:
            raise ValueError(f"initial_balance ({self.initial_balance}) must be positive")
        if self.lot_step <= 0:
            raise ValueError(f"lot_step ({self.lot_step}) must be positive")
        if self.warmup < 0:
            raise ValueError(f"warmup ({self.warmup}) must be >= 0")
