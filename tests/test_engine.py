"""
Tests for strategies/_trading_mech.py (TradingDecisionEngine)

Drives the engine with a scripted gateway and scripted indicator snapshots:
- Entry predicate for LONG and SHORT, margin check, sentiment gate
- Exit via trailing stop and pluggable exit conditions
- Leverage and configuration control
- Live loop start/stop
"""

import asyncio
from dataclasses import replace

import pytest

import context
from conftest import FakeCalculator, FakeGateway, snapshot
from models import PositionStatus, TradeDirection
from services.exits import ExitCondition, LiquidationRiskExit, TrailingStopExit
from services.sentiment import StaticSentiment
from strategies import (
    LeverageError,
    PositionEntryError,
    PositionExitError,
    TradingDecisionEngine,
    validate_leverage,
)
from strategies.trailing_stop import TrailingStopTracker


LONG_SIGNAL = snapshot(rsi=25, macd=100, macd_signal=90, lower=49_500, upper=52_000)
SHORT_SIGNAL = snapshot(rsi=75, macd=80, macd_signal=90, lower=48_000, upper=52_000)
NEUTRAL_CONFIRMATION = snapshot(rsi=55)


def make_engine(config, gateway, direction=TradeDirection.LONG, signal=LONG_SIGNAL,
                confirmation=NEUTRAL_CONFIRMATION, **kwargs):
    calc = FakeCalculator({"1d": signal, "1w": confirmation})
    engine = TradingDecisionEngine(config, gateway, direction, indicator_calculator=calc, **kwargs)
    return engine, calc


class _Always(ExitCondition):
    def should_exit(self, position):
        return True


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------


class TestEntry:

    def test_long_entry_when_all_conditions_hold(self, trading_config):
        """Happy path: RSI 25, MACD 100 > 90, price 49,900 within 1% of band 49,500."""
        gateway = FakeGateway(price=49_900, balance=10_000)
        engine, _ = make_engine(trading_config, gateway)

        engine.step()

        assert gateway.order_calls() == [("enter_long_position", "BTCUSDT", 0.1)]
        assert engine.in_position
        assert engine.state.entry_price == 49_900
        assert engine.tracker.active

    def test_short_entry_mirrors_long(self, trading_config):
        gateway = FakeGateway(price=52_000)
        engine, _ = make_engine(
            trading_config, gateway, TradeDirection.SHORT,
            signal=SHORT_SIGNAL, confirmation=snapshot(rsi=45),
        )

        engine.step()

        assert gateway.order_calls() == [("enter_short_position", "BTCUSDT", 0.1)]
        assert engine.status().position_status is PositionStatus.OPEN

    def test_price_outside_band_tolerance_skips(self, trading_config):
        gateway = FakeGateway(price=50_100)
        engine, _ = make_engine(trading_config, gateway)
        engine.step()
        assert gateway.order_calls() == []
        assert not engine.in_position

    def test_overbought_confirmation_vetoes(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway, confirmation=snapshot(rsi=75))
        engine.step()
        assert gateway.order_calls() == []

    def test_missing_indicators_take_no_action(self, trading_config):
        """Edge case: insufficient history -> no order, no price request."""
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway, signal=None)
        engine.step()
        assert gateway.order_calls() == []
        assert not any(c[0] == "get_current_price" for c in gateway.calls)

    def test_insufficient_margin_skips_with_warning(self, trading_config):
        """required = 0.1 * 49,900 / 3 = 1,663.33 > 1,000."""
        gateway = FakeGateway(price=49_900, balance=1_000)
        engine, _ = make_engine(trading_config, gateway)

        engine.step()

        assert gateway.order_calls() == []
        assert not engine.in_position
        warnings = [m for m in context.drain_log_queue() if m.level == "warning"]
        assert any("Insufficient margin" in m.message for m in warnings)

    def test_entry_failure_raises_and_stays_flat(self, trading_config):
        gateway = FakeGateway(price=49_900)
        gateway.fail_on.add("enter_long_position")
        engine, _ = make_engine(trading_config, gateway)

        with pytest.raises(PositionEntryError):
            engine.step()
        assert not engine.in_position


class TestSentimentGate:

    def test_negative_sentiment_vetoes_long(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway, sentiment=StaticSentiment(positive=False))
        engine.enable_sentiment_analysis(True)
        engine.step()
        assert gateway.order_calls() == []

    def test_gate_disabled_ignores_sentiment(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway, sentiment=StaticSentiment(positive=False))
        engine.step()
        assert engine.in_position

    def test_short_requires_negative_sentiment(self, trading_config):
        gateway = FakeGateway(price=52_000)
        engine, _ = make_engine(
            trading_config, gateway, TradeDirection.SHORT,
            signal=SHORT_SIGNAL, confirmation=snapshot(rsi=45),
            sentiment=StaticSentiment(positive=True, negative=True),
        )
        engine.enable_sentiment_analysis(True)
        engine.step()
        assert engine.in_position


# ---------------------------------------------------------------------------
# Exit
# ---------------------------------------------------------------------------


class TestExit:

    def _open_long(self, config, gateway, **kwargs):
        engine, calc = make_engine(config, gateway, **kwargs)
        engine.step()
        assert engine.in_position
        return engine

    def test_trailing_stop_closes_long(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine = self._open_long(trading_config, gateway)

        gateway.price = 51_000
        engine.step()
        assert engine.in_position

        gateway.price = 50_400  # below 51,000 * 0.99
        engine.step()

        assert gateway.order_calls()[-1] == ("exit_long_position", "BTCUSDT", 0.1)
        assert not engine.in_position
        assert not engine.tracker.active
        assert engine.state.entry_price == 0.0

    def test_exit_condition_closes(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine = self._open_long(trading_config, gateway, exit_conditions=[_Always()])
        engine.step()
        assert not engine.in_position

    def test_liquidation_risk_exit(self, trading_config):
        """3x long from 49,900 liquidates near 33,267; 20% buffer exits below 39,920."""
        gateway = FakeGateway(price=49_900)
        config = replace(trading_config, trailing_stop_percent=50.0)
        engine = self._open_long(config, gateway, exit_conditions=[LiquidationRiskExit(0.2)])

        gateway.price = 45_000
        engine.step()
        assert engine.in_position

        gateway.price = 39_000
        engine.step()
        assert not engine.in_position

    def test_secondary_trailing_stop_exit(self, trading_config):
        """A 1% external stop closes the position while the engine's own 50% stop holds."""
        gateway = FakeGateway(price=49_900)
        config = replace(trading_config, trailing_stop_percent=50.0)
        tight = TrailingStopExit(TrailingStopTracker(TradeDirection.LONG, 1.0))
        engine = self._open_long(config, gateway, exit_conditions=[tight])

        gateway.price = 51_000
        engine.step()
        assert engine.in_position
        assert tight.tracker.extreme_price == 51_000

        gateway.price = 50_400  # below 51,000 * 0.99
        engine.step()
        assert not engine.in_position
        assert gateway.order_calls()[-1] == ("exit_long_position", "BTCUSDT", 0.1)

    def test_exit_failure_raises_and_keeps_position(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine = self._open_long(trading_config, gateway, exit_conditions=[_Always()])
        gateway.fail_on.add("exit_long_position")

        with pytest.raises(PositionExitError):
            engine.step()
        assert engine.in_position

    def test_short_trailing_stop(self, trading_config):
        gateway = FakeGateway(price=52_000)
        engine, _ = make_engine(
            trading_config, gateway, TradeDirection.SHORT,
            signal=SHORT_SIGNAL, confirmation=snapshot(rsi=45),
        )
        engine.step()

        gateway.price = 50_000
        engine.step()
        gateway.price = 50_600  # above 50,000 * 1.01
        engine.step()

        assert gateway.order_calls()[-1] == ("exit_short_position", "BTCUSDT", 0.1)

    def test_force_close_without_position(self, trading_config, gateway):
        engine, _ = make_engine(trading_config, gateway)
        assert engine.force_close() is False

    def test_force_close_swallows_gateway_error(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine = self._open_long(trading_config, gateway)
        gateway.fail_on.add("exit_long_position")
        assert engine.force_close() is False
        errors = [m for m in context.drain_log_queue() if m.level == "error"]
        assert errors


# ---------------------------------------------------------------------------
# Control
# ---------------------------------------------------------------------------


class TestControl:

    def test_constructor_applies_leverage(self, trading_config, gateway):
        make_engine(trading_config, gateway)
        assert gateway.leverage == 3

    def test_constructor_leverage_failure(self, trading_config, gateway):
        gateway.fail_on.add("set_leverage")
        with pytest.raises(LeverageError):
            make_engine(trading_config, gateway)

    @pytest.mark.parametrize("leverage", [0, 126, 2.5, True])
    def test_invalid_leverage_rejected(self, leverage):
        with pytest.raises(ValueError):
            validate_leverage(leverage)

    def test_set_leverage_while_in_position(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway)
        engine.step()
        engine.set_leverage(10)
        assert gateway.leverage == 10
        assert engine.status().leverage == 10
        assert engine.in_position

    def test_update_config_applies_everything(self, trading_config, gateway):
        engine, calc = make_engine(trading_config, gateway)
        new_config = replace(trading_config, leverage=7, trailing_stop_percent=2.0)

        engine.update_config(new_config)

        assert engine.config is new_config
        assert gateway.leverage == 7
        assert engine.tracker.trailing_stop_percent == 2.0
        assert calc.configs == [new_config]

    def test_update_config_rejects_symbol_change_in_position(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway)
        engine.step()
        with pytest.raises(ValueError, match="symbol"):
            engine.update_config(replace(trading_config, symbol="ETHUSDT"))

    def test_restore_position(self, trading_config, gateway):
        engine, _ = make_engine(trading_config, gateway)
        engine.restore_position(48_000)
        assert engine.in_position
        assert engine.tracker.extreme_price == 48_000
        with pytest.raises(ValueError):
            engine.restore_position(0)


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


class TestModes:

    def test_live_mode_memoizes_per_cycle(self, trading_config, gateway):
        engine, calc = make_engine(
            trading_config, gateway, signal_timeframe="1d", confirmation_timeframe="1d"
        )
        engine.step()
        assert len(calc.compute_calls) == 1

    def test_replay_mode_recomputes(self, trading_config, gateway):
        engine, calc = make_engine(
            trading_config, gateway, replay_mode=True,
            signal_timeframe="1d", confirmation_timeframe="1d",
        )
        engine.step()
        assert len(calc.compute_calls) == 2

    def test_replay_mode_does_not_notify(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway, replay_mode=True)
        engine.step()
        assert engine.in_position
        assert context.drain_log_queue() == []

    def test_live_trade_is_notified(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway)
        engine.step()
        assert any(m.level == "trade" for m in context.drain_log_queue())


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_runs_cycles_and_stop_closes(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway)

        task = engine.start()
        assert engine.start() is task
        for _ in range(50):
            if engine.in_position:
                break
            await asyncio.sleep(0.01)
        assert engine.in_position

        await engine.stop(close_position=True)

        assert not engine.state.running
        assert not engine.in_position
        assert gateway.order_calls()[-1][0] == "exit_long_position"
        assert task.done()

    @pytest.mark.asyncio
    async def test_stop_can_keep_position(self, trading_config):
        gateway = FakeGateway(price=49_900)
        engine, _ = make_engine(trading_config, gateway)
        engine.step()
        engine.start()
        await engine.stop(close_position=False)
        assert engine.in_position

    @pytest.mark.asyncio
    async def test_cycle_errors_do_not_kill_the_loop(self, trading_config):
        gateway = FakeGateway(price=49_900)
        gateway.fail_on.add("enter_long_position")
        config = replace(trading_config, check_interval_seconds=1)
        engine, _ = make_engine(config, gateway)

        engine.start()
        for _ in range(50):
            if any(m.level == "error" for m in list(context.log_queue.queue)):
                break
            await asyncio.sleep(0.01)

        assert engine.state.running
        await engine.stop()
