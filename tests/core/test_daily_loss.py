"""Daily loss tracker tests — per-day realized loss feeding the kill switch."""

from datetime import date

from tradepilot.core.daily_loss import DailyLossTracker
from tradepilot.core.kill_switch import KillSwitchState, evaluate_kill_conditions

DAY = date(2026, 10, 16)


def test_losses_accumulate():
    tracker = DailyLossTracker(max_daily_loss=1_000, trading_day=DAY)
    tracker.record_pnl(-300, on=DAY)
    assert tracker.record_pnl(-200, on=DAY) == 500
    assert tracker.remaining == 500
    assert not tracker.breached


def test_profit_reduces_loss_but_not_below_zero():
    tracker = DailyLossTracker(trading_day=DAY)
    tracker.record_pnl(-300, on=DAY)
    assert tracker.record_pnl(1_000, on=DAY) == 0.0


def test_new_day_resets():
    tracker = DailyLossTracker(trading_day=DAY)
    tracker.record_pnl(-300, on=DAY)
    assert tracker.record_pnl(-50, on=date(2026, 10, 19)) == 50
    assert tracker.trading_day == date(2026, 10, 19)


def test_breach_trips_kill_switch():
    tracker = DailyLossTracker(max_daily_loss=1_000, trading_day=DAY)
    tracker.record_pnl(-1_000, on=DAY)
    assert tracker.breached
    verdict = evaluate_kill_conditions(
        KillSwitchState.from_mapping(tracker.kill_switch_fields()),
    )
    assert verdict.condition_id == "max_daily_loss_breached"


def test_kill_switch_fields():
    tracker = DailyLossTracker(max_daily_loss=2_500, trading_day=DAY)
    assert tracker.kill_switch_fields() == {"daily_loss": 0.0, "max_daily_loss": 2_500}
