"""Daily Loss Tracker — realized loss accounting that feeds the kill switch.

Invariants:
    - Losses accumulate per trading day; a new day starts from zero
    - Profits reduce the day's net loss but never below zero
    - kill_switch_fields() is the only export consumed by KillSwitchState
"""

from dataclasses import dataclass, field
from datetime import date

DEFAULT_MAX_DAILY_LOSS = 10_000.0


@dataclass
class DailyLossTracker:
    max_daily_loss: float = DEFAULT_MAX_DAILY_LOSS
    trading_day: date = field(default_factory=date.today)
    loss_today: float = 0.0

    def _roll(self, today: date) -> None:
        if today != self.trading_day:
            self.trading_day = today
            self.loss_today = 0.0

    def record_pnl(self, pnl: float, on: date | None = None) -> float:
        """Record a closed trade's P&L (negative = loss). Returns loss_today."""
        self._roll(on or date.today())
        self.loss_today = max(0.0, self.loss_today - pnl)
        return self.loss_today

    @property
    def remaining(self) -> float:
        return max(0.0, self.max_daily_loss - self.loss_today)

    @property
    def breached(self) -> bool:
        return self.loss_today >= self.max_daily_loss

    def kill_switch_fields(self) -> dict:
        return {"daily_loss": self.loss_today, "max_daily_loss": self.max_daily_loss}
