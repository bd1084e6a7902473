"""
Daily loss budget and martingale sizing.

One `RiskBudget` exists per engine (and therefore per instrument).  It
is only written by the engine's tick loop (day rollover) and by the
position‑closed handler; both run under the engine's lock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional


@dataclass
class RiskBudget:
    """Realised loss for the current trading day and the size multiplier."""
    trading_day: Optional[date] = None
    realized_loss_today: float = 0.0
    loss_multiplier: int = 1

    def on_tick(self, today: date) -> bool:
        """Start a new budget when `today` differs from the tracked day.

        Returns ``True`` when a reset happened.
        """
        if today == self.trading_day:
            return False
        self.trading_day = today
        self.realized_loss_today = 0.0
        return True

    def can_open(self, max_daily_loss: float) -> bool:
        if max_daily_loss == 0:
            return True
        return self.realized_loss_today < max_daily_loss

    def on_position_closed(self, profit: float, martingale_enabled: bool, day: Optional[date] = None) -> None:
        """Record a closed position.

        `day` is the trading day the position closed on.  A close on a later
        day than the tracked one starts that day first; a close reported
        after its own day has already been reset still moves the multiplier
        but is not charged to the current day.
        """
        if day is not None and (self.trading_day is None or day > self.trading_day):
            self.on_tick(day)
        stale = day is not None and self.trading_day is not None and day < self.trading_day
        # A close at exactly zero counts as a win.
        if profit < 0:
            if not stale:
                self.realized_loss_today += abs(profit)
            if martingale_enabled:
                self.loss_multiplier += 1
        else:
            self.loss_multiplier = 1

    def sized_volume(self, base_volume: float, lot_step: float = 0.01) -> float:
        """Volume for the next position, rounded to the broker's lot step."""
        steps = round(base_volume * self.loss_multiplier / lot_step)
        return round(steps * lot_step, 8)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trading_day': self.trading_day.isoformat() if self.trading_day else None,
            'realized_loss_today': self.realized_loss_today,
            'loss_multiplier': self.loss_multiplier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskBudget":
        day = data.get('trading_day')
        return cls(
            trading_day=date.fromisoformat(day) if day else None,
            realized_loss_today=max(0.0, float(data.get('realized_loss_today', 0.0))),
            loss_multiplier=max(1, int(data.get('loss_multiplier', 1))),
        )
