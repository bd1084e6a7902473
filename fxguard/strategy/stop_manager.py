"""
Protective stop management.

`StopManager` computes the stop‑loss and take‑profit an open position
should carry on the current tick and sends a modification to the venue
only when those levels differ from what the venue already holds.

Three policies are supported:

* ``fixed``: levels set at open, never changed.  They are computed from
  the quote at the time of the order and kept as the venue accepted
  them, even when the fill price differs.
* ``breakeven``: once the position is `stop_loss_pips` in profit the
  stop moves to the entry price plus a small buffer; the take‑profit
  set at open is kept.
* ``trailing``: no take‑profit; the stop follows the best profit seen
  (the favourable excursion) and never loosens.

The favourable excursion is tracked per ``(symbol, direction)`` slot and
reset whenever a new position opens or the previous one closes.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Dict, Optional, Tuple

from ..config.schema import Config
from ..execution.gateway import ExecutionGateway, GatewayRejected
from ..execution.models import Direction, Position


logger = logging.getLogger(__name__)

Levels = Tuple[Optional[float], Optional[float]]


@dataclass(frozen=True)
class StopPolicy:
    """Immutable snapshot of the stop configuration."""
    mode: str
    stop_loss_pips: float
    take_profit_pips: float
    breakeven_pips: float
    trailing_step_pips: float
    pip_size: float
    digits: int

    @classmethod
    def from_config(cls, config: Config) -> "StopPolicy":
        stops = config.stops
        return cls(
            mode=stops.mode,
            stop_loss_pips=stops.stop_loss_pips,
            take_profit_pips=stops.take_profit_pips,
            breakeven_pips=stops.breakeven_pips,
            trailing_step_pips=stops.trailing_step_pips,
            pip_size=config.pip_size,
            digits=config.digits,
        )

    def offset(self, entry_price: float, direction: Direction, pips: float) -> float:
        """Price `pips` away from `entry_price` in the direction of profit."""
        return round(entry_price + direction.sign * pips * self.pip_size, self.digits)


class StopManager:
    """Per‑engine stop computation with a favourable‑excursion ratchet."""

    def __init__(self, policy: StopPolicy) -> None:
        self.policy = policy
        self._excursion: Dict[Tuple[str, Direction], float] = {}

    # ------------------------------------------------------------------
    # Excursion state
    # ------------------------------------------------------------------

    def excursion(self, symbol: str, direction: Direction) -> float:
        return self._excursion.get((symbol, direction), 0.0)

    def reset(self, symbol: str, direction: Direction) -> None:
        self._excursion[(symbol, direction)] = 0.0

    def snapshot(self) -> Dict[str, float]:
        return {f"{sym}:{d.value}": pips for (sym, d), pips in self._excursion.items()}

    def restore(self, data: Dict[str, float]) -> None:
        self._excursion.clear()
        for key, pips in data.items():
            symbol, _, side = key.rpartition(":")
            self._excursion[(symbol, Direction(side))] = max(0.0, float(pips))

    # ------------------------------------------------------------------
    # Level computation
    # ------------------------------------------------------------------

    def initial_levels(self, direction: Direction, entry_price: float) -> Levels:
        """Fixed‑mode levels used when a position is opened."""
        p = self.policy
        stop = p.offset(entry_price, direction, -p.stop_loss_pips)
        return stop, self._fixed_take_profit(direction, entry_price)

    def _fixed_take_profit(self, direction: Direction, entry_price: float) -> Optional[float]:
        p = self.policy
        if p.mode == "trailing" or p.take_profit_pips <= 0:
            return None
        return p.offset(entry_price, direction, p.take_profit_pips)

    def compute(self, position: Position) -> Levels:
        """Advance the excursion ratchet and return the candidate levels."""
        p = self.policy
        key = (position.symbol, position.direction)
        excursion = max(self._excursion.get(key, 0.0), position.pips)
        self._excursion[key] = excursion

        entry = position.entry_price
        direction = position.direction

        if p.mode == "fixed":
            return position.stop_loss, position.take_profit

        if p.mode == "breakeven":
            stop = position.stop_loss
            if position.pips >= p.stop_loss_pips:
                stop = p.offset(entry, direction, p.breakeven_pips)
            return self._never_looser(position, stop), position.take_profit

        # trailing
        trail = excursion
        if p.trailing_step_pips > 0:
            trail = math.floor(excursion / p.trailing_step_pips) * p.trailing_step_pips
        stop = p.offset(entry, direction, trail - p.stop_loss_pips)
        return self._never_looser(position, stop), None

    @staticmethod
    def _never_looser(position: Position, candidate: Optional[float]) -> Optional[float]:
        current = position.stop_loss
        if candidate is None or current is None:
            return candidate if candidate is not None else current
        if (candidate - current) * position.direction.sign < 0:
            return current
        return candidate

    def _differs(self, a: Optional[float], b: Optional[float]) -> bool:
        if a is None or b is None:
            return a is not b
        return round(a, self.policy.digits) != round(b, self.policy.digits)

    def update(self, position: Position, gateway: ExecutionGateway) -> bool:
        """Recompute the levels for `position` and push them if they changed.

        Returns ``True`` when the venue accepted a modification.  A rejected
        modification is logged and left for the next tick, which recomputes
        the candidate from scratch.
        """
        stop, take_profit = self.compute(position)
        if not (self._differs(stop, position.stop_loss) or self._differs(take_profit, position.take_profit)):
            return False
        try:
            gateway.modify(position, stop, take_profit)
        except GatewayRejected as exc:
            logger.warning(
                "Stop update for %s %s rejected (SL=%s, TP=%s): %s",
                position.direction.value,
                position.symbol,
                stop,
                take_profit,
                exc.reason,
            )
            return False
        logger.info(
            "Moved %s %s protection: SL %s -> %s, TP %s -> %s (excursion %.1f pips)",
            position.direction.value,
            position.symbol,
            position.stop_loss,
            stop,
            position.take_profit,
            take_profit,
            self.excursion(position.symbol, position.direction),
        )
        return True
