"""
Read‑through view of the engine's open positions.

The venue is the only source of truth: every query goes to the gateway
and nothing is cached between calls.  If the venue reports more than one
position for the same symbol and direction under our label, the slot is
in a state the engine never creates itself (a race with another actor or
a label collision) and `InvariantViolation` is raised.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .gateway import ExecutionGateway
from .models import Direction, Position


class InvariantViolation(Exception):
    """More than one open position was found for a single slot."""

    def __init__(self, symbol: str, direction: Direction, count: int) -> None:
        super().__init__(
            f"{count} open {direction.value} positions on {symbol}; at most one is allowed"
        )
        self.symbol = symbol
        self.direction = direction
        self.count = count


class PositionTracker:
    """Stateless adapter answering position queries for one label."""

    def __init__(self, gateway: ExecutionGateway, label: str) -> None:
        self.gateway = gateway
        self.label = label

    def find(self, symbol: str, direction: Direction) -> Optional[Position]:
        positions = self.gateway.find(self.label, symbol, direction)
        if len(positions) > 1:
            raise InvariantViolation(symbol, direction, len(positions))
        return positions[0] if positions else None

    def find_all(self, symbol: str) -> List[Position]:
        positions = self.gateway.find_all(self.label, symbol)
        counts: Dict[Direction, int] = {}
        for pos in positions:
            counts[pos.direction] = counts.get(pos.direction, 0) + 1
        for direction, count in counts.items():
            if count > 1:
                raise InvariantViolation(symbol, direction, count)
        return positions
