"""
Tick, position and closed‑position models.

These dataclasses represent the objects passed between the strategy
engine and the execution venues.  Keeping them in a separate module
improves readability and makes unit testing easier.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import pandas as pd


class Direction(Enum):
    """Side of a position."""
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1

    @property
    def opposite(self) -> "Direction":
        return Direction.SHORT if self is Direction.LONG else Direction.LONG


class Signal(Enum):
    """Output of a signal source for one evaluation."""
    LONG = "long"
    SHORT = "short"
    NONE = "none"

    @property
    def direction(self) -> Optional[Direction]:
        if self is Signal.NONE:
            return None
        return Direction(self.value)


@dataclass(frozen=True)
class Tick:
    """A price update.  ``time`` is a timezone‑aware timestamp."""
    time: pd.Timestamp
    bid: float
    ask: float

    def price_for_close(self, direction: Direction) -> float:
        """Price at which a position of `direction` would be closed."""
        return self.bid if direction is Direction.LONG else self.ask

    def price_for_open(self, direction: Direction) -> float:
        """Price at which a position of `direction` would be opened."""
        return self.ask if direction is Direction.LONG else self.bid


@dataclass
class Position:
    """Snapshot of an open position as reported by the venue."""
    handle: int
    symbol: str
    direction: Direction
    volume: float  # lots
    entry_price: float
    stop_loss: Optional[float]
    take_profit: Optional[float]
    label: str
    current_price: float
    pip_size: float
    opened_at: Optional[pd.Timestamp] = None

    @property
    def pips(self) -> float:
        """Unrealised profit in pips, to one decimal (negative when losing)."""
        return round((self.current_price - self.entry_price) * self.direction.sign / self.pip_size, 1)


@dataclass(frozen=True)
class ClosedPositionEvent:
    """Delivered once when the venue reports a position as closed."""
    gross_profit: float
    direction: Direction
    entry_price: float
    exit_price: float
    symbol: str = ""
    volume: float = 0.0
    label: str = ""
    closed_at: Optional[pd.Timestamp] = None
    reason: str = "manual"  # 'sl', 'tp', 'blackout', 'opposite' or 'manual'
    commission: float = 0.0

    @property
    def net_profit(self) -> float:
        return self.gross_profit - self.commission
