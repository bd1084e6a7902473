"""
Execution gateway contract.

Every venue the engine can trade against implements `ExecutionGateway`.
Calls are synchronous: the caller waits for the venue's answer before it
continues, which keeps at most one request in flight per position slot.
A venue that refuses a request raises `GatewayRejected`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Callable, List, Optional

from .models import ClosedPositionEvent, Direction, Position


logger = logging.getLogger(__name__)

ClosedCallback = Callable[[ClosedPositionEvent], None]


class GatewayRejected(Exception):
    """The venue refused an open, modify or close request."""

    def __init__(self, action: str, reason: str) -> None:
        super().__init__(f"{action} rejected: {reason}")
        self.action = action
        self.reason = reason


class ExecutionGateway(ABC):
    """Order placement, modification and closure against a venue."""

    def __init__(self) -> None:
        self._closed_callbacks: List[ClosedCallback] = []

    def subscribe_closed(self, callback: ClosedCallback) -> None:
        """Register `callback` to be invoked once per closed position."""
        self._closed_callbacks.append(callback)

    def poll_closed(self) -> List[ClosedPositionEvent]:
        """Report closures the venue does not push on its own.

        Venues that notify subscribers as positions close return an empty
        list.
        """
        return []

    def _notify_closed(self, event: ClosedPositionEvent) -> None:
        logger.debug(
            "Position closed on %s (%s, %s): profit=%.2f",
            event.symbol,
            event.direction.value,
            event.reason,
            event.gross_profit,
        )
        for callback in self._closed_callbacks:
            callback(event)

    @abstractmethod
    def open(
        self,
        symbol: str,
        direction: Direction,
        volume: float,
        stop_loss: Optional[float],
        take_profit: Optional[float],
        label: str,
    ) -> Position:
        """Open a market position and return the venue's snapshot of it."""

    @abstractmethod
    def modify(self, position: Position, stop_loss: Optional[float], take_profit: Optional[float]) -> None:
        """Replace the protective levels of an open position."""

    @abstractmethod
    def close(self, position: Position, reason: str = "manual") -> ClosedPositionEvent:
        """Close an open position.

        Implementations also deliver the returned event to the subscribed
        closed‑position callbacks.
        """

    @abstractmethod
    def find(self, label: str, symbol: str, direction: Direction) -> List[Position]:
        """All open positions with this label, symbol and direction."""

    @abstractmethod
    def find_all(self, label: str, symbol: str) -> List[Position]:
        """All open positions with this label and symbol."""
