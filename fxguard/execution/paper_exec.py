"""
Paper execution venue.

`PaperGateway` keeps simulated positions in memory.  It fills market
orders at the last known quote (ask for longs, bid for shorts) and, on
every price update, closes positions whose stop‑loss or take‑profit has
been touched.  Closures are reported synchronously to the subscribed
callbacks, exactly like a broker's position‑closed notification.
"""

from __future__ import annotations

from dataclasses import replace
import itertools
import logging
from typing import Dict, List, Optional

from .gateway import ExecutionGateway, GatewayRejected
from .models import ClosedPositionEvent, Direction, Position, Tick


logger = logging.getLogger(__name__)


class PaperGateway(ExecutionGateway):
    """In‑memory venue for a single symbol.

    Parameters
    ----------
    symbol : str
        Instrument quoted by the ticks passed to `on_price()`.
    pip_size : float
        Price value of one pip.
    contract_size : float
        Units per lot used to turn price differences into profit.
    commission_per_lot : float
        Reported as the commission of each closed position.  The gross
        profit excludes it, as on a real venue.
    """

    def __init__(
        self,
        symbol: str,
        pip_size: float,
        contract_size: float = 100_000.0,
        commission_per_lot: float = 0.0,
    ) -> None:
        super().__init__()
        self.symbol = symbol
        self.pip_size = pip_size
        self.contract_size = contract_size
        self.commission_per_lot = commission_per_lot
        self.last_tick: Optional[Tick] = None
        self._positions: Dict[int, Position] = {}
        self._handles = itertools.count(1)

    # ------------------------------------------------------------------
    # Price updates
    # ------------------------------------------------------------------

    def on_price(self, tick: Tick) -> List[ClosedPositionEvent]:
        """Apply a new quote and trigger any stop‑loss or take‑profit hit."""
        self.last_tick = tick
        closed: List[ClosedPositionEvent] = []
        for handle in list(self._positions):
            pos = self._positions[handle]
            price = tick.price_for_close(pos.direction)
            pos.current_price = price
            exit_signal: Optional[str] = None
            exit_price = price
            if pos.direction is Direction.LONG:
                if pos.stop_loss is not None and price <= pos.stop_loss:
                    exit_signal, exit_price = 'sl', pos.stop_loss
                elif pos.take_profit is not None and price >= pos.take_profit:
                    exit_signal, exit_price = 'tp', pos.take_profit
            else:
                if pos.stop_loss is not None and price >= pos.stop_loss:
                    exit_signal, exit_price = 'sl', pos.stop_loss
                elif pos.take_profit is not None and price <= pos.take_profit:
                    exit_signal, exit_price = 'tp', pos.take_profit
            if exit_signal is not None:
                closed.append(self._settle(handle, exit_price, exit_signal))
        return closed

    # ------------------------------------------------------------------
    # ExecutionGateway
    # ------------------------------------------------------------------

    def open(self, symbol, direction, volume, stop_loss, take_profit, label) -> Position:
        tick = self._require_tick(symbol, "open")
        if volume <= 0:
            raise GatewayRejected("open", f"invalid volume {volume}")
        entry = tick.price_for_open(direction)
        self._check_levels("open", direction, tick.price_for_close(direction), stop_loss, take_profit)
        pos = Position(
            handle=next(self._handles),
            symbol=symbol,
            direction=direction,
            volume=volume,
            entry_price=entry,
            stop_loss=stop_loss,
            take_profit=take_profit,
            label=label,
            current_price=tick.price_for_close(direction),
            pip_size=self.pip_size,
            opened_at=tick.time,
        )
        self._positions[pos.handle] = pos
        logger.info(
            "Paper %s %.2f lots %s at %s (SL=%s, TP=%s)",
            direction.value,
            volume,
            symbol,
            entry,
            stop_loss,
            take_profit,
        )
        return replace(pos)

    def modify(self, position, stop_loss, take_profit) -> None:
        pos = self._positions.get(position.handle)
        if pos is None:
            raise GatewayRejected("modify", f"position {position.handle} is not open")
        self._check_levels("modify", pos.direction, pos.current_price, stop_loss, take_profit)
        pos.stop_loss = stop_loss
        pos.take_profit = take_profit

    def close(self, position, reason: str = "manual") -> ClosedPositionEvent:
        pos = self._positions.get(position.handle)
        if pos is None:
            raise GatewayRejected("close", f"position {position.handle} is not open")
        self._require_tick(pos.symbol, "close")
        return self._settle(pos.handle, pos.current_price, reason)

    def find(self, label, symbol, direction) -> List[Position]:
        return [p for p in self.find_all(label, symbol) if p.direction is direction]

    def find_all(self, label, symbol) -> List[Position]:
        return [
            replace(p)
            for p in self._positions.values()
            if p.label == label and p.symbol == symbol
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_tick(self, symbol: str, action: str) -> Tick:
        if symbol != self.symbol:
            raise GatewayRejected(action, f"unknown symbol {symbol}")
        if self.last_tick is None:
            raise GatewayRejected(action, "no price available")
        return self.last_tick

    @staticmethod
    def _check_levels(
        action: str,
        direction: Direction,
        price: float,
        stop_loss: Optional[float],
        take_profit: Optional[float],
    ) -> None:
        """Reject levels already on the wrong side of the current price."""
        sign = direction.sign
        if stop_loss is not None and (price - stop_loss) * sign <= 0:
            raise GatewayRejected(action, f"invalid stop loss {stop_loss} at price {price}")
        if take_profit is not None and (take_profit - price) * sign <= 0:
            raise GatewayRejected(action, f"invalid take profit {take_profit} at price {price}")

    def _settle(self, handle: int, exit_price: float, reason: str) -> ClosedPositionEvent:
        pos = self._positions.pop(handle)
        pnl = (exit_price - pos.entry_price) * pos.direction.sign * pos.volume * self.contract_size
        fees = self.commission_per_lot * pos.volume
        event = ClosedPositionEvent(
            gross_profit=pnl,
            commission=fees,
            direction=pos.direction,
            entry_price=pos.entry_price,
            exit_price=exit_price,
            symbol=pos.symbol,
            volume=pos.volume,
            label=pos.label,
            closed_at=self.last_tick.time if self.last_tick is not None else None,
            reason=reason,
        )
        logger.info(
            "Paper close %s %s at %s due to %s, profit %.2f",
            pos.direction.value,
            pos.symbol,
            exit_price,
            reason,
            event.gross_profit,
        )
        self._notify_closed(event)
        return event
