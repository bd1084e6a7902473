"""
MetaTrader 5 execution venue.

`MT5Gateway` sends market orders, stop modifications and closing deals
to a MetaTrader 5 terminal.  Positions opened by the engine carry the
engine's label in the order comment (and the configured magic number),
which is how `find` and `find_all` tell them apart from positions owned
by anyone else on the same symbol.

MetaTrader 5 has no push notification for closed positions, so the
runner calls `poll_closed()` once per cycle.  Tickets that disappeared
since the previous poll are looked up in the deal history and reported
to the subscribed callbacks.  Positions closed through `close()` are
reported immediately and dropped from the tickets the poll compares
against, so each closure is reported once.

**Note**: Running this gateway requires the `MetaTrader5` package and a
locally installed MT5 terminal.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional
import pandas as pd

from ..config.schema import Config
from ..data.mt5_data import require_mt5
from .gateway import ExecutionGateway, GatewayRejected
from .models import ClosedPositionEvent, Direction, Position


logger = logging.getLogger(__name__)


class MT5Gateway(ExecutionGateway):
    """Trade a single symbol through a connected MetaTrader 5 terminal."""

    def __init__(self, config: Config) -> None:
        super().__init__()
        self.config = config
        self.mt5 = require_mt5()
        self._known: Dict[int, Position] = {}

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def _to_position(self, raw) -> Position:
        direction = Direction.LONG if raw.type == self.mt5.POSITION_TYPE_BUY else Direction.SHORT
        return Position(
            handle=int(raw.ticket),
            symbol=raw.symbol,
            direction=direction,
            volume=float(raw.volume),
            entry_price=float(raw.price_open),
            stop_loss=float(raw.sl) or None,
            take_profit=float(raw.tp) or None,
            label=raw.comment,
            current_price=float(raw.price_current),
            pip_size=self.config.pip_size,
            opened_at=pd.Timestamp(raw.time, unit='s', tz='UTC'),
        )

    def _send(self, action: str, request: dict):
        result = self.mt5.order_send(request)
        if result is None:
            raise GatewayRejected(action, f"order_send failed: {self.mt5.last_error()}")
        if result.retcode != self.mt5.TRADE_RETCODE_DONE:
            raise GatewayRejected(action, f"retcode {result.retcode}: {result.comment}")
        return result

    def _market_price(self, symbol: str, direction: Direction, closing: bool = False) -> float:
        tick = self.mt5.symbol_info_tick(symbol)
        if tick is None:
            raise GatewayRejected("price", f"no quote for {symbol}")
        buying = (direction is Direction.LONG) != closing
        return float(tick.ask if buying else tick.bid)

    # ------------------------------------------------------------------
    # ExecutionGateway
    # ------------------------------------------------------------------

    def open(self, symbol, direction, volume, stop_loss, take_profit, label) -> Position:
        request = {
            'action': self.mt5.TRADE_ACTION_DEAL,
            'symbol': symbol,
            'volume': float(volume),
            'type': self.mt5.ORDER_TYPE_BUY if direction is Direction.LONG else self.mt5.ORDER_TYPE_SELL,
            'price': self._market_price(symbol, direction),
            'sl': float(stop_loss or 0.0),
            'tp': float(take_profit or 0.0),
            'deviation': self.config.mt5.deviation,
            'magic': self.config.mt5.magic,
            'comment': label,
            'type_time': self.mt5.ORDER_TIME_GTC,
            'type_filling': self.mt5.ORDER_FILLING_IOC,
        }
        result = self._send("open", request)
        raw = self.mt5.positions_get(ticket=result.order)
        if not raw:
            raise GatewayRejected("open", f"order {result.order} filled but no position was found")
        position = self._to_position(raw[0])
        self._known[position.handle] = position
        return position

    def modify(self, position, stop_loss, take_profit) -> None:
        request = {
            'action': self.mt5.TRADE_ACTION_SLTP,
            'symbol': position.symbol,
            'position': position.handle,
            'sl': float(stop_loss or 0.0),
            'tp': float(take_profit or 0.0),
            'magic': self.config.mt5.magic,
        }
        self._send("modify", request)

    def close(self, position, reason: str = "manual") -> ClosedPositionEvent:
        exit_type = self.mt5.ORDER_TYPE_SELL if position.direction is Direction.LONG else self.mt5.ORDER_TYPE_BUY
        request = {
            'action': self.mt5.TRADE_ACTION_DEAL,
            'symbol': position.symbol,
            'volume': float(position.volume),
            'type': exit_type,
            'position': position.handle,
            'price': self._market_price(position.symbol, position.direction, closing=True),
            'deviation': self.config.mt5.deviation,
            'magic': self.config.mt5.magic,
            'comment': position.label,
            'type_time': self.mt5.ORDER_TIME_GTC,
            'type_filling': self.mt5.ORDER_FILLING_IOC,
        }
        self._send("close", request)
        event = self._closed_event(position, reason)
        self._known.pop(position.handle, None)
        self._notify_closed(event)
        return event

    def find(self, label, symbol, direction) -> List[Position]:
        return [p for p in self.find_all(label, symbol) if p.direction is direction]

    def find_all(self, label, symbol) -> List[Position]:
        raw = self.mt5.positions_get(symbol=symbol)
        if raw is None:
            raise GatewayRejected("query", f"positions_get failed: {self.mt5.last_error()}")
        positions = [
            self._to_position(p)
            for p in raw
            if p.comment == label and p.magic == self.config.mt5.magic
        ]
        for position in positions:
            self._known[position.handle] = position
        return positions

    # ------------------------------------------------------------------
    # Closed position detection
    # ------------------------------------------------------------------

    def poll_closed(self) -> List[ClosedPositionEvent]:
        """Report positions that closed on the venue since the last poll."""
        open_now = {p.handle for p in self.find_all(self.config.label, self.config.symbol)}
        events: List[ClosedPositionEvent] = []
        for handle in [h for h in self._known if h not in open_now]:
            position = self._known.pop(handle)
            event = self._closed_event(position, None)
            events.append(event)
            self._notify_closed(event)
        return events

    def _closed_event(self, position: Position, reason: Optional[str]) -> ClosedPositionEvent:
        deals = self.mt5.history_deals_get(position=position.handle) or ()
        exits = [d for d in deals if d.entry == self.mt5.DEAL_ENTRY_OUT]
        if exits:
            last = exits[-1]
            profit = float(sum(d.profit for d in exits))
            commission = -float(sum(d.commission for d in deals))
            exit_price = float(last.price)
            closed_at = pd.Timestamp(last.time_msc, unit='ms', tz='UTC')
            if reason is None:
                reason = {
                    self.mt5.DEAL_REASON_SL: 'sl',
                    self.mt5.DEAL_REASON_TP: 'tp',
                }.get(last.reason, 'manual')
        else:
            logger.warning("No exit deal found for position %s; using last seen price", position.handle)
            exit_price = position.current_price
            profit = (exit_price - position.entry_price) * position.direction.sign * position.volume * self.config.contract_size
            commission = 0.0
            closed_at = None
        return ClosedPositionEvent(
            gross_profit=profit,
            direction=position.direction,
            entry_price=position.entry_price,
            exit_price=exit_price,
            symbol=position.symbol,
            volume=position.volume,
            label=position.label,
            closed_at=closed_at,
            reason=reason or 'manual',
            commission=commission,
        )
