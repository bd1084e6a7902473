"""
Strategy engine.

`StrategyEngine` drives the life of positions on one instrument.  On
every tick it:

1. rolls the daily loss budget over when the platform date changes,
2. closes everything and stops there during the weekly blackout window,
3. checks the daily loss budget,
4. asks the signal source for a direction and opens at most one position
   per direction (closing the opposite side first),
5. lets the `StopManager` adjust stop‑loss and take‑profit levels.

Position closures arrive through the gateway's closed‑position callback
and update the risk budget.  Ticks and closures are serialised by a
single re‑entrant lock: the paper venue reports closures synchronously
from inside a tick.
"""

from __future__ import annotations

from enum import Enum
import logging
import threading
from typing import Any, Dict, List, Optional
import pandas as pd

from ..config.schema import Config
from ..execution.gateway import ExecutionGateway, GatewayRejected
from ..execution.models import ClosedPositionEvent, Direction, Position, Signal, Tick
from ..execution.tracker import InvariantViolation, PositionTracker
from ..utils.timeutils import is_blackout, parse_time_str, trading_day
from .risk_budget import RiskBudget
from .signals import SignalSource
from .stop_manager import StopManager, StopPolicy


logger = logging.getLogger(__name__)


class SlotState(Enum):
    """Lifecycle of one ``(symbol, direction)`` slot."""
    FLAT = "flat"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


class StrategyEngine:
    """Run the position lifecycle for a single instrument.

    Parameters
    ----------
    config : Config
        Validated before anything else happens; an invalid configuration
        raises `ConfigurationError` and no engine is built.
    gateway : ExecutionGateway
        Venue used for every order.  The engine subscribes to its
        closed‑position notifications.
    signal_source : SignalSource
        Oracle consulted once per tick.
    """

    def __init__(self, config: Config, gateway: ExecutionGateway, signal_source: SignalSource) -> None:
        self.config = config.validate()
        self.symbol = config.symbol
        self.label = config.label
        self.gateway = gateway
        self.signal_source = signal_source
        self.tracker = PositionTracker(gateway, config.label)
        self.stops = StopManager(StopPolicy.from_config(config))
        self.budget = RiskBudget()
        self.blackout_start = parse_time_str(config.blackout.start)
        self.slots: Dict[Direction, SlotState] = {d: SlotState.FLAT for d in Direction}
        self._lock = threading.RLock()
        gateway.subscribe_closed(self.on_position_closed)

    # ------------------------------------------------------------------
    # Tick processing
    # ------------------------------------------------------------------

    def on_tick(self, tick: Tick, bars: Optional[pd.DataFrame] = None) -> Signal:
        """Process one price update.

        Parameters
        ----------
        tick : Tick
            Latest quote; its timestamp is the engine's clock.
        bars : pandas.DataFrame, optional
            Bar history handed to the signal source.

        Returns
        -------
        Signal
            The signal evaluated on this tick (``NONE`` during blackout).
        """
        with self._lock:
            self.roll_day(tick.time)

            if is_blackout(tick.time, self.config.blackout.weekday, self.blackout_start, self.config.data.timezone):
                self._close_all("blackout")
                return Signal.NONE

            open_allowed = self.budget.can_open(self.config.risk.max_daily_loss)
            signal = self.signal_source.evaluate(bars)
            if signal is not Signal.NONE:
                logger.debug("Signal %s on %s at %s", signal.value, self.symbol, tick.time)
                if open_allowed:
                    self._enter(signal.direction, tick)
                else:
                    logger.info(
                        "Ignoring %s signal on %s: daily loss %.2f reached limit %.2f",
                        signal.value,
                        self.symbol,
                        self.budget.realized_loss_today,
                        self.config.risk.max_daily_loss,
                    )

            self._manage_stops()
            return signal

    def roll_day(self, ts: pd.Timestamp) -> None:
        """Reset the daily loss budget when `ts` falls on a new platform day."""
        with self._lock:
            today = trading_day(ts, self.config.data.timezone)
            if self.budget.on_tick(today):
                logger.info("New trading day %s on %s: daily loss budget reset", today, self.symbol)

    def _enter(self, direction: Direction, tick: Tick) -> None:
        try:
            if self.tracker.find(self.symbol, direction) is not None:
                return
            opposite = self.tracker.find(self.symbol, direction.opposite)
        except InvariantViolation as exc:
            logger.error("Skipping %s entry on %s: %s", direction.value, self.symbol, exc)
            return
        if self.slots[direction] is SlotState.OPENING:
            logger.warning("Skipping %s entry on %s: open request in flight", direction.value, self.symbol)
            return

        if opposite is not None and not self._close(opposite, "opposite"):
            logger.warning(
                "Not opening %s on %s: opposite position could not be closed",
                direction.value,
                self.symbol,
            )
            return

        volume = self.budget.sized_volume(self.config.risk.volume, self.config.risk.lot_step)
        stop, take_profit = self.stops.initial_levels(direction, tick.price_for_open(direction))
        self.slots[direction] = SlotState.OPENING
        try:
            position = self.gateway.open(self.symbol, direction, volume, stop, take_profit, self.label)
        except GatewayRejected as exc:
            self.slots[direction] = SlotState.FLAT
            logger.warning("Open %s %.2f lots on %s rejected: %s", direction.value, volume, self.symbol, exc.reason)
            return
        self.slots[direction] = SlotState.OPEN
        self.stops.reset(self.symbol, direction)
        logger.info(
            "Opened %s %.2f lots on %s at %s (SL=%s, TP=%s, multiplier=%d)",
            direction.value,
            position.volume,
            self.symbol,
            position.entry_price,
            position.stop_loss,
            position.take_profit,
            self.budget.loss_multiplier,
        )

    def _manage_stops(self) -> None:
        try:
            positions = self.tracker.find_all(self.symbol)
        except InvariantViolation as exc:
            logger.error("Skipping stop management on %s: %s", self.symbol, exc)
            return
        held = {position.direction for position in positions}
        for direction in Direction:
            if direction in held:
                self.slots[direction] = SlotState.OPEN
            elif self.slots[direction] is SlotState.OPEN:
                self.slots[direction] = SlotState.FLAT
        for position in positions:
            self.stops.update(position, self.gateway)

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def _close(self, position: Position, reason: str) -> bool:
        self.slots[position.direction] = SlotState.CLOSING
        try:
            self.gateway.close(position, reason)
        except GatewayRejected as exc:
            self.slots[position.direction] = SlotState.OPEN
            logger.warning(
                "Close %s on %s (%s) rejected: %s",
                position.direction.value,
                self.symbol,
                reason,
                exc.reason,
            )
            return False
        return True

    def _close_all(self, reason: str) -> None:
        # Untracked read: duplicates in a slot are closed too.
        positions: List[Position] = self.gateway.find_all(self.label, self.symbol)
        for position in positions:
            logger.info("Closing %s position on %s: %s", position.direction.value, self.symbol, reason)
            self._close(position, reason)

    def close_all(self, reason: str = "manual") -> None:
        """Close every open position carrying this engine's label."""
        with self._lock:
            self._close_all(reason)

    # ------------------------------------------------------------------
    # Closed positions
    # ------------------------------------------------------------------

    def on_position_closed(self, event: ClosedPositionEvent) -> None:
        """Update the risk budget for a position the venue reports closed."""
        if event.label != self.label or event.symbol != self.symbol:
            return
        with self._lock:
            day = None
            if event.closed_at is not None:
                day = trading_day(event.closed_at, self.config.data.timezone)
            self.budget.on_position_closed(event.gross_profit, self.config.risk.martingale, day)
            self.stops.reset(event.symbol, event.direction)
            self.slots[event.direction] = SlotState.FLAT
            logger.info(
                "%s %s closed (%s) with profit %.2f: loss today %.2f, multiplier %d",
                event.direction.value.capitalize(),
                event.symbol,
                event.reason,
                event.gross_profit,
                self.budget.realized_loss_today,
                self.budget.loss_multiplier,
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """State needed to resume after a restart of the polling loop."""
        with self._lock:
            return {
                'budget': self.budget.to_dict(),
                'excursions': self.stops.snapshot(),
            }

    def restore(self, state: Dict[str, Any]) -> None:
        with self._lock:
            if 'budget' in state:
                self.budget = RiskBudget.from_dict(state['budget'])
            if 'excursions' in state:
                self.stops.restore(state['excursions'])
