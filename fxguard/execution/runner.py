"""
Polling runner for paper and live trading.

`Runner` wires the data feed, the execution venue and the strategy
engine together and feeds the engine one tick per polling cycle.  The
engine's risk state is persisted to disk after every cycle that changed
it, so the loss budget and the martingale multiplier survive restarts.
On shutdown a report of the session's closed positions is written.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

from ..config.schema import Config
from ..data.mt5_data import MT5DataFeed
from ..reporting.report import generate_session_report
from ..strategy.engine import StrategyEngine
from ..strategy.signals import build_signal_source
from ..utils.persistence import load_state, save_state
from .gateway import ExecutionGateway, GatewayRejected
from .models import ClosedPositionEvent, Tick
from .paper_exec import PaperGateway


logger = logging.getLogger(__name__)


class Runner:
    """Run one engine against a data feed until interrupted.

    Parameters
    ----------
    config : Config
        Validated configuration.
    feed : MT5DataFeed
        Source of quotes and bar history.
    gateway : ExecutionGateway
        Venue.  A `PaperGateway` is fed every quote; any other gateway
        is asked for closed positions through ``poll_closed()`` every cycle.
    """

    def __init__(self, config: Config, feed: MT5DataFeed, gateway: ExecutionGateway) -> None:
        self.config = config
        self.feed = feed
        self.gateway = gateway
        self.engine = StrategyEngine(config, gateway, build_signal_source(config))
        self.closed: List[ClosedPositionEvent] = []
        self.last_tick: Optional[Tick] = None
        gateway.subscribe_closed(self.closed.append)

        persisted = load_state(config.state_file)
        if persisted:
            self.engine.restore(persisted)
            logger.info(
                "Restored state: loss today %.2f, multiplier %d",
                self.engine.budget.realized_loss_today,
                self.engine.budget.loss_multiplier,
            )
        self._saved = self.engine.snapshot()

    def _persist_state(self) -> None:
        state = self.engine.snapshot()
        if state != self._saved:
            save_state(self.config.state_file, state)
            self._saved = state

    def run_cycle(self) -> bool:
        """Fetch one quote and hand it to the engine.

        Returns ``False`` when there was no new quote to process.
        """
        tick = self.feed.get_tick(self.config.symbol)
        if tick is None or tick == self.last_tick:
            return False
        self.last_tick = tick

        # Closures reported below are charged to this quote's trading day.
        self.engine.roll_day(tick.time)
        if isinstance(self.gateway, PaperGateway):
            self.gateway.on_price(tick)
        self.gateway.poll_closed()

        bars = self.feed.get_bars(self.config.symbol, self.config.data.history_bars)
        self.engine.on_tick(tick, bars)
        self._persist_state()
        return True

    def run(self) -> None:
        """Main loop for paper/live trading.

        Polls for quotes and processes each new one.  This loop runs
        indefinitely.  Press Ctrl+C to stop.  On termination, the state
        is saved to disk and the session report is written.
        """
        logger.info("Starting %s runner on %s (label=%s)", self.config.mode, self.config.symbol, self.config.label)
        if not self.feed.connected:
            try:
                self.feed.connect()
            except RuntimeError as exc:
                logger.error("Failed to connect to MetaTrader 5: %s", exc)
                return
        try:
            while True:
                try:
                    self.run_cycle()
                except (RuntimeError, GatewayRejected) as exc:
                    logger.error("Cycle failed on %s: %s", self.config.symbol, exc)
                time.sleep(self.config.data.poll_seconds)
        except KeyboardInterrupt:
            logger.info("Shutting down runner...")
        finally:
            self.feed.shutdown()
            self._persist_state()
            if self.closed:
                generate_session_report(self.closed, out_dir=self.config.results_dir)
                logger.info("Session report saved to %s", self.config.results_dir)


def build_runner(config: Config, live: bool) -> Runner:
    """Create the data feed and venue for the selected mode."""
    feed = MT5DataFeed(config.mt5, config.data.timezone, config.timeframe)
    if live:
        from .mt5_exec import MT5Gateway

        feed.connect()
        gateway: ExecutionGateway = MT5Gateway(config)
    else:
        gateway = PaperGateway(
            config.symbol,
            config.pip_size,
            config.contract_size,
            config.costs.commission_per_lot,
        )
    return Runner(config, feed, gateway)
