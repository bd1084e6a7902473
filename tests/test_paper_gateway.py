import os
import sys
import pandas as pd
from unittest import mock

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fxguard.execution.gateway import GatewayRejected
from fxguard.execution.models import Direction, Tick
from fxguard.execution.paper_exec import PaperGateway
from fxguard.execution.tracker import InvariantViolation, PositionTracker

import unittest


def tick(ts: str, bid: float, spread: float = 0.0) -> Tick:
    return Tick(time=pd.Timestamp(ts, tz="UTC"), bid=bid, ask=round(bid + spread, 5))


class TestPaperGateway(unittest.TestCase):
    def setUp(self) -> None:
        self.gateway = PaperGateway("EURUSD", pip_size=0.0001, commission_per_lot=7.0)
        self.events = []
        self.gateway.subscribe_closed(self.events.append)
        self.gateway.on_price(tick("2024-01-03 10:00", 1.1000, spread=0.0002))

    def test_long_fills_at_ask(self) -> None:
        pos = self.gateway.open("EURUSD", Direction.LONG, 0.1, 1.0965, 1.1135, "bot")
        self.assertAlmostEqual(pos.entry_price, 1.1002)
        self.assertAlmostEqual(pos.current_price, 1.1000)
        self.assertAlmostEqual(pos.pips, -2.0)

    def test_stop_loss_hit_reports_loss_once(self) -> None:
        self.gateway.open("EURUSD", Direction.LONG, 0.1, 1.0967, 1.1137, "bot")
        closed = self.gateway.on_price(tick("2024-01-03 10:05", 1.0960))
        self.assertEqual(len(closed), 1)
        self.assertEqual(self.events, closed)
        event = closed[0]
        self.assertEqual(event.reason, 'sl')
        self.assertAlmostEqual(event.exit_price, 1.0967)
        self.assertAlmostEqual(event.gross_profit, -35.0)
        self.assertAlmostEqual(event.commission, 0.7)
        self.assertAlmostEqual(event.net_profit, -35.7)
        self.assertEqual(self.gateway.find_all("bot", "EURUSD"), [])

        self.gateway.on_price(tick("2024-01-03 10:06", 1.0950))
        self.assertEqual(len(self.events), 1)

    def test_short_take_profit(self) -> None:
        self.gateway.open("EURUSD", Direction.SHORT, 0.1, 1.1035, 1.0900, "bot")
        closed = self.gateway.on_price(tick("2024-01-03 11:00", 1.0890, spread=0.0005))
        self.assertEqual(closed[0].reason, 'tp')
        self.assertAlmostEqual(closed[0].gross_profit, 100.0)

    def test_rejects_stop_on_wrong_side(self) -> None:
        with self.assertRaises(GatewayRejected) as ctx:
            self.gateway.open("EURUSD", Direction.LONG, 0.1, 1.1010, None, "bot")
        self.assertEqual(ctx.exception.action, "open")
        pos = self.gateway.open("EURUSD", Direction.LONG, 0.1, 1.0965, None, "bot")
        with self.assertRaises(GatewayRejected):
            self.gateway.modify(pos, 1.1001, None)

    def test_close_unknown_position_rejected(self) -> None:
        pos = self.gateway.open("EURUSD", Direction.SHORT, 0.1, 1.1035, None, "bot")
        self.gateway.close(pos)
        with self.assertRaises(GatewayRejected):
            self.gateway.close(pos)

    def test_find_filters_by_label_and_direction(self) -> None:
        self.gateway.open("EURUSD", Direction.LONG, 0.1, 1.0965, None, "bot")
        self.gateway.open("EURUSD", Direction.SHORT, 0.1, 1.1035, None, "bot")
        self.gateway.open("EURUSD", Direction.LONG, 0.1, 1.0965, None, "someone-else")
        self.assertEqual(len(self.gateway.find_all("bot", "EURUSD")), 2)
        self.assertEqual(len(self.gateway.find("bot", "EURUSD", Direction.LONG)), 1)

    def test_snapshots_are_copies(self) -> None:
        pos = self.gateway.open("EURUSD", Direction.LONG, 0.1, 1.0965, None, "bot")
        pos.stop_loss = 1.2
        self.assertAlmostEqual(self.gateway.find_all("bot", "EURUSD")[0].stop_loss, 1.0965)


class TestPositionTracker(unittest.TestCase):
    def test_find_returns_single_position_or_none(self) -> None:
        gateway = PaperGateway("EURUSD", pip_size=0.0001)
        gateway.on_price(tick("2024-01-03 10:00", 1.1000))
        tracker = PositionTracker(gateway, "bot")
        self.assertIsNone(tracker.find("EURUSD", Direction.LONG))
        gateway.open("EURUSD", Direction.LONG, 0.1, 1.0965, None, "bot")
        self.assertEqual(tracker.find("EURUSD", Direction.LONG).direction, Direction.LONG)
        self.assertIsNone(tracker.find("EURUSD", Direction.SHORT))

    def test_reads_through_every_call(self) -> None:
        gateway = mock.Mock()
        gateway.find.return_value = []
        tracker = PositionTracker(gateway, "bot")
        tracker.find("EURUSD", Direction.LONG)
        tracker.find("EURUSD", Direction.LONG)
        self.assertEqual(gateway.find.call_count, 2)
        gateway.find.assert_called_with("bot", "EURUSD", Direction.LONG)

    def test_duplicate_slot_is_an_invariant_violation(self) -> None:
        gateway = PaperGateway("EURUSD", pip_size=0.0001)
        gateway.on_price(tick("2024-01-03 10:00", 1.1000))
        gateway.open("EURUSD", Direction.SHORT, 0.1, 1.1035, None, "bot")
        gateway.open("EURUSD", Direction.SHORT, 0.1, 1.1035, None, "bot")
        tracker = PositionTracker(gateway, "bot")
        with self.assertRaises(InvariantViolation) as ctx:
            tracker.find("EURUSD", Direction.SHORT)
        self.assertEqual(ctx.exception.count, 2)
        with self.assertRaises(InvariantViolation):
            tracker.find_all("EURUSD")


if __name__ == '__main__':
    unittest.main()
