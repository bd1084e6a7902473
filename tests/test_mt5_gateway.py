import os
import sys
import itertools
from types import SimpleNamespace
from unittest import mock

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fxguard.config.schema import Config
from fxguard.execution.models import Direction
from fxguard.execution.mt5_exec import MT5Gateway

import unittest


class FakeTerminal:
    """Minimal in-memory stand-in for the MetaTrader5 module."""

    POSITION_TYPE_BUY, POSITION_TYPE_SELL = 0, 1
    ORDER_TYPE_BUY, ORDER_TYPE_SELL = 0, 1
    TRADE_ACTION_DEAL, TRADE_ACTION_SLTP = 1, 6
    ORDER_TIME_GTC, ORDER_FILLING_IOC = 0, 1
    TRADE_RETCODE_DONE = 10009
    DEAL_ENTRY_IN, DEAL_ENTRY_OUT = 0, 1
    DEAL_REASON_EXPERT, DEAL_REASON_SL, DEAL_REASON_TP = 3, 4, 5

    def __init__(self, price: float = 1.1000) -> None:
        self.price = price
        self.positions = {}
        self.deals = {}
        self._tickets = itertools.count(1001)

    def last_error(self):
        return (1, "Success")

    def symbol_info_tick(self, symbol):
        return SimpleNamespace(bid=self.price, ask=self.price)

    def positions_get(self, symbol=None, ticket=None):
        return tuple(
            p for p in self.positions.values()
            if (symbol is None or p.symbol == symbol) and (ticket is None or p.ticket == ticket)
        )

    def history_deals_get(self, position=None):
        return tuple(self.deals.get(position, ()))

    def order_send(self, request):
        if 'position' in request and request['action'] == self.TRADE_ACTION_DEAL:
            self._exit(request['position'], request['price'], self.DEAL_REASON_EXPERT)
            return SimpleNamespace(retcode=self.TRADE_RETCODE_DONE, order=request['position'], comment="done")
        if request['action'] == self.TRADE_ACTION_SLTP:
            raw = self.positions[request['position']]
            raw.sl, raw.tp = request['sl'], request['tp']
            return SimpleNamespace(retcode=self.TRADE_RETCODE_DONE, order=raw.ticket, comment="done")
        ticket = next(self._tickets)
        self.positions[ticket] = SimpleNamespace(
            ticket=ticket,
            type=self.POSITION_TYPE_BUY if request['type'] == self.ORDER_TYPE_BUY else self.POSITION_TYPE_SELL,
            symbol=request['symbol'],
            volume=request['volume'],
            price_open=request['price'],
            price_current=request['price'],
            sl=request['sl'],
            tp=request['tp'],
            comment=request['comment'],
            magic=request['magic'],
            time=1704276000,
        )
        self.deals[ticket] = [SimpleNamespace(entry=self.DEAL_ENTRY_IN, profit=0.0, commission=-0.5)]
        return SimpleNamespace(retcode=self.TRADE_RETCODE_DONE, order=ticket, comment="done")

    def stop_out(self, ticket: int, price: float) -> None:
        self._exit(ticket, price, self.DEAL_REASON_SL)

    def _exit(self, ticket: int, price: float, reason: int) -> None:
        raw = self.positions.pop(ticket)
        sign = 1 if raw.type == self.POSITION_TYPE_BUY else -1
        profit = round((price - raw.price_open) * sign * raw.volume * 100_000, 2)
        self.deals[ticket].append(
            SimpleNamespace(
                entry=self.DEAL_ENTRY_OUT,
                profit=profit,
                commission=-0.5,
                price=price,
                time_msc=1704279600000,
                reason=reason,
            )
        )


class TestMT5Gateway(unittest.TestCase):
    def setUp(self) -> None:
        self.terminal = FakeTerminal()
        patcher = mock.patch('fxguard.execution.mt5_exec.require_mt5', return_value=self.terminal)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.config = Config(label="mt5-test")
        self.gateway = MT5Gateway(self.config)
        self.events = []
        self.gateway.subscribe_closed(self.events.append)

    def test_open_tags_position_with_label(self) -> None:
        pos = self.gateway.open("EURUSD", Direction.LONG, 0.15, 1.0965, 1.1135, "mt5-test")
        self.assertEqual(pos.label, "mt5-test")
        self.assertEqual((pos.stop_loss, pos.take_profit), (1.0965, 1.1135))
        self.assertEqual(self.gateway.find("mt5-test", "EURUSD", Direction.LONG), [pos])
        self.assertEqual(self.gateway.find_all("other", "EURUSD"), [])

    def test_closure_on_venue_reported_once(self) -> None:
        pos = self.gateway.open("EURUSD", Direction.LONG, 0.15, 1.0965, None, "mt5-test")
        self.terminal.stop_out(pos.handle, 1.0965)

        reported = self.gateway.poll_closed()
        self.assertEqual(len(reported), 1)
        self.assertEqual(reported[0].reason, 'sl')
        self.assertAlmostEqual(reported[0].gross_profit, -52.5)
        self.assertAlmostEqual(reported[0].commission, 1.0)
        self.assertEqual(self.events, reported)

        self.assertEqual(self.gateway.poll_closed(), [])
        self.assertEqual(len(self.events), 1)

    def test_own_close_not_reported_again_by_poll(self) -> None:
        pos = self.gateway.open("EURUSD", Direction.SHORT, 0.15, 1.1035, None, "mt5-test")
        event = self.gateway.close(pos, "opposite")
        self.assertEqual(event.reason, "opposite")
        self.assertEqual(self.gateway.poll_closed(), [])
        self.assertEqual(self.events, [event])
        self.assertEqual(self.gateway._known, {})


if __name__ == '__main__':
    unittest.main()
