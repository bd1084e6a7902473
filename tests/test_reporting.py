import json
import os
import shutil
import sys
import tempfile
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fxguard.execution.models import ClosedPositionEvent, Direction
from fxguard.reporting.metrics import compute_metrics
from fxguard.reporting.report import generate_session_report

import unittest


def closed(profit: float, minute: int) -> ClosedPositionEvent:
    return ClosedPositionEvent(
        gross_profit=profit,
        direction=Direction.LONG,
        entry_price=1.1,
        exit_price=1.1 + profit / 15_000,
        symbol="EURUSD",
        volume=0.15,
        label="fxguard",
        closed_at=pd.Timestamp(f"2024-01-03 10:{minute:02d}", tz="UTC"),
        reason='sl' if profit < 0 else 'tp',
    )


class TestMetrics(unittest.TestCase):
    def test_empty_session(self) -> None:
        metrics = compute_metrics([])
        self.assertEqual(metrics['num_trades'], 0)
        self.assertEqual(metrics['win_rate'], 0.0)

    def test_summary_values(self) -> None:
        events = [closed(-50.0, 1), closed(-25.0, 2), closed(150.0, 3), closed(0.0, 4)]
        metrics = compute_metrics(events, starting_equity=1_000.0)
        self.assertEqual(metrics['num_trades'], 4)
        self.assertAlmostEqual(metrics['net_profit'], 75.0)
        self.assertAlmostEqual(metrics['win_rate'], 0.5)
        self.assertAlmostEqual(metrics['profit_factor'], 2.0)
        self.assertEqual(metrics['max_consecutive_losses'], 2)
        self.assertAlmostEqual(metrics['max_drawdown'], 0.075)


class TestReport(unittest.TestCase):
    def test_files_written(self) -> None:
        out_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, out_dir)
        generate_session_report([closed(-50.0, 1), closed(80.0, 2)], out_dir=out_dir)
        trades = pd.read_csv(os.path.join(out_dir, 'trades.csv'))
        self.assertEqual(list(trades['reason']), ['sl', 'tp'])
        with open(os.path.join(out_dir, 'summary.json'), encoding='utf-8') as fh:
            self.assertEqual(json.load(fh)['num_trades'], 2)
        self.assertTrue(os.path.exists(os.path.join(out_dir, 'equity_curve.png')))


if __name__ == '__main__':
    unittest.main()
