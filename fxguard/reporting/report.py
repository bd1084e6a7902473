"""
Report generation utilities.

This module turns a session's closed positions into human‑readable
artefacts: CSV files of trades and equity curve, a JSON summary of
performance metrics and a PNG chart of the equity curve.
"""

from __future__ import annotations

import os
import json
from typing import List
import pandas as pd
import matplotlib

# Use non‑interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.models import ClosedPositionEvent
from .metrics import compute_metrics, equity_curve


def generate_session_report(
    events: List[ClosedPositionEvent],
    out_dir: str = "results",
    starting_equity: float = 100_000.0,
) -> None:
    """Generate report files for a trading session.

    Creates the output directory if it does not exist and writes the
    following files:

    - `trades.csv` – detailed list of closed positions
    - `equity_curve.csv` – nominal equity after each close
    - `summary.json` – performance metrics
    - `equity_curve.png` – line chart of the equity curve
    """
    os.makedirs(out_dir, exist_ok=True)

    # Trades CSV
    trades_data = [
        {
            'timestamp_exit': e.closed_at.isoformat() if e.closed_at is not None else '',
            'symbol': e.symbol,
            'side': e.direction.value,
            'volume': e.volume,
            'entry': e.entry_price,
            'exit': e.exit_price,
            'gross_profit': e.gross_profit,
            'commission': e.commission,
            'reason': e.reason,
        }
        for e in events
    ]
    df_trades = pd.DataFrame(trades_data)
    df_trades.to_csv(os.path.join(out_dir, 'trades.csv'), index=False)

    # Equity curve CSV
    df_eq = pd.DataFrame(
        [{'timestamp': ts, 'equity': eq} for ts, eq in equity_curve(events, starting_equity)]
    )
    df_eq.to_csv(os.path.join(out_dir, 'equity_curve.csv'), index=False)

    # Summary JSON
    metrics = compute_metrics(events, starting_equity)
    with open(os.path.join(out_dir, 'summary.json'), 'w', encoding='utf-8') as fh:
        json.dump(metrics, fh, indent=2, ensure_ascii=False)

    # Equity curve plot
    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_eq.empty:
        ax.plot(range(1, len(df_eq) + 1), df_eq['equity'], linewidth=1.5)
        ax.set_title('Equity Curve')
        ax.set_xlabel('Closed position')
        ax.set_ylabel('Equity')
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'equity_curve.png'))
    plt.close(fig)
