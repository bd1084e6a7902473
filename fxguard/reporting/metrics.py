"""
Performance metrics calculations.

This module computes summary statistics from the positions closed
during a paper or live session.  The equity curve is the running sum of
net profit starting from a nominal balance.
"""

from __future__ import annotations

from typing import List, Tuple
import math

import pandas as pd

from ..execution.models import ClosedPositionEvent


def equity_curve(events: List[ClosedPositionEvent], starting_equity: float = 0.0) -> List[Tuple[pd.Timestamp, float]]:
    """Running equity after each closed position."""
    equity = starting_equity
    points: List[Tuple[pd.Timestamp, float]] = []
    for event in events:
        equity += event.net_profit
        points.append((event.closed_at, equity))
    return points


def compute_metrics(events: List[ClosedPositionEvent], starting_equity: float = 100_000.0) -> dict:
    """Compute a set of summary statistics for a trading session.

    Parameters
    ----------
    events : list of ClosedPositionEvent
        Closed positions, in closing order.
    starting_equity : float
        Nominal balance the equity curve and drawdown are measured from.

    Returns
    -------
    dict
        Dictionary of performance metrics.
    """
    if not events:
        return {
            'net_profit': 0.0,
            'max_drawdown': 0.0,
            'sharpe': 0.0,
            'win_rate': 0.0,
            'profit_factor': 0.0,
            'avg_trade': 0.0,
            'max_consecutive_losses': 0,
            'num_trades': 0,
        }

    # Compute drawdown
    max_equity = starting_equity
    max_drawdown = 0.0
    for _, equity in equity_curve(events, starting_equity):
        if equity > max_equity:
            max_equity = equity
        drawdown = (max_equity - equity) / max_equity if max_equity else 0.0
        if drawdown > max_drawdown:
            max_drawdown = drawdown

    # Compute trade returns and Sharpe ratio
    profits = [e.net_profit for e in events]
    mean_ret = sum(profits) / len(profits)
    variance = sum((p - mean_ret) ** 2 for p in profits) / len(profits)
    std_dev = math.sqrt(variance)
    sharpe = (mean_ret / std_dev) * math.sqrt(len(profits)) if std_dev > 0 else 0.0

    # Win rate and profit factor use the gross figure, like the loss budget
    wins = [e.gross_profit for e in events if e.gross_profit >= 0]
    losses = [e.gross_profit for e in events if e.gross_profit < 0]
    gross_profit = sum(wins)
    gross_loss = -sum(losses)
    profit_factor = gross_profit / gross_loss if gross_loss > 0 else 0.0

    streak = longest = 0
    for e in events:
        streak = streak + 1 if e.gross_profit < 0 else 0
        longest = max(longest, streak)

    return {
        'net_profit': sum(profits),
        'max_drawdown': max_drawdown,
        'sharpe': sharpe,
        'win_rate': len(wins) / len(events),
        'profit_factor': profit_factor,
        'avg_trade': mean_ret,
        'max_consecutive_losses': longest,
        'num_trades': len(events),
    }
