"""
Intraday breakout signal.

This source tracks the highest high and lowest low of the current
trading day and signals long or short when the latest bar's high or low
breaks those levels.  It does not signal both directions at the same
time and honours a configured trading session window.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional
import numpy as np
import pandas as pd

from ..execution.models import Signal
from ..utils.timeutils import parse_time_str, is_in_session
from .signals import SignalSource


@dataclass
class IntradayLevels:
    """Intraday high/low established before the latest bar."""
    high: Optional[float] = None
    low: Optional[float] = None
    current_date: Optional[date] = None


class IntradayBreakoutSignal(SignalSource):
    """Generate trading signals based on intraday breakout logic."""

    def __init__(self, session_start: str, session_end: str, timezone: str) -> None:
        self.session_start = parse_time_str(session_start)
        self.session_end = parse_time_str(session_end)
        self.timezone = timezone

    def levels(self, bars: pd.DataFrame) -> IntradayLevels:
        """High/low of the bars preceding the last one on the same local day."""
        local_index = bars.index.tz_convert(self.timezone)
        last_date = local_index[-1].date()
        mask = np.array([ts.date() == last_date for ts in local_index], dtype=bool)
        mask[-1] = False
        earlier = bars[mask]
        if earlier.empty:
            return IntradayLevels(current_date=last_date)
        return IntradayLevels(
            high=float(earlier['high'].max()),
            low=float(earlier['low'].min()),
            current_date=last_date,
        )

    def evaluate(self, bars):
        if bars is None or bars.empty:
            return Signal.NONE
        # Only allow trades within the session window
        ts = bars.index[-1]
        if not is_in_session(ts, self.session_start, self.session_end, self.timezone):
            return Signal.NONE

        levels = self.levels(bars)
        bar = bars.iloc[-1]
        long_signal = levels.high is not None and bar['high'] > levels.high
        short_signal = levels.low is not None and bar['low'] < levels.low
        # Skip the bar if both levels break
        return self._combine(long_signal, short_signal)
