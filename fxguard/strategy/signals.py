"""
Signal sources.

A signal source looks at the bar history of one instrument and answers
``LONG``, ``SHORT`` or ``NONE``.  Sources are pure: they keep no state
between calls and never touch the venue, so the engine can evaluate
them on every tick.

The bar history is a `pandas.DataFrame` indexed by timezone‑aware bar
time with ``open``, ``high``, ``low`` and ``close`` columns, oldest bar
first.  When a source reports both directions at once it returns
``NONE``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional
import pandas as pd

from ..config.schema import Config, ConfigurationError
from ..execution.models import Signal


class SignalSource(ABC):
    """Oracle consulted by the engine once per tick."""

    @abstractmethod
    def evaluate(self, bars: Optional[pd.DataFrame]) -> Signal:
        """Return the signal for the latest bar of `bars`."""

    @staticmethod
    def _combine(long_signal: bool, short_signal: bool) -> Signal:
        if long_signal and not short_signal:
            return Signal.LONG
        if short_signal and not long_signal:
            return Signal.SHORT
        return Signal.NONE


def compute_rsi(close: pd.Series, period: int) -> pd.Series:
    """Relative Strength Index with Wilder's smoothing."""
    delta = close.diff()
    gain = delta.where(delta > 0, 0.0)
    loss = -delta.where(delta < 0, 0.0)
    avg_gain = gain.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()
    avg_loss = loss.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()
    rs = avg_gain / avg_loss
    rsi = 100 - (100 / (1 + rs))
    # No losses in the window: RSI saturates at 100.
    return rsi.where(avg_loss != 0, 100.0)


class RSIThresholdSignal(SignalSource):
    """Buy an RSI turning up from below the low ceiling.

    Long when the previous RSI value is below `low_ceil`, the RSI is
    rising and its average over the last `periods` values is above
    `low_ceil`.  Short is the mirror image around `high_ceil`.
    """

    def __init__(self, periods: int = 14, high_ceil: float = 80.0, low_ceil: float = 20.0) -> None:
        self.periods = periods
        self.high_ceil = high_ceil
        self.low_ceil = low_ceil

    def evaluate(self, bars):
        if bars is None or len(bars) < self.periods + 2:
            return Signal.NONE
        rsi = compute_rsi(bars['close'], self.periods).dropna()
        if len(rsi) < max(self.periods, 2):
            return Signal.NONE
        last, previous = rsi.iloc[-1], rsi.iloc[-2]
        average = rsi.iloc[-self.periods:].mean()
        long_signal = previous < self.low_ceil and last > previous and average > self.low_ceil
        short_signal = previous > self.high_ceil and last < previous and average < self.high_ceil
        return self._combine(long_signal, short_signal)


class RSIExtremeSignal(SignalSource):
    """Trade a reversal out of an RSI extreme.

    Long when the RSI touched `low_ceil` within the last `periods` values,
    is still at or below it and is rising.  Short is the mirror image.
    """

    def __init__(self, periods: int = 14, high_ceil: float = 80.0, low_ceil: float = 20.0) -> None:
        self.periods = periods
        self.high_ceil = high_ceil
        self.low_ceil = low_ceil

    def evaluate(self, bars):
        if bars is None or len(bars) < self.periods + 2:
            return Signal.NONE
        rsi = compute_rsi(bars['close'], self.periods).dropna()
        if len(rsi) < 2:
            return Signal.NONE
        window = rsi.iloc[-self.periods:]
        last, previous = rsi.iloc[-1], rsi.iloc[-2]
        long_signal = window.min() <= self.low_ceil and last <= self.low_ceil and last > previous
        short_signal = window.max() >= self.high_ceil and last >= self.high_ceil and last < previous
        return self._combine(long_signal, short_signal)


class MovingAverageCrossoverSignal(SignalSource):
    """Long when the fast SMA crosses above the slow one, short on the way down."""

    def __init__(self, fast_period: int = 5, slow_period: int = 10) -> None:
        self.fast_period = fast_period
        self.slow_period = slow_period

    def evaluate(self, bars):
        if bars is None or len(bars) < self.slow_period + 1:
            return Signal.NONE
        close = bars['close']
        fast = close.rolling(window=self.fast_period).mean()
        slow = close.rolling(window=self.slow_period).mean()
        spread_now = fast.iloc[-1] - slow.iloc[-1]
        spread_before = fast.iloc[-2] - slow.iloc[-2]
        if pd.isna(spread_now) or pd.isna(spread_before):
            return Signal.NONE
        long_signal = spread_before <= 0 < spread_now
        short_signal = spread_before >= 0 > spread_now
        return self._combine(long_signal, short_signal)


def build_signal_source(config: Config) -> SignalSource:
    """Instantiate the signal source selected by ``config.signal.type``."""
    from .intraday_breakout import IntradayBreakoutSignal

    sig = config.signal
    if sig.type == "rsi_threshold":
        return RSIThresholdSignal(sig.periods, sig.high_ceil, sig.low_ceil)
    if sig.type == "rsi_extreme":
        return RSIExtremeSignal(sig.periods, sig.high_ceil, sig.low_ceil)
    if sig.type == "ma_crossover":
        return MovingAverageCrossoverSignal(sig.fast_period, sig.slow_period)
    if sig.type == "breakout":
        return IntradayBreakoutSignal(sig.session_start, sig.session_end, config.data.timezone)
    raise ConfigurationError(f"Unknown signal type: {sig.type!r}")
