"""
MetaTrader 5 data feed.

This module wraps the `MetaTrader5` Python package to fetch the latest
quote and the recent bar history for paper and live trading.  If the
package is not installed or initialisation fails, the code raises a
clear exception.
"""

from __future__ import annotations

from typing import Optional
import pandas as pd

from ..config.schema import MT5Config
from ..execution.models import Tick

# Attempt to import MetaTrader5.  If unavailable, mt5 will be None.
try:
    import MetaTrader5 as mt5  # type: ignore
except ImportError:
    mt5 = None  # Will be checked at runtime


def require_mt5():
    """Return the MetaTrader5 module or fail with an installation hint."""
    if mt5 is None:
        raise RuntimeError(
            "MetaTrader5 package is not installed.  Install it with 'pip install MetaTrader5' to use paper or live trading."
        )
    return mt5


class MT5DataFeed:
    """Handle connection to MetaTrader 5 and retrieval of quotes and bars."""

    def __init__(self, config: MT5Config, timezone: str, timeframe: str = "M1") -> None:
        self.config = config
        self.timezone = timezone
        self.timeframe = timeframe
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Initialise the MetaTrader 5 terminal.

        Raises
        ------
        RuntimeError
            If the MetaTrader5 package is not installed or initialisation fails.
        """
        api = require_mt5()
        if not api.initialize(path=self.config.path, login=self.config.login, password=self.config.password, server=self.config.server):
            raise RuntimeError(f"MT5 initialisation failed: {api.last_error()}")
        self._connected = True

    def shutdown(self) -> None:
        """Shutdown the MT5 connection if it was opened."""
        if mt5 and self._connected:
            mt5.shutdown()
            self._connected = False

    def _get_mt5_timeframe(self) -> int:
        """Map a timeframe string to the MetaTrader5 timeframe constant."""
        api = require_mt5()
        timeframe_map = {
            'M1': api.TIMEFRAME_M1,
            'M5': api.TIMEFRAME_M5,
            'M15': api.TIMEFRAME_M15,
            'M30': api.TIMEFRAME_M30,
            'H1': api.TIMEFRAME_H1,
            'H4': api.TIMEFRAME_H4,
            'D1': api.TIMEFRAME_D1,
        }
        tf = timeframe_map.get(self.timeframe.upper())
        if tf is None:
            raise ValueError(f"Unsupported timeframe for MT5: {self.timeframe}")
        return tf

    def _require_connection(self) -> None:
        if not self._connected:
            raise RuntimeError("MT5DataFeed is not connected.  Call connect() before requesting data.")

    def get_tick(self, symbol: str) -> Optional[Tick]:
        """Latest quote for `symbol`, or `None` if the terminal has none."""
        self._require_connection()
        info = mt5.symbol_info_tick(symbol)
        if info is None or not info.bid or not info.ask:
            return None
        ts = pd.Timestamp(info.time_msc, unit='ms', tz='UTC').tz_convert(self.timezone)
        return Tick(time=ts, bid=float(info.bid), ask=float(info.ask))

    def get_bars(self, symbol: str, count: int) -> pd.DataFrame:
        """Retrieve the last `count` completed bars.

        Returns
        -------
        pandas.DataFrame
            DataFrame with columns ``open``, ``high``, ``low``, ``close`` and
            an index of timezone‑aware ``Timestamp`` in the configured
            timezone.  Empty when the terminal returns no data.
        """
        self._require_connection()
        tf = self._get_mt5_timeframe()
        # Position 0 is the bar still forming; start from the last closed one.
        rates = mt5.copy_rates_from_pos(symbol, tf, 1, count)
        if rates is None or len(rates) == 0:
            return pd.DataFrame()
        df = pd.DataFrame(rates)
        df['time'] = pd.to_datetime(df['time'], unit='s', utc=True)
        df = df.set_index('time').sort_index()
        # Convert to configured timezone
        df.index = df.index.tz_convert(self.timezone)
        return df[['open', 'high', 'low', 'close']]
