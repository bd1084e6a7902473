"""
Timezone, trading day and blackout window utilities.

This module centralises all timezone handling.  The engine uses these
helpers to determine when a new trading day begins, whether a tick
falls inside the weekly blackout window and whether a bar falls within
the permitted trading session.
"""

from __future__ import annotations

from datetime import date, time
import pandas as pd


WEEKDAY_NUMBERS = {
    'monday': 0,
    'tuesday': 1,
    'wednesday': 2,
    'thursday': 3,
    'friday': 4,
    'saturday': 5,
    'sunday': 6,
}


def parse_time_str(ts: str) -> time:
    """Parse a `HH:MM` string into a `datetime.time` object.

    Parameters
    ----------
    ts : str
        A string in 24‑hour format such as ``"06:30"``.

    Returns
    -------
    datetime.time
        The corresponding time.
    """
    hour, minute = map(int, ts.split(":"))
    return time(hour=hour, minute=minute)


def to_timezone(ts: pd.Timestamp, tz_name: str) -> pd.Timestamp:
    """Convert a `pandas.Timestamp` to the specified timezone.

    If the timestamp is naive, it is assumed to be in UTC before
    conversion.  If it already has a timezone, it will be converted.
    """
    if not isinstance(ts, pd.Timestamp):
        ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(tz_name)


def trading_day(ts: pd.Timestamp, tz_name: str) -> date:
    """Calendar date of `ts` in the platform timezone."""
    return to_timezone(ts, tz_name).date()


def is_in_session(ts: pd.Timestamp, session_start: time, session_end: time, tz_name: str) -> bool:
    """Check whether `ts` is within the trading session.

    The timestamp is converted to the given timezone and its time
    component is compared to the start and end times.  The end time
    is exclusive: the bar whose close time equals the session end is
    considered outside the session.
    """
    local_ts = to_timezone(ts, tz_name)
    current_time = local_ts.time()
    return session_start <= current_time < session_end


def is_blackout(ts: pd.Timestamp, weekday: str, start: time, tz_name: str) -> bool:
    """Return `True` from `start` until midnight on the blackout weekday."""
    local_ts = to_timezone(ts, tz_name)
    return local_ts.weekday() == WEEKDAY_NUMBERS[weekday.lower()] and local_ts.time() >= start
