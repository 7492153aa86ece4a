"""Nanosecond timestamp conversion for rendered query results."""
from __future__ import annotations
from typing import Any, Dict, Union
import pandas as pd

from influxcli.core.session import Precision

NS_PER_SECOND = 1_000_000_000

# Nanoseconds per unit for the epoch precisions
DIVISORS: Dict[Precision, int] = {
    Precision.H: 3600 * NS_PER_SECOND,
    Precision.M: 60 * NS_PER_SECOND,
    Precision.S: NS_PER_SECOND,
    Precision.MS: 1_000_000,
    Precision.U: 1_000,
    Precision.NS: 1,
}


def format_rfc3339(ns: int) -> str:
    """Render epoch nanoseconds as RFC3339 UTC, trailing fractional zeros trimmed."""
    seconds, frac = divmod(int(ns), NS_PER_SECOND)
    base = pd.Timestamp(seconds, unit='s', tz='UTC').strftime('%Y-%m-%dT%H:%M:%S')
    if frac:
        base += '.' + f"{frac:09d}".rstrip('0')
    return base + 'Z'


def parse_rfc3339(text: str) -> int:
    """Inverse of format_rfc3339: RFC3339 text -> epoch nanoseconds."""
    ts = pd.Timestamp(text)
    if ts.tzinfo is None:
        ts = ts.tz_localize('UTC')
    return int(ts.value)


def convert_timestamp(value: Any, precision: Union[Precision, str]) -> Any:
    """Convert a nanosecond epoch value to the requested precision.

    Non-integer values (already formatted strings, nulls) pass through.
    """
    precision = Precision.parse(precision)
    if isinstance(value, bool) or not isinstance(value, int):
        return value
    if precision is Precision.RFC3339:
        return format_rfc3339(value)
    return value // DIVISORS[precision]


def to_nanoseconds(value: Any, precision: Union[Precision, str]) -> int:
    """Reconstruct epoch nanoseconds from a converted value (lossy below the precision)."""
    precision = Precision.parse(precision)
    if precision is Precision.RFC3339:
        return parse_rfc3339(value)
    return int(value) * DIVISORS[precision]
