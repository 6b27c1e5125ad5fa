"""
Humanlike commit timestamps.

:func:`generate_spread_timestamps` spaces ``count`` commits over a time
window with irregular gaps, the way a developer commits during a
working session. Timestamps are timezone-aware local datetimes so git
records the right offset.
"""

from __future__ import annotations

import random
import re
from datetime import datetime, timedelta
from typing import List, Optional


MIN_GAP_SECONDS = 60
DEFAULT_START_HOUR = 9

_DURATION_UNITS = {"d": 86400, "h": 3600, "m": 60, "s": 1}
_DURATION = re.compile(r"^(\d+)\s*([dhms]?)$")
_START_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S")


def generate_spread_timestamps(
    count: int,
    start: datetime,
    duration_secs: int,
    rng: Optional[random.Random] = None,
) -> List[datetime]:
    """Return ``count`` non-decreasing timestamps starting at ``start``.

    Parameters
    ----------
    count : int
        Number of timestamps (one per planned commit).
    start : datetime
        The first timestamp.
    duration_secs : int
        Length of the window the timestamps should fit in.
    rng : random.Random, optional
        Source of randomness; pass a seeded instance for reproducible output.

    Notes
    -----
    Each gap is the average interval scaled by a factor in [0.5, 1.5),
    floored at one minute, plus 0-59 seconds of jitter. When the result
    overshoots the window every offset is scaled back proportionally.
    The one-minute floor means that a tiny window with many commits can
    still end slightly past ``duration_secs``; that case is left as is.
    """
    if count <= 0:
        return []
    if count == 1:
        return [start]
    rng = rng or random.Random()

    base_interval = duration_secs / count
    timestamps = [start]
    current = start
    for _ in range(count - 1):
        gap = int(base_interval * rng.uniform(0.5, 1.5))
        gap = max(gap, MIN_GAP_SECONDS) + rng.randrange(60)
        current = current + timedelta(seconds=gap)
        timestamps.append(current)

    elapsed = (timestamps[-1] - start).total_seconds()
    if elapsed > duration_secs:
        scale = duration_secs / elapsed
        timestamps = [start] + [
            start + timedelta(seconds=int((ts - start).total_seconds() * scale))
            for ts in timestamps[1:]
        ]
    return timestamps


def default_spread_duration(rng: Optional[random.Random] = None) -> int:
    """Return a random session length of 2, 3 or 4 hours, in seconds."""
    return (rng or random.Random()).choice((2, 3, 4)) * 3600


def parse_duration(text: str) -> int:
    """Parse ``"2h"``, ``"30m"``, ``"1d"``, ``"45s"`` or a bare number of hours.

    Raises
    ------
    ValueError
        If ``text`` is not a duration.
    """
    match = _DURATION.match(text.strip().lower())
    if not match:
        raise ValueError(f"Invalid duration: {text!r}. Use e.g. 2h, 30m, 1d")
    number, unit = match.groups()
    return int(number) * _DURATION_UNITS[unit or "h"]


def parse_start_time(text: str) -> datetime:
    """Parse ``YYYY-MM-DD HH:MM[:SS]`` or ``YYYY-MM-DD`` (09:00) as local time.

    Raises
    ------
    ValueError
        If ``text`` matches none of the accepted formats.
    """
    text = text.strip()
    for fmt in _START_FORMATS:
        try:
            return datetime.strptime(text, fmt).astimezone()
        except ValueError:
            continue
    try:
        day = datetime.strptime(text, "%Y-%m-%d")
    except ValueError:
        raise ValueError(f"Invalid datetime format: {text!r}. Use YYYY-MM-DD HH:MM") from None
    return day.replace(hour=DEFAULT_START_HOUR).astimezone()


def now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()
