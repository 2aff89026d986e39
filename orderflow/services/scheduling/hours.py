"""
Opening Hours

Pure functions answering "is the restaurant open at instant T?" and
"when does it open next after T?" for a weekly schedule of the form::

    {"mon": {"open": "11:00", "close": "22:00"},
     "fri": {"open": "22:00", "close": "02:00"},   # crosses midnight
     "sun": None}                                   # closed

A missing day, an empty open/close value or a malformed time string all
mean "closed that day". None of these functions raise for bad schedule data
because they gate what the customer is allowed to order.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Mapping, Optional

# datetime.weekday() order
WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

# Termination guard for next_opening_after
MAX_LOOKAHEAD_DAYS = 7

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

OpeningHours = Mapping[str, Any]


@dataclass(frozen=True)
class OpeningWindow:
    """Opening window of a single calendar day."""
    open: time
    close: time

    @property
    def overnight(self) -> bool:
        """The window runs past midnight into the next calendar day."""
        return self.close < self.open

    def contains(self, moment: time) -> bool:
        if self.overnight:
            return moment >= self.open or moment < self.close
        return self.open <= moment < self.close


def parse_clock(value: Any) -> Optional[time]:
    """Parse an ``HH:MM`` string; anything else yields None."""
    if not isinstance(value, str):
        return None
    match = _CLOCK_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def weekday_key(day: date) -> str:
    return WEEKDAY_KEYS[day.weekday()]


def window_for(hours: Optional[OpeningHours], day: date) -> Optional[OpeningWindow]:
    """Opening window configured for ``day`` or None when closed."""
    if not isinstance(hours, Mapping):
        return None
    entry = hours.get(weekday_key(day))
    if not isinstance(entry, Mapping):
        return None
    opens = parse_clock(entry.get("open"))
    closes = parse_clock(entry.get("close"))
    if opens is None or closes is None:
        return None
    return OpeningWindow(open=opens, close=closes)


def to_local(instant: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Express ``instant`` in the restaurant's wall-clock time.

    Naive datetimes are taken as already local. Without ``tz`` the instant
    is used as given.
    """
    if tz is None:
        return instant
    if instant.tzinfo is None:
        return instant.replace(tzinfo=tz)
    return instant.astimezone(tz)


def is_open_at(
    instant: datetime,
    hours: Optional[OpeningHours],
    tz: Optional[tzinfo] = None,
) -> bool:
    """
    Check whether ``instant`` falls inside the opening hours.

    The window of the instant's own local weekday is used. When that window
    crosses midnight (close earlier than open) the instant is open if its
    time of day is at or after ``open`` or before ``close``.
    """
    local = to_local(instant, tz)
    window = window_for(hours, local.date())
    if window is None:
        return False
    return window.contains(local.time().replace(second=0, microsecond=0))


def next_opening_after(
    instant: datetime,
    hours: Optional[OpeningHours],
    tz: Optional[tzinfo] = None,
) -> Optional[datetime]:
    """
    Find the next opening instant strictly after ``instant``.

    Scans at most ``MAX_LOOKAHEAD_DAYS`` days. Today's opening only counts
    when it lies after ``instant``; a later day's opening always counts.

    Returns:
        The opening instant in the same timezone as the local view of
        ``instant``, or None when no day within the scan opens.
    """
    local = to_local(instant, tz)

    for offset in range(MAX_LOOKAHEAD_DAYS):
        day = local.date() + timedelta(days=offset)
        window = window_for(hours, day)
        if window is None:
            continue

        opening = datetime.combine(day, window.open, tzinfo=local.tzinfo)
        if offset == 0 and opening <= local:
            continue
        return opening

    return None


def is_open_now(
    hours: Optional[OpeningHours],
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None,
) -> bool:
    """``is_open_at`` for the current moment."""
    current = now or datetime.now(tz)
    return is_open_at(current, hours, tz)
