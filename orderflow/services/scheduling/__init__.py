"""
Scheduling: opening hours and fulfilment slots.

Usage:
    from orderflow.services.scheduling import SlotGenerator, is_open_at

    if is_open_at(now, restaurant.opening_hours, tz):
        ...
"""

from orderflow.services.scheduling.hours import (
    MAX_LOOKAHEAD_DAYS,
    WEEKDAY_KEYS,
    OpeningWindow,
    is_open_at,
    is_open_now,
    next_opening_after,
    parse_clock,
    window_for,
)
from orderflow.services.scheduling.slots import (
    Slot,
    SlotGenerator,
    ceil_to_minutes,
    generate_slots,
)

__all__ = [
    "MAX_LOOKAHEAD_DAYS",
    "WEEKDAY_KEYS",
    "OpeningWindow",
    "is_open_at",
    "is_open_now",
    "next_opening_after",
    "parse_clock",
    "window_for",
    "Slot",
    "SlotGenerator",
    "ceil_to_minutes",
    "generate_slots",
]
