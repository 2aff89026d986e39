"""
Fulfilment Slot Generation

Produces the pickup/delivery times offered to the customer: starting at
"now + preparation time" (or the next opening + preparation time when the
restaurant is closed but accepts pre-orders), rounded up to the next
5 minutes and walked forward in 15-minute steps, keeping only instants that
fall inside the opening hours.

The scan is bounded twice: at most ``scan_steps`` candidates (96 x 15 min =
24 hours) and at most ``max_slots`` accepted slots.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Iterator, Optional

from orderflow.models import OrderType
from orderflow.services.scheduling.hours import (
    OpeningHours,
    is_open_at,
    next_opening_after,
    to_local,
)

DEFAULT_INTERVAL_MINUTES = 15
DEFAULT_MAX_SLOTS = 20
DEFAULT_SCAN_STEPS = 96
DEFAULT_ROUNDING_MINUTES = 5


@dataclass(frozen=True)
class Slot:
    """A fulfilment time offered to the customer."""
    instant: datetime
    label: str
    is_earliest: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "value": self.instant.isoformat(),
            "label": self.label,
            "is_earliest": self.is_earliest,
        }


def ceil_to_minutes(moment: datetime, step_minutes: int) -> datetime:
    """
    Round ``moment`` up to the next multiple of ``step_minutes``.

    Seconds and microseconds are dropped; the result is never earlier than
    ``moment``.
    """
    floored = moment.replace(second=0, microsecond=0)
    if floored < moment:
        floored += timedelta(minutes=1)
    remainder = floored.minute % step_minutes
    if remainder:
        floored += timedelta(minutes=step_minutes - remainder)
    return floored


def slot_label(slot_time: datetime, today: datetime, earliest: bool) -> str:
    clock = slot_time.strftime("%H:%M")
    if earliest:
        return f"{clock} (earliest possible)"

    days_ahead = (slot_time.date() - today.date()).days
    if days_ahead <= 0:
        return clock
    if days_ahead == 1:
        return f"{clock} (tomorrow)"
    return f"{clock} ({slot_time.strftime('%a %d.%m.')})"


class SlotGenerator:
    """
    Lazy, finite and restartable sequence of fulfilment slots.

    Every iteration recomputes the slots from the stored inputs, so the same
    generator can be iterated any number of times with identical results.

    Example:
        >>> slots = SlotGenerator(
        ...     now=now,
        ...     preparation_minutes=30,
        ...     opening_hours={"mon": {"open": "11:00", "close": "22:00"}},
        ...     is_open=True,
        ... )
        >>> [slot.label for slot in slots][:2]
        ['12:05 (earliest possible)', '12:20']
    """

    def __init__(
        self,
        *,
        now: datetime,
        preparation_minutes: int,
        opening_hours: Optional[OpeningHours],
        is_open: Optional[bool] = None,
        accepts_preorders: bool = False,
        order_type: OrderType = OrderType.PICKUP,
        interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
        max_slots: int = DEFAULT_MAX_SLOTS,
        scan_steps: int = DEFAULT_SCAN_STEPS,
        rounding_minutes: int = DEFAULT_ROUNDING_MINUTES,
        tz: Optional[tzinfo] = None,
    ):
        self.now = to_local(now, tz)
        self.preparation = timedelta(minutes=max(preparation_minutes, 0))
        self.opening_hours = opening_hours
        self.is_open = (
            is_open_at(self.now, opening_hours, tz) if is_open is None else is_open
        )
        self.accepts_preorders = accepts_preorders
        self.order_type = order_type
        self.interval = timedelta(minutes=interval_minutes)
        self.max_slots = max_slots
        self.scan_steps = scan_steps
        self.rounding_minutes = rounding_minutes
        self.tz = tz

    def earliest_start(self) -> Optional[datetime]:
        """
        First candidate instant before the opening-hours filter.

        Returns None when the restaurant is closed and takes no pre-orders.
        """
        earliest = self.now + self.preparation

        if not self.is_open:
            if not self.accepts_preorders:
                return None
            next_opening = next_opening_after(self.now, self.opening_hours, self.tz)
            if next_opening is not None:
                earliest = max(earliest, next_opening + self.preparation)

        return ceil_to_minutes(earliest, self.rounding_minutes)

    def __iter__(self) -> Iterator[Slot]:
        start = self.earliest_start()
        if start is None:
            return

        accepted = 0
        for step in range(self.scan_steps):
            candidate = start + step * self.interval
            if self.tz is not None:
                candidate = candidate.astimezone(self.tz)
            if not is_open_at(candidate, self.opening_hours, self.tz):
                continue

            yield Slot(
                instant=candidate,
                label=slot_label(candidate, self.now, earliest=accepted == 0),
                is_earliest=accepted == 0,
            )
            accepted += 1
            if accepted >= self.max_slots:
                return

    def first(self) -> Optional[Slot]:
        return next(iter(self), None)

    def is_empty(self) -> bool:
        return self.first() is None


def generate_slots(**kwargs) -> list[Slot]:
    """Materialize a SlotGenerator into a list."""
    return list(SlotGenerator(**kwargs))
