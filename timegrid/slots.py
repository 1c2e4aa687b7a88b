"""Fixed quarter-hour structure of a day and slot/category lookup."""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, Optional

from .errors import ValidationError
from .models import Category, TimeLog

SLOT_MINUTES = 15
SLOTS_PER_DAY = 24 * 60 // SLOT_MINUTES
SLOT_HOURS = SLOT_MINUTES / 60


@dataclass(frozen=True)
class TimeSlot:
    time: time
    category: Optional[Category] = None

    @property
    def is_empty(self) -> bool:
        return self.category is None


def generate_slots() -> list[time]:
    slots = []
    for hour in range(24):
        for minute in range(0, 60, SLOT_MINUTES):
            slots.append(time(hour, minute))
    return slots


def slot_end(start: time) -> time:
    """Return start + 15 minutes. Minutes carry into the hour; 23:45 ends at 00:00."""
    minutes = start.minute + SLOT_MINUTES
    hour = start.hour + minutes // 60
    return time(hour % 24, minutes % 60)


def slot_index(value: time) -> int:
    return (value.hour * 60 + value.minute) // SLOT_MINUTES


def is_slot_start(value: time) -> bool:
    return value.minute % SLOT_MINUTES == 0 and value.second == 0 and value.microsecond == 0


def resolve_slots(
    day: date,
    logs: Iterable[TimeLog],
    categories: Iterable[Category],
) -> list[TimeSlot]:
    """Join the fixed slot sequence against one day's logs.

    A slot without a log, or whose log points at a category that no longer
    exists, resolves to an empty slot.
    """
    by_id = {category.id: category for category in categories}
    by_start = {log.start_time: log for log in logs if log.date == day}

    slots = []
    for start in generate_slots():
        log = by_start.get(start)
        category = by_id.get(log.category_id) if log is not None else None
        slots.append(TimeSlot(time=start, category=category))
    return slots


def parse_slot_time(value: str) -> time:
    try:
        parsed = datetime.strptime(value, "%H:%M").time()
    except (TypeError, ValueError):
        raise ValidationError(f"Malformed time {value!r}, expected HH:MM")
    if not is_slot_start(parsed):
        raise ValidationError(f"Time {value!r} is not on a {SLOT_MINUTES}-minute boundary")
    return parsed


def format_slot_time(value: time) -> str:
    period = "PM" if value.hour >= 12 else "AM"
    hours = value.hour % 12 or 12
    return f"{hours}:{value.minute:02d} {period}"


def format_day(value: date) -> str:
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"
