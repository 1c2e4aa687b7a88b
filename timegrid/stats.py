import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Literal, Optional

from .errors import ValidationError
from .gateway import Gateway
from .slots import format_day

ViewMode = Literal["day", "week", "month"]
VIEW_MODES = ("day", "week", "month")

HOURS_PER_DAY = 24


@dataclass(frozen=True)
class CategoryHours:
    id: int
    name: Optional[str]
    color: Optional[str]
    hours: float


@dataclass
class StatsSummary:
    start: date
    end: date
    total_hours: float
    unlogged_hours: float
    per_category_hours: dict[int, float] = field(default_factory=dict)
    categories: list[CategoryHours] = field(default_factory=list)

    @property
    def logged_hours(self) -> float:
        return sum(self.per_category_hours.values())

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "total_hours": self.total_hours,
            "logged_hours": self.logged_hours,
            "unlogged_hours": self.unlogged_hours,
            "per_category_hours": self.per_category_hours,
            "categories": [
                {"id": c.id, "name": c.name, "color": c.color, "hours": c.hours}
                for c in self.categories
            ],
        }


def _check_mode(view_mode: str) -> None:
    if view_mode not in VIEW_MODES:
        raise ValidationError(f"Unknown view mode {view_mode!r}, expected one of {', '.join(VIEW_MODES)}")


def week_start(day: date) -> date:
    """Sunday of the week containing ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def view_range(day: date, view_mode: ViewMode) -> tuple[date, date]:
    _check_mode(view_mode)
    if view_mode == "day":
        return day, day
    if view_mode == "week":
        start = week_start(day)
        return start, start + timedelta(days=6)
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def shift_day(day: date, view_mode: ViewMode, steps: int = 1) -> date:
    """Move the dashboard anchor by whole periods (negative steps go back)."""
    _check_mode(view_mode)
    if view_mode == "day":
        return day + timedelta(days=steps)
    if view_mode == "week":
        return day + timedelta(weeks=steps)

    month_index = day.year * 12 + day.month - 1 + steps
    year, month = divmod(month_index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def range_label(start: date, end: date, view_mode: ViewMode) -> str:
    _check_mode(view_mode)
    if view_mode == "day":
        return format_day(start)
    if view_mode == "week":
        return f"{format_day(start)} - {format_day(end)}"
    return f"{start:%B} {start.year}"


def aggregate(gateway: Gateway, start: date, end: date) -> StatsSummary:
    """Hours per category over ``start``..``end`` inclusive.

    Rows without a category are skipped, so that time counts as unlogged.
    Unlogged time is clamped at zero.
    """
    rows = gateway.stats_for_range(start, end)
    total_hours = HOURS_PER_DAY * ((end - start).days + 1)

    per_category: dict[int, float] = {}
    info: dict[int, tuple[Optional[str], Optional[str]]] = {}
    for row in rows:
        if row.category_id is None:
            continue
        per_category[row.category_id] = per_category.get(row.category_id, 0.0) + row.hours
        info.setdefault(row.category_id, (row.category_name, row.category_color))

    categories = [
        CategoryHours(id=category_id, name=info[category_id][0], color=info[category_id][1], hours=hours)
        for category_id, hours in per_category.items()
    ]
    categories.sort(key=lambda c: (-c.hours, c.name or ""))

    logged = sum(per_category.values())
    return StatsSummary(
        start=start,
        end=end,
        total_hours=total_hours,
        unlogged_hours=max(0.0, total_hours - logged),
        per_category_hours=per_category,
        categories=categories,
    )


def aggregate_view(gateway: Gateway, day: date, view_mode: ViewMode) -> StatsSummary:
    start, end = view_range(day, view_mode)
    return aggregate(gateway, start, end)
