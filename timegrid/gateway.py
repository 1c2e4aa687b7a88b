import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import DuplicateNameError, NotFoundError, PersistenceError, ValidationError
from .models import Category, TimeLog
from .slots import SLOT_HOURS, is_slot_start, slot_end

logger = logging.getLogger(__name__)

COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

EXPORT_VERSION = "1.0"

DEFAULT_CATEGORIES = [
    ("Work", "#3B82F6"),
    ("Study", "#10B981"),
    ("Leisure", "#F59E0B"),
    ("Sleep", "#6366F1"),
    ("Exercise", "#EF4444"),
    ("Other", "#6B7280"),
]


@dataclass(frozen=True)
class StatRow:
    date: date
    category_id: Optional[int]
    category_name: Optional[str]
    category_color: Optional[str]
    hours: float


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name must not be empty")
    return name


def _check_color(color: str) -> str:
    if not color or not COLOR_RE.match(color):
        raise ValidationError(f"Color {color!r} is not an #RRGGBB value")
    return color


class Gateway:
    """Reads and writes categories and time logs through one explicit session.

    Every write is a single transaction: it either commits completely or is
    rolled back and reported as PersistenceError.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _transaction(self, operation: str):
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Storage operation %s failed", operation)
            raise PersistenceError(operation, exc) from exc
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def _read(self, operation: str):
        try:
            yield self.db
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Storage operation %s failed", operation)
            raise PersistenceError(operation, exc) from exc

    # Categories

    def list_categories(self) -> list[Category]:
        with self._read("list_categories"):
            return list(self.db.execute(select(Category).order_by(Category.name)).scalars().all())

    def get_category(self, category_id: int) -> Category:
        with self._read("get_category"):
            category = self.db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def _name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        query = select(Category.id).where(Category.name == name)
        if exclude_id is not None:
            query = query.where(Category.id != exclude_id)
        return self.db.execute(query).first() is not None

    def create_category(self, name: str, color: str) -> int:
        name = _clean_name(name)
        color = _check_color(color)

        with self._read("create_category"):
            if self._name_taken(name):
                raise DuplicateNameError(name)

        category = Category(name=name, color=color)
        try:
            with self._transaction("create_category"):
                self.db.add(category)
                self.db.flush()
        except PersistenceError as exc:
            if isinstance(exc.cause, IntegrityError):
                raise DuplicateNameError(name) from exc
            raise
        logger.info("Created category %s (%s)", category.id, name)
        return category.id

    def update_category(self, category_id: int, name: str, color: str) -> None:
        name = _clean_name(name)
        color = _check_color(color)

        try:
            with self._transaction("update_category"):
                category = self.db.get(Category, category_id)
                if category is None:
                    raise NotFoundError("Category", category_id)
                if self._name_taken(name, exclude_id=category_id):
                    raise DuplicateNameError(name)
                category.name = name
                category.color = color
        except PersistenceError as exc:
            if isinstance(exc.cause, IntegrityError):
                raise DuplicateNameError(name) from exc
            raise
        logger.info("Updated category %s (%s, %s)", category_id, name, color)

    def delete_category(self, category_id: int) -> None:
        with self._transaction("delete_category"):
            if self.db.get(Category, category_id) is None:
                raise NotFoundError("Category", category_id)
            self.db.execute(
                update(TimeLog)
                .where(TimeLog.category_id == category_id)
                .values(category_id=None)
            )
            self.db.execute(delete(Category).where(Category.id == category_id))
        logger.info("Deleted category %s", category_id)

    def seed_default_categories(self) -> int:
        with self._read("seed_default_categories"):
            existing = self.db.execute(select(func.count(Category.id))).scalar_one()
        if existing:
            return 0
        with self._transaction("seed_default_categories"):
            for name, color in DEFAULT_CATEGORIES:
                self.db.add(Category(name=name, color=color))
        logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))
        return len(DEFAULT_CATEGORIES)

    # Time logs

    def list_logs_for_date(self, day: date) -> list[TimeLog]:
        with self._read("list_logs_for_date"):
            return list(
                self.db.execute(
                    select(TimeLog).where(TimeLog.date == day).order_by(TimeLog.start_time)
                )
                .scalars()
                .all()
            )

    def assign_slots(self, day: date, slot_times: Iterable[time], category_id: int) -> int:
        """Overwrite every given slot of ``day`` with ``category_id``.

        Existing rows for the same (date, start_time) are replaced. Either all
        slots are written or none are.
        """
        starts = sorted(set(slot_times))
        for start in starts:
            if not is_slot_start(start):
                raise ValidationError(f"{start} is not the start of a slot")
        if not starts:
            return 0

        rows = [
            {"date": day, "start_time": start, "end_time": slot_end(start), "category_id": category_id}
            for start in starts
        ]
        with self._transaction("assign_slots"):
            if self.db.get(Category, category_id) is None:
                raise NotFoundError("Category", category_id)
            stmt = sqlite_insert(TimeLog).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=["date", "start_time"],
                set_={
                    "end_time": stmt.excluded.end_time,
                    "category_id": stmt.excluded.category_id,
                },
            )
            self.db.execute(stmt)
        logger.info("Assigned %d slot(s) on %s to category %s", len(rows), day, category_id)
        return len(rows)

    def clear_slot(self, day: date, slot_time: time) -> bool:
        with self._transaction("clear_slot"):
            result = self.db.execute(
                delete(TimeLog).where(TimeLog.date == day, TimeLog.start_time == slot_time)
            )
        removed = bool(result.rowcount)
        if removed:
            logger.info("Cleared slot %s %s", day, slot_time)
        return removed

    def logs_for_range(self, start: date, end: date) -> list[tuple[TimeLog, Optional[Category]]]:
        with self._read("logs_for_range"):
            return [
                (log, category)
                for log, category in self.db.execute(
                    select(TimeLog, Category)
                    .outerjoin(Category, TimeLog.category_id == Category.id)
                    .where(TimeLog.date >= start, TimeLog.date <= end)
                    .order_by(TimeLog.date, TimeLog.start_time)
                ).all()
            ]

    # Stats

    def stats_for_range(self, start: date, end: date) -> list[StatRow]:
        if start > end:
            raise ValidationError(f"Range start {start} is after end {end}")

        with self._read("stats_for_range"):
            rows = self.db.execute(
                select(
                    TimeLog.date,
                    Category.id,
                    Category.name,
                    Category.color,
                    func.count(TimeLog.id),
                )
                .select_from(TimeLog)
                .outerjoin(Category, TimeLog.category_id == Category.id)
                .where(TimeLog.date >= start, TimeLog.date <= end)
                .group_by(TimeLog.date, Category.id, Category.name, Category.color)
                .order_by(TimeLog.date, Category.name)
            ).all()

        return [
            StatRow(
                date=day,
                category_id=category_id,
                category_name=name,
                category_color=color,
                hours=count * SLOT_HOURS,
            )
            for day, category_id, name, color, count in rows
        ]

    # Settings

    def export_data(self) -> dict:
        with self._read("export_data"):
            categories = self.db.execute(select(Category).order_by(Category.id)).scalars().all()
            logs = (
                self.db.execute(select(TimeLog).order_by(TimeLog.date, TimeLog.start_time))
                .scalars()
                .all()
            )
            return {
                "categories": [
                    {
                        "id": category.id,
                        "name": category.name,
                        "color": category.color,
                        "created_at": category.created_at.isoformat(),
                    }
                    for category in categories
                ],
                "time_logs": [
                    {
                        "id": log.id,
                        "date": log.date.isoformat(),
                        "start_time": log.start_time.strftime("%H:%M"),
                        "end_time": log.end_time.strftime("%H:%M"),
                        "category_id": log.category_id,
                    }
                    for log in logs
                ],
                "export_date": datetime.now().isoformat(),
                "version": EXPORT_VERSION,
            }

    def clear_all_data(self) -> None:
        with self._transaction("clear_all_data"):
            self.db.execute(delete(TimeLog))
            self.db.execute(delete(Category))
        logger.info("Cleared all time logs and categories")
