from datetime import date
from io import BytesIO
from typing import Optional

import openpyxl
from openpyxl.utils import get_column_letter

from .models import Category, TimeLog
from .slots import SLOT_HOURS

HEADERS = ["Date", "Start", "End", "Category", "Hours"]

UNCATEGORIZED = "Uncategorized"


def build_workbook(rows: list[tuple[TimeLog, Optional[Category]]]) -> BytesIO:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Time logs"
    ws.append(HEADERS)

    for log, category in rows:
        ws.append(
            [
                log.date.isoformat(),
                log.start_time.strftime("%H:%M"),
                log.end_time.strftime("%H:%M"),
                category.name if category else UNCATEGORIZED,
                SLOT_HOURS,
            ]
        )

    for col in range(1, len(HEADERS) + 1):
        ws.column_dimensions[get_column_letter(col)].auto_size = True

    stream = BytesIO()
    wb.save(stream)
    stream.seek(0)
    return stream


def workbook_filename(start: date, end: date) -> str:
    return f"time_logs_{start.isoformat()}_{end.isoformat()}.xlsx"
