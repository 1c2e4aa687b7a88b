import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Literal, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .config import DWELL_MS, SEED_DEFAULTS, configure_logging
from .database import SessionLocal, get_db, init_db
from .errors import (
    DuplicateNameError,
    InvalidTransition,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .export import build_workbook, workbook_filename
from .gateway import Gateway
from .grid import DwellTimer, GridSession
from .selection import ClearRequest
from .slots import format_slot_time, parse_slot_time, resolve_slots
from .stats import aggregate_view, range_label, shift_day, view_range

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    if SEED_DEFAULTS:
        db = SessionLocal()
        try:
            Gateway(db).seed_default_categories()
        finally:
            db.close()
    yield
    for grid in app.state.grids.values():
        grid.teardown()
    app.state.grids.clear()


app = FastAPI(title="Time Grid Tracker", lifespan=lifespan)

# Single user: one live grid session per day being edited
app.state.grids = {}


def get_today() -> date:
    return date.today()


def get_gateway(db: Session = Depends(get_db)) -> Gateway:
    return Gateway(db)


class CategoryIn(BaseModel):
    name: str
    color: str = "#3B82F6"


class AssignIn(BaseModel):
    slots: list[str] = Field(default_factory=list)
    category_id: int


class GridEvent(BaseModel):
    type: Literal["press", "dwell", "move", "release", "tap", "choose", "dismiss", "clear", "reload"]
    index: Optional[int] = None
    category_id: Optional[int] = None


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(DuplicateNameError)
async def duplicate_name_handler(request: Request, exc: DuplicateNameError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(
        status_code=500,
        content={"detail": "Storage failure, please try again", "operation": exc.operation},
    )


def category_to_dict(category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "created_at": category.created_at.isoformat() if category.created_at else None,
    }


def refresh_grids(gateway: Gateway) -> None:
    for grid in app.state.grids.values():
        grid.load(gateway)


def get_grid(day: date, gateway: Gateway) -> GridSession:
    grids = app.state.grids
    grid = grids.get(day)
    if grid is None:
        for other in grids.values():
            other.teardown()
        grids.clear()
        grid = GridSession(day, timer=DwellTimer(DWELL_MS))
        grid.load(gateway)
        grids[day] = grid
    return grid


@app.get("/categories")
async def list_categories(gateway: Gateway = Depends(get_gateway)):
    return [category_to_dict(c) for c in gateway.list_categories()]


@app.post("/categories", status_code=201)
async def create_category(body: CategoryIn, gateway: Gateway = Depends(get_gateway)):
    category_id = gateway.create_category(body.name, body.color)
    refresh_grids(gateway)
    return category_to_dict(gateway.get_category(category_id))


@app.put("/categories/{category_id}")
async def update_category(category_id: int, body: CategoryIn, gateway: Gateway = Depends(get_gateway)):
    gateway.update_category(category_id, body.name, body.color)
    refresh_grids(gateway)
    return category_to_dict(gateway.get_category(category_id))


@app.delete("/categories/{category_id}", status_code=204)
async def delete_category(category_id: int, gateway: Gateway = Depends(get_gateway)):
    gateway.delete_category(category_id)
    refresh_grids(gateway)


@app.get("/days/{day}/slots")
async def day_slots(day: date, gateway: Gateway = Depends(get_gateway)):
    slots = resolve_slots(day, gateway.list_logs_for_date(day), gateway.list_categories())
    return [
        {
            "time": slot.time.strftime("%H:%M"),
            "label": format_slot_time(slot.time),
            "category": category_to_dict(slot.category) if slot.category else None,
        }
        for slot in slots
    ]


@app.put("/days/{day}/slots")
async def assign_slots(day: date, body: AssignIn, gateway: Gateway = Depends(get_gateway)):
    times = [parse_slot_time(value) for value in body.slots]
    written = gateway.assign_slots(day, times, body.category_id)
    refresh_grids(gateway)
    return {"day": day.isoformat(), "written": written}


@app.delete("/days/{day}/slots/{slot_time}", status_code=204)
async def clear_slot(day: date, slot_time: str, gateway: Gateway = Depends(get_gateway)):
    gateway.clear_slot(day, parse_slot_time(slot_time))
    refresh_grids(gateway)


def _require_index(event: GridEvent) -> int:
    if event.index is None:
        raise ValidationError(f"Event {event.type!r} needs a slot index")
    return event.index


def _clear_request_to_dict(request: Optional[ClearRequest]) -> Optional[dict]:
    if request is None:
        return None
    return {
        "time": request.time.strftime("%H:%M"),
        "label": format_slot_time(request.time),
        "category": request.category.name,
    }


@app.get("/grid/{day}")
async def grid_state(day: date, gateway: Gateway = Depends(get_gateway)):
    return get_grid(day, gateway).snapshot()


@app.post("/grid/{day}/events")
async def grid_event(day: date, event: GridEvent, gateway: Gateway = Depends(get_gateway)):
    grid = get_grid(day, gateway)
    clear_request = None
    commit = None

    if event.type == "press":
        clear_request = grid.press(_require_index(event))
    elif event.type == "tap":
        clear_request = grid.tap(_require_index(event))
    elif event.type == "dwell":
        grid.dwell_elapsed(event.index)
    elif event.type == "move":
        grid.move(_require_index(event))
    elif event.type == "release":
        grid.release()
    elif event.type == "dismiss":
        grid.dismiss()
    elif event.type == "reload":
        grid.load(gateway)
    elif event.type == "choose":
        if event.category_id is None:
            raise ValidationError("Event 'choose' needs a category_id")
        commit = grid.choose(gateway, event.category_id)
    elif event.type == "clear":
        request = grid.machine.clear_request(_require_index(event))
        if request is None:
            raise ValidationError(f"Slot {event.index} is already empty")
        grid.confirm_clear(gateway, request)

    snapshot = grid.snapshot()
    snapshot["clear_request"] = _clear_request_to_dict(clear_request)
    snapshot["committed"] = len(commit.times) if commit else 0
    return snapshot


@app.get("/stats")
async def stats_view(
    day: Optional[date] = None,
    view: str = "day",
    gateway: Gateway = Depends(get_gateway),
):
    if day is None:
        day = get_today()

    summary = aggregate_view(gateway, day, view)
    result = summary.to_dict()
    result.update(
        {
            "view": view,
            "label": range_label(summary.start, summary.end, view),
            "previous": shift_day(day, view, -1).isoformat(),
            "next": shift_day(day, view, 1).isoformat(),
        }
    )
    return result


@app.get("/stats/rows")
async def stats_rows(
    start: Optional[date] = None,
    end: Optional[date] = None,
    gateway: Gateway = Depends(get_gateway),
):
    # A lone bound spans one week from it
    if start is None and end is None:
        start, end = view_range(get_today(), "week")
    elif end is None:
        end = start + timedelta(days=6)
    elif start is None:
        start = end - timedelta(days=6)
    if start > end:
        raise ValidationError(f"Range start {start} is after end {end}")
    return [
        {
            "date": row.date.isoformat(),
            "category_id": row.category_id,
            "category_name": row.category_name,
            "category_color": row.category_color,
            "hours": row.hours,
        }
        for row in gateway.stats_for_range(start, end)
    ]


@app.get("/export/json")
async def export_json(gateway: Gateway = Depends(get_gateway)):
    return gateway.export_data()


@app.get("/export/excel")
async def export_excel(
    start: Optional[date] = None,
    end: Optional[date] = None,
    gateway: Gateway = Depends(get_gateway),
):
    today = get_today()
    if end is None:
        end = today
    if start is None:
        start = end - timedelta(days=30)
    if start > end:
        raise ValidationError(f"Range start {start} is after end {end}")

    stream = build_workbook(gateway.logs_for_range(start, end))
    headers_resp = {
        "Content-Disposition": f'attachment; filename="{workbook_filename(start, end)}"'
    }
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers_resp,
    )


@app.delete("/data", status_code=204)
async def clear_all_data(gateway: Gateway = Depends(get_gateway)):
    gateway.clear_all_data()
    refresh_grids(gateway)
    logger.info("All data cleared at %s", datetime.now().isoformat(timespec="seconds"))
