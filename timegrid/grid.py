import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Optional

from .config import DWELL_MS
from .errors import InvalidTransition, NotFoundError, ValidationError
from .gateway import Gateway
from .models import Category, TimeLog
from .selection import ClearRequest, Commit, Selection, SelectionMachine, State
from .slots import format_slot_time, resolve_slots, slot_index

logger = logging.getLogger(__name__)


class DwellTimer:
    """Cancellable deferred call used for long-press detection.

    Armed on press, cancelled on release, on a competing interaction and on
    teardown. Runs on the asyncio loop of whoever arms it.
    """

    def __init__(self, delay_ms: int = DWELL_MS, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.delay = delay_ms / 1000
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, callback: Callable[[], None]) -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire, callback)

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class GridSession:
    """One day's grid as the user sees it: slots, categories and the live selection.

    Loads are numbered. Starting a load invalidates the selection, and a load
    that finishes after a newer one has started is thrown away.
    """

    def __init__(
        self,
        day: date,
        timer: Optional[DwellTimer] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.day = day
        self.timer = timer
        self.clock = clock
        self.categories: list[Category] = []
        self.machine = SelectionMachine(day, resolve_slots(day, [], []))
        self.loading = False
        self.loaded = False
        self._generation = 0

    @property
    def state(self) -> State:
        return self.machine.state

    @property
    def slots(self):
        return self.machine.slots

    @property
    def selection(self) -> Selection:
        return self.machine.selection

    def _cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()

    def _ensure_ready(self) -> None:
        if self.loading or not self.loaded:
            raise InvalidTransition("Grid is still loading")

    # Loading

    def begin_load(self) -> int:
        self._generation += 1
        self.loading = True
        self._cancel_timer()
        self.machine.reload(self.machine.slots)
        return self._generation

    def complete_load(self, token: int, logs: list[TimeLog], categories: list[Category]) -> bool:
        if token != self._generation:
            logger.debug("Discarding stale load %d for %s (current %d)", token, self.day, self._generation)
            return False
        self.categories = list(categories)
        self.machine.reload(resolve_slots(self.day, logs, self.categories))
        self.loading = False
        self.loaded = True
        return True

    def fail_load(self, token: int) -> None:
        if token == self._generation:
            self.loading = False

    def load(self, gateway: Gateway) -> bool:
        token = self.begin_load()
        try:
            logs = gateway.list_logs_for_date(self.day)
            categories = gateway.list_categories()
        except Exception:
            self.fail_load(token)
            raise
        return self.complete_load(token, logs, categories)

    # Interaction

    def press(self, index: int) -> Optional[ClearRequest]:
        self._ensure_ready()
        self._cancel_timer()
        request = self.machine.press(index)
        if request is None and self.timer is not None:
            self.timer.arm(self._dwell_fired)
        return request

    def _dwell_fired(self) -> None:
        if self.machine.state is State.SINGLE_ARMED:
            self.machine.dwell_elapsed()

    def dwell_elapsed(self, index: Optional[int] = None) -> None:
        self._ensure_ready()
        self._cancel_timer()
        if index is None and self.machine.state is State.RANGE_DRAGGING:
            # The armed timer already fired for this press
            return
        self.machine.dwell_elapsed(index)

    def move(self, index: int) -> None:
        self.machine.move(index)
        if self.machine.state is State.IDLE:
            self._cancel_timer()

    def release(self) -> Selection:
        self._cancel_timer()
        selection = self.machine.release()
        if self.machine.state is State.PENDING_COMMIT and not self.categories:
            self.machine.dismiss()
            raise ValidationError("Create a category first")
        return selection

    def tap(self, index: int) -> Optional[ClearRequest]:
        request = self.press(index)
        if request is None:
            self.release()
        return request

    def dismiss(self) -> None:
        self._cancel_timer()
        self.machine.dismiss()

    def choose(self, gateway: Gateway, category_id: int) -> Commit:
        """Persist the pending selection under ``category_id`` and reload.

        The selection is consumed before the write, so a failed write leaves
        the session idle and the stored data untouched. A category removed
        elsewhere is reported as NotFoundError after the session reloads.
        """
        commit = self.machine.choose(category_id)
        try:
            gateway.assign_slots(commit.day, commit.times, commit.category_id)
        except NotFoundError:
            logger.info("Category %s already removed, reloading %s", category_id, self.day)
            self.load(gateway)
            raise
        self.load(gateway)
        return commit

    def confirm_clear(self, gateway: Gateway, request: ClearRequest) -> None:
        if request.day != self.day:
            raise ValidationError(f"Clear request for {request.day} does not belong to {self.day}")
        gateway.clear_slot(request.day, request.time)
        self.load(gateway)

    def current_slot_index(self, now: Optional[datetime] = None) -> Optional[int]:
        now = now or self.clock()
        if now.date() != self.day:
            return None
        return slot_index(now.time())

    def teardown(self) -> None:
        self._cancel_timer()
        self.machine.dismiss()

    def snapshot(self) -> dict:
        selected = set(self.machine.selected_indices)
        return {
            "day": self.day.isoformat(),
            "state": self.machine.state.value,
            "loading": self.loading,
            "anchor": self.machine.anchor,
            "selection": [t.strftime("%H:%M") for t in self.selection.times],
            "current_slot": self.current_slot_index(),
            "slots": [
                {
                    "index": i,
                    "time": slot.time.strftime("%H:%M"),
                    "label": format_slot_time(slot.time),
                    "category_id": slot.category.id if slot.category else None,
                    "category_name": slot.category.name if slot.category else None,
                    "color": slot.category.color if slot.category else None,
                    "selected": i in selected,
                }
                for i, slot in enumerate(self.machine.slots)
            ],
        }
