"""Turns tap / long-press / drag input on the day grid into a slot selection.

The machine is framework-free: whatever delivers pointer input translates it
into the calls below. It never touches storage. Leaving PENDING_COMMIT through
``choose`` hands back a :class:`Commit` for the caller to persist.

States::

    IDLE --press(empty)--> SINGLE_ARMED --dwell--> RANGE_DRAGGING
    SINGLE_ARMED --release--> PENDING_COMMIT (singleton)
    RANGE_DRAGGING --release--> PENDING_COMMIT, or IDLE when nothing is selected
    PENDING_COMMIT --choose / dismiss--> IDLE

``reload`` from any state drops the in-flight selection and returns to IDLE.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional, Sequence

from .errors import InvalidTransition
from .models import Category
from .slots import TimeSlot

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = "idle"
    SINGLE_ARMED = "single_armed"
    RANGE_DRAGGING = "range_dragging"
    PENDING_COMMIT = "pending_commit"


@dataclass(frozen=True)
class Selection:
    day: date
    times: tuple[time, ...] = ()

    def __len__(self) -> int:
        return len(self.times)

    def __contains__(self, value: time) -> bool:
        return value in self.times


@dataclass(frozen=True)
class Commit:
    day: date
    times: tuple[time, ...]
    category_id: int


@dataclass(frozen=True)
class ClearRequest:
    """Press on an occupied slot: the caller confirms, then clears the slot."""

    day: date
    time: time
    category: Category


class SelectionMachine:
    def __init__(self, day: date, slots: Sequence[TimeSlot]):
        self.day = day
        self._slots = list(slots)
        self.state = State.IDLE
        self._armed_index: Optional[int] = None
        self._anchor: Optional[int] = None
        self._indices: list[int] = []

    @property
    def slots(self) -> list[TimeSlot]:
        return list(self._slots)

    @property
    def anchor(self) -> Optional[int]:
        return self._anchor

    @property
    def armed_index(self) -> Optional[int]:
        return self._armed_index

    @property
    def selection(self) -> Selection:
        return Selection(self.day, tuple(self._slots[i].time for i in self._indices))

    @property
    def selected_indices(self) -> list[int]:
        return list(self._indices)

    def _clamp(self, index: int) -> int:
        return max(0, min(index, len(self._slots) - 1))

    def _check_index(self, index: int) -> int:
        if not 0 <= index < len(self._slots):
            raise InvalidTransition(f"Slot index {index} is outside the day")
        return index

    def _enter(self, state: State) -> None:
        if state is not self.state:
            logger.debug("Selection %s: %s -> %s", self.day, self.state.value, state.value)
        self.state = state

    def _reset(self) -> None:
        self._armed_index = None
        self._anchor = None
        self._indices = []
        self._enter(State.IDLE)

    def clear_request(self, index: int) -> Optional[ClearRequest]:
        slot = self._slots[self._check_index(index)]
        if slot.category is None:
            return None
        return ClearRequest(self.day, slot.time, slot.category)

    # Pointer input

    def press(self, index: int) -> Optional[ClearRequest]:
        """Pointer down on a slot.

        An empty slot is armed for a tap or a long press. An occupied slot is
        never selected; a ClearRequest is returned and the machine stays idle.
        """
        if self.state is not State.IDLE:
            raise InvalidTransition(f"Cannot press while {self.state.value}")
        self._check_index(index)
        request = self.clear_request(index)
        if request is not None:
            return request
        self._armed_index = index
        self._enter(State.SINGLE_ARMED)
        return None

    def dwell_elapsed(self, index: Optional[int] = None) -> None:
        """The press lasted past the long-press threshold: start a range drag.

        From SINGLE_ARMED the armed slot becomes the anchor. From IDLE the
        caller names the pressed slot.
        """
        if self.state is State.SINGLE_ARMED:
            anchor = self._armed_index
        elif self.state is State.IDLE and index is not None:
            anchor = self._check_index(index)
            if self.clear_request(anchor) is not None:
                raise InvalidTransition(f"Slot {anchor} is occupied")
        else:
            raise InvalidTransition(f"Cannot start a drag while {self.state.value}")

        self._armed_index = None
        self._anchor = anchor
        self._indices = [anchor]
        self._enter(State.RANGE_DRAGGING)

    def move(self, index: int) -> None:
        if self.state is State.SINGLE_ARMED:
            # Moving off the armed slot before the dwell fires is a scroll, not a tap
            if index != self._armed_index:
                self._reset()
            return
        if self.state is not State.RANGE_DRAGGING:
            return

        current = self._clamp(index)
        # Selection only extends forward in time from the anchor
        end = max(current, self._anchor)
        self._indices = [
            i for i in range(self._anchor, end + 1) if self._slots[i].category is None
        ]

    def release(self) -> Selection:
        if self.state is State.SINGLE_ARMED:
            self._indices = [self._armed_index]
            self._armed_index = None
            self._enter(State.PENDING_COMMIT)
        elif self.state is State.RANGE_DRAGGING:
            self._anchor = None
            if self._indices:
                self._enter(State.PENDING_COMMIT)
            else:
                self._reset()
        return self.selection

    def tap(self, index: int) -> Optional[ClearRequest]:
        """Quick press and release on one slot."""
        request = self.press(index)
        if request is None:
            self.release()
        return request

    # Category chooser

    def choose(self, category_id: int) -> Commit:
        if self.state is not State.PENDING_COMMIT:
            raise InvalidTransition(f"Nothing to commit while {self.state.value}")
        commit = Commit(self.day, self.selection.times, category_id)
        self._reset()
        return commit

    def dismiss(self) -> None:
        """Cancel whatever is in flight. Nothing is persisted."""
        self._reset()

    def reload(self, slots: Sequence[TimeSlot]) -> bool:
        """Replace the slots after a data load. Returns True if a selection was dropped."""
        dropped = self.state is not State.IDLE
        if dropped:
            logger.debug("Selection %s invalidated by reload in %s", self.day, self.state.value)
        self._slots = list(slots)
        self._reset()
        return dropped
