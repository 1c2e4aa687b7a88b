from datetime import date, time

import pytest

from timegrid.errors import InvalidTransition
from timegrid.models import Category
from timegrid.selection import ClearRequest, SelectionMachine, State
from timegrid.slots import TimeSlot, generate_slots

DAY = date(2026, 10, 18)
WORK = Category(id=1, name="Work", color="#3B82F6")


def make_machine(occupied=()):
    slots = [
        TimeSlot(time=t, category=WORK if i in occupied else None)
        for i, t in enumerate(generate_slots())
    ]
    return SelectionMachine(DAY, slots)


def drag(machine, anchor, *moves):
    machine.press(anchor)
    machine.dwell_elapsed()
    for index in moves:
        machine.move(index)


def test_starts_idle():
    machine = make_machine()
    assert machine.state is State.IDLE
    assert len(machine.selection) == 0


def test_tap_on_empty_slot_opens_chooser_with_singleton():
    machine = make_machine()

    assert machine.tap(40) is None

    assert machine.state is State.PENDING_COMMIT
    assert machine.selection.times == (time(10, 0),)
    assert machine.selection.day == DAY


def test_press_arms_single_slot():
    machine = make_machine()
    machine.press(40)
    assert machine.state is State.SINGLE_ARMED
    assert machine.armed_index == 40
    assert len(machine.selection) == 0


def test_tap_on_occupied_slot_requests_clear():
    machine = make_machine(occupied={40})

    request = machine.tap(40)

    assert request == ClearRequest(DAY, time(10, 0), WORK)
    assert machine.state is State.IDLE
    assert len(machine.selection) == 0


def test_dwell_starts_drag_at_anchor():
    machine = make_machine()
    drag(machine, 10)

    assert machine.state is State.RANGE_DRAGGING
    assert machine.anchor == 10
    assert machine.selected_indices == [10]


def test_dwell_from_idle_names_the_slot():
    machine = make_machine()
    machine.dwell_elapsed(20)
    assert machine.state is State.RANGE_DRAGGING
    assert machine.selected_indices == [20]


def test_dwell_from_idle_on_occupied_slot_is_rejected():
    machine = make_machine(occupied={20})
    with pytest.raises(InvalidTransition):
        machine.dwell_elapsed(20)
    assert machine.state is State.IDLE


def test_drag_forward_selects_contiguous_run():
    machine = make_machine()
    drag(machine, 10, 11, 12, 14)

    assert machine.selected_indices == [10, 11, 12, 13, 14]
    assert machine.selection.times == (time(2, 30), time(2, 45), time(3, 0), time(3, 15), time(3, 30))


def test_drag_shrinks_when_moving_back_toward_anchor():
    machine = make_machine()
    drag(machine, 10, 14, 12)
    assert machine.selected_indices == [10, 11, 12]


def test_drag_never_extends_before_anchor():
    machine = make_machine()
    drag(machine, 10, 5)
    assert machine.selected_indices == [10]

    machine.move(0)
    assert machine.selected_indices == [10]


def test_drag_skips_occupied_slots():
    machine = make_machine(occupied={12, 13})
    drag(machine, 10, 15)
    assert machine.selected_indices == [10, 11, 14, 15]


def test_drag_clamps_past_end_of_day():
    machine = make_machine()
    drag(machine, 94, 500)
    assert machine.selected_indices == [94, 95]


def test_release_after_drag_waits_for_category():
    machine = make_machine()
    drag(machine, 10, 12)

    selection = machine.release()

    assert machine.state is State.PENDING_COMMIT
    assert len(selection) == 3
    assert machine.anchor is None


def test_choose_commits_and_clears():
    machine = make_machine()
    drag(machine, 10, 11)
    machine.release()

    commit = machine.choose(7)

    assert commit.day == DAY
    assert commit.times == (time(2, 30), time(2, 45))
    assert commit.category_id == 7
    assert machine.state is State.IDLE
    assert len(machine.selection) == 0


def test_dismiss_discards_selection():
    machine = make_machine()
    machine.tap(3)

    machine.dismiss()

    assert machine.state is State.IDLE
    assert len(machine.selection) == 0
    with pytest.raises(InvalidTransition):
        machine.choose(1)


def test_moving_before_dwell_abandons_press():
    machine = make_machine()
    machine.press(10)
    machine.move(10)
    assert machine.state is State.SINGLE_ARMED

    machine.move(11)
    assert machine.state is State.IDLE
    assert machine.armed_index is None


def test_reload_mid_drag_clears_selection():
    machine = make_machine()
    drag(machine, 10, 15)

    dropped = machine.reload(make_machine(occupied={12}).slots)

    assert dropped is True
    assert machine.state is State.IDLE
    assert len(machine.selection) == 0
    # New slots are in effect
    assert machine.tap(12) is not None


def test_reload_while_pending_commit_clears_selection():
    machine = make_machine()
    machine.tap(10)

    assert machine.reload(machine.slots) is True
    assert machine.state is State.IDLE
    with pytest.raises(InvalidTransition):
        machine.choose(1)


def test_reload_while_idle_reports_nothing_dropped():
    machine = make_machine()
    assert machine.reload(machine.slots) is False


def test_illegal_transitions():
    machine = make_machine()
    with pytest.raises(InvalidTransition):
        machine.choose(1)
    with pytest.raises(InvalidTransition):
        machine.dwell_elapsed()

    drag(machine, 10)
    with pytest.raises(InvalidTransition):
        machine.press(20)


def test_press_outside_the_day():
    machine = make_machine()
    with pytest.raises(InvalidTransition):
        machine.press(96)
    with pytest.raises(InvalidTransition):
        machine.press(-1)
