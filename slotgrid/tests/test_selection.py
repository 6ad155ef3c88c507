from __future__ import annotations

import datetime as dt

import pytz

from slotgrid.availability import ResolvedSlot
from slotgrid.domain import ClosedSlot, Closure, ClosureType, EmptySlot, PastSlot, SlotState
from slotgrid.selection import (
    Debouncer,
    Idle,
    Selecting,
    SelectionMachine,
    TouchIntent,
    classify_touch_move,
)

UTC = pytz.UTC
_CLOSURE = Closure(
    id="cl1",
    start=dt.datetime(2025, 3, 10, 12, tzinfo=UTC),
    end=dt.datetime(2025, 3, 10, 13, tzinfo=UTC),
    reason="Inventory",
    type=ClosureType.MAINTENANCE,
)


class FakeTimer:
    created: list["FakeTimer"] = []

    def __init__(self, interval: float, function, args=None, kwargs=None) -> None:
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.started = False
        self.cancelled = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


def _labels(count: int = 20) -> list[str]:
    return [f"{8 + i // 4:02d}:{(i % 4) * 15:02d}" for i in range(count)]


def _grid(states: dict[int, SlotState] | None = None, count: int = 20) -> list[ResolvedSlot]:
    states = states or {}
    instant = dt.datetime(2025, 3, 10, tzinfo=UTC)
    return [ResolvedSlot(label=label, instant=instant, state=states.get(i, EmptySlot())) for i, label in enumerate(_labels(count))]


def _machine(states: dict[int, SlotState] | None = None, *, debounce: float = 0.025):
    confirmed: list[list[str]] = []
    FakeTimer.created = []
    machine = SelectionMachine(on_confirm=confirmed.append, debounce_seconds=debounce, timer_factory=FakeTimer)
    machine.bind(_grid(states))
    return machine, confirmed


def _fire_last_timer() -> None:
    FakeTimer.created[-1].fire()


L = _labels()


def test_press_on_free_slot_starts_selection() -> None:
    machine, _ = _machine()

    state = machine.press(L[10])

    assert isinstance(state, Selecting)
    assert state.anchor == L[10]
    assert state.range_slots == (L[10],)


def test_press_on_blocked_slot_stays_idle() -> None:
    machine, _ = _machine({3: PastSlot(), 4: ClosedSlot(closure=_CLOSURE)})

    assert isinstance(machine.press(L[3]), Idle)
    assert isinstance(machine.press(L[4]), Idle)


def test_hover_extends_range_after_debounce() -> None:
    machine, _ = _machine()
    machine.press(L[10])

    machine.hover(L[13])
    assert machine.selected_slots == [L[10]]  # not yet applied

    _fire_last_timer()
    assert machine.selected_slots == L[10:14]


def test_hover_backwards_orders_range() -> None:
    machine, _ = _machine()
    machine.press(L[10])
    machine.hover(L[7])
    _fire_last_timer()
    assert machine.selected_slots == L[7:11]


def test_invalid_extension_collapses_to_anchor() -> None:
    machine, _ = _machine({12: ClosedSlot(closure=_CLOSURE)})
    machine.press(L[10])

    machine.hover(L[11])
    _fire_last_timer()
    assert machine.selected_slots == L[10:12]

    machine.hover(L[14])
    _fire_last_timer()
    assert machine.selected_slots == [L[10]]


def test_only_last_hover_is_applied() -> None:
    machine, _ = _machine()
    machine.press(L[10])

    machine.hover(L[15])
    first = FakeTimer.created[-1]
    machine.hover(L[12])

    assert first.cancelled
    first.fire()
    _fire_last_timer()
    assert machine.selected_slots == L[10:13]


def test_click_click_confirms_range() -> None:
    machine, confirmed = _machine()

    machine.press(L[2])
    machine.release(L[2])
    assert isinstance(machine.state, Selecting)

    machine.press(L[5])

    assert confirmed == [L[2:6]]
    assert isinstance(machine.state, Idle)


def test_second_press_over_invalid_range_cancels() -> None:
    machine, confirmed = _machine({4: PastSlot()})

    machine.press(L[2])
    machine.release(L[2])
    machine.press(L[6])

    assert confirmed == []
    assert isinstance(machine.state, Idle)


def test_drag_and_release_confirms() -> None:
    machine, confirmed = _machine()

    machine.press(L[1])
    machine.pointer_move(L[2])
    machine.pointer_move(L[4])
    machine.release(L[4])

    assert confirmed == [L[1:5]]
    assert isinstance(machine.state, Idle)
    assert FakeTimer.created[-1].cancelled


def test_release_over_invalid_target_cancels() -> None:
    machine, confirmed = _machine({6: ClosedSlot(closure=_CLOSURE)})

    machine.press(L[3])
    machine.pointer_move(L[6])
    machine.release(L[6])

    assert confirmed == []
    assert isinstance(machine.state, Idle)


def test_cancel_clears_pending_preview() -> None:
    machine, _ = _machine()
    machine.press(L[3])
    machine.hover(L[8])
    timer = FakeTimer.created[-1]

    machine.cancel()

    assert timer.cancelled
    timer.fire()
    assert isinstance(machine.state, Idle)


def test_dispose_ignores_late_callbacks_and_input() -> None:
    machine, _ = _machine()
    machine.press(L[3])
    machine.hover(L[5])
    timer = FakeTimer.created[-1]

    machine.dispose()
    timer.function(*timer.args)

    assert isinstance(machine.state, Idle)
    assert isinstance(machine.press(L[3]), Idle)


def test_rebind_collapses_range_that_became_invalid() -> None:
    machine, _ = _machine()
    machine.press(L[3])
    machine.hover(L[6])
    _fire_last_timer()
    assert machine.selected_slots == L[3:7]

    machine.bind(_grid({5: ClosedSlot(closure=_CLOSURE)}))

    assert machine.selected_slots == [L[3]]


def test_rebind_rechecks_range_extended_backwards() -> None:
    machine, _ = _machine()
    machine.press(L[8])
    machine.hover(L[6])
    _fire_last_timer()
    assert machine.selected_slots == L[6:9]

    machine.bind(_grid({7: ClosedSlot(closure=_CLOSURE)}))

    assert machine.selected_slots == [L[8]]


def test_rebind_cancels_when_anchor_is_taken() -> None:
    machine, _ = _machine()
    machine.press(L[3])

    machine.bind(_grid({3: PastSlot()}))

    assert isinstance(machine.state, Idle)


def test_zero_debounce_applies_immediately() -> None:
    machine, _ = _machine(debounce=0)
    machine.press(L[3])
    machine.hover(L[5])
    assert machine.selected_slots == L[3:6]
    assert FakeTimer.created == []


def test_classify_touch_move() -> None:
    assert classify_touch_move(2, 40, selecting=False) is TouchIntent.SCROLL
    assert classify_touch_move(30, 40, selecting=False) is TouchIntent.IGNORE
    assert classify_touch_move(2, 40, selecting=True) is TouchIntent.SELECT
    assert classify_touch_move(3, 4, selecting=True) is TouchIntent.IGNORE


def test_scroll_gesture_does_not_count_as_tap() -> None:
    machine, _ = _machine()

    machine.touch_start(L[3], 100, 100)
    assert machine.touch_move(L[3], 102, 160) is TouchIntent.SCROLL
    machine.touch_end(L[3])

    assert isinstance(machine.state, Idle)


def test_tap_tap_confirms_on_touch() -> None:
    machine, confirmed = _machine()

    machine.touch_start(L[3], 100, 100)
    machine.touch_end(L[3])
    assert isinstance(machine.state, Selecting)

    machine.touch_start(L[5], 100, 180)
    machine.touch_end(L[5])

    assert confirmed == [L[3:6]]


def test_touch_move_inside_selection_only_previews() -> None:
    machine, confirmed = _machine()
    machine.touch_start(L[3], 100, 100)
    machine.touch_end(L[3])

    machine.touch_start(L[3], 100, 100)
    assert machine.touch_move(L[6], 101, 220) is TouchIntent.SELECT
    _fire_last_timer()
    assert machine.selected_slots == L[3:7]
    machine.touch_end(L[6])

    assert confirmed == []
    assert isinstance(machine.state, Selecting)

    machine.touch_start(L[6], 100, 220)
    machine.touch_end(L[6])
    assert confirmed == [L[3:7]]


def test_scrolling_during_selection_does_not_confirm() -> None:
    machine, confirmed = _machine()
    machine.touch_start(L[2], 100, 100)
    machine.touch_end(L[2])

    machine.touch_start(L[2], 100, 100)
    machine.touch_move(L[12], 100, 400)
    machine.touch_end(L[12])

    assert confirmed == []
    assert isinstance(machine.state, Selecting)
    assert machine.state.anchor == L[2]


def test_small_finger_jitter_still_counts_as_tap() -> None:
    machine, confirmed = _machine()
    machine.touch_start(L[3], 100, 100)
    machine.touch_end(L[3])

    machine.touch_start(L[4], 100, 140)
    assert machine.touch_move(L[4], 103, 144) is TouchIntent.IGNORE
    machine.touch_end(L[4])

    assert confirmed == [L[3:5]]


def test_debouncer_flush_runs_pending_call_once() -> None:
    calls: list[int] = []
    FakeTimer.created = []
    debouncer = Debouncer(0.025, timer_factory=FakeTimer)

    debouncer.call(calls.append, 1)
    debouncer.call(calls.append, 2)
    debouncer.flush()
    _fire_last_timer()

    assert calls == [2]
    assert not debouncer.pending
