"""Range selection used to seed new closures in blocking mode.

Idle --press on a free slot--> Selecting(anchor)
Selecting --move/hover--> preview range (debounced), collapses to [anchor] when invalid
Selecting --mouse release after drag / second press or tap--> confirm (valid) or cancel (invalid)
Touch moves only preview; a touch that moved never presses.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Sequence

from slotgrid.availability import ResolvedSlot

logger = logging.getLogger(__name__)

# Touch movement beyond this many pixels on one axis counts as a gesture.
TOUCH_SLOP_PX = 10

TimerFactory = Callable[..., Any]


class TouchIntent(str, Enum):
    SCROLL = "scroll"
    SELECT = "select"
    IGNORE = "ignore"


def classify_touch_move(dx: float, dy: float, *, selecting: bool) -> TouchIntent:
    # Inside an active selection the move previews the range; page scrolling is never blocked either way.
    if selecting:
        if abs(dx) <= TOUCH_SLOP_PX and abs(dy) <= TOUCH_SLOP_PX:
            return TouchIntent.IGNORE
        return TouchIntent.SELECT
    if abs(dy) > TOUCH_SLOP_PX and abs(dx) < TOUCH_SLOP_PX:
        return TouchIntent.SCROLL
    return TouchIntent.IGNORE


class Debouncer:
    """Runs only the last call made within `delay_seconds`."""

    def __init__(self, delay_seconds: float, *, timer_factory: TimerFactory = threading.Timer) -> None:
        self.delay_seconds = delay_seconds
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Any = None
        self._pending: tuple[Callable[..., None], tuple[Any, ...]] | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def call(self, fn: Callable[..., None], *args: Any) -> None:
        if self.delay_seconds <= 0:
            self.cancel()
            fn(*args)
            return

        with self._lock:
            self._cancel_locked()
            self._generation += 1
            self._pending = (fn, args)
            timer = self._timer_factory(self.delay_seconds, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer cancelled after it started firing must not run.
            if generation != self._generation or self._pending is None:
                return
            fn, args = self._pending
            self._pending = None
            self._timer = None
        fn(*args)

    def flush(self) -> None:
        with self._lock:
            pending = self._pending
            self._cancel_locked()
        if pending is not None:
            fn, args = pending
            fn(*args)

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending = None
        self._generation += 1


@dataclass(frozen=True)
class Idle:
    phase = "idle"


@dataclass(frozen=True)
class Selecting:
    anchor: str
    range_slots: tuple[str, ...]
    pointer_down: bool = False
    dragged: bool = False

    phase = "selecting"


SelectionState = Idle | Selecting

IDLE = Idle()


class SelectionMachine:
    def __init__(
        self,
        *,
        on_confirm: Callable[[list[str]], None],
        debounce_seconds: float = 0.025,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._on_confirm = on_confirm
        self._debouncer = Debouncer(debounce_seconds, timer_factory=timer_factory)
        self._lock = threading.RLock()
        self._state: SelectionState = IDLE
        self._labels: list[str] = []
        self._selectable: dict[str, bool] = {}
        self._touch_origin: tuple[float, float] | None = None
        self._touch_scrolling = False
        self._touch_selecting = False
        self._disposed = False

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def is_selecting(self) -> bool:
        return isinstance(self._state, Selecting)

    @property
    def selected_slots(self) -> list[str]:
        if isinstance(self._state, Selecting):
            return list(self._state.range_slots)
        return []

    def bind(self, slots: Sequence[ResolvedSlot]) -> None:
        """Load the current day's classified slots; re-checks an active selection."""
        with self._lock:
            self._labels = [s.label for s in slots]
            self._selectable = {s.label: s.is_selectable for s in slots}

            state = self._state
            if not isinstance(state, Selecting):
                return
            if not self._selectable.get(state.anchor, False):
                logger.info("Selection anchor %s is no longer free, cancelling", state.anchor)
                self._reset()
                return
            # The stored range may extend either way from the anchor.
            run = self._run(state.range_slots[0], state.range_slots[-1])
            if run is None:
                self._state = replace(state, range_slots=(state.anchor,))

    # Pointer input

    def press(self, label: str) -> SelectionState:
        with self._lock:
            if self._disposed:
                return self._state

            state = self._state
            if isinstance(state, Idle):
                if self._selectable.get(label, False):
                    self._state = Selecting(anchor=label, range_slots=(label,), pointer_down=True)
                return self._state

            # Second press closes the range.
            self._debouncer.cancel()
            run = self._run(state.anchor, label)
            if run is None:
                self._reset()
            else:
                self._confirm(run)
            return self._state

    def pointer_move(self, label: str) -> None:
        with self._lock:
            state = self._state
            if self._disposed or not isinstance(state, Selecting):
                return
            if state.pointer_down and not state.dragged:
                self._state = replace(state, dragged=True)
        self._debouncer.call(self._preview, label)

    hover = pointer_move

    def release(self, label: str) -> SelectionState:
        with self._lock:
            state = self._state
            if self._disposed or not isinstance(state, Selecting) or not state.pointer_down:
                return self._state

            if not state.dragged:
                # Plain click: keep the anchor and wait for the second press.
                self._state = replace(state, pointer_down=False)
                return self._state

            self._debouncer.cancel()
            run = self._run(state.anchor, label)
            if run is None:
                self._reset()
            else:
                self._confirm(run)
            return self._state

    def cancel(self) -> None:
        with self._lock:
            self._reset()

    def dispose(self) -> None:
        with self._lock:
            self._reset()
            self._disposed = True

    # Touch input

    def touch_start(self, label: str | None, x: float, y: float) -> None:
        with self._lock:
            self._touch_origin = (x, y)
            self._touch_scrolling = False
            self._touch_selecting = False

    def touch_move(self, label: str | None, x: float, y: float) -> TouchIntent:
        with self._lock:
            if self._touch_origin is None:
                return TouchIntent.IGNORE
            ox, oy = self._touch_origin
            intent = classify_touch_move(x - ox, y - oy, selecting=self.is_selecting)
            if intent is TouchIntent.SCROLL:
                self._touch_scrolling = True
            elif intent is TouchIntent.SELECT:
                self._touch_selecting = True

        if intent is TouchIntent.SELECT and label is not None:
            self.pointer_move(label)
        return intent

    def touch_end(self, label: str | None) -> SelectionState:
        with self._lock:
            moved = self._touch_scrolling or self._touch_selecting
            self._touch_origin = None
            self._touch_scrolling = False
            self._touch_selecting = False

            if moved or label is None:
                # A moving finger only previews (or scrolls); the next tap closes the range.
                return self._state

        state = self.press(label)
        if isinstance(state, Selecting):
            # Taps never drag; the next tap closes the range.
            with self._lock:
                self._state = replace(state, pointer_down=False)
        return self._state

    # Internals

    def _preview(self, label: str) -> None:
        with self._lock:
            state = self._state
            if self._disposed or not isinstance(state, Selecting):
                return
            run = self._run(state.anchor, label)
            self._state = replace(state, range_slots=run if run is not None else (state.anchor,))

    def _run(self, anchor: str, target: str) -> tuple[str, ...] | None:
        try:
            a = self._labels.index(anchor)
            b = self._labels.index(target)
        except ValueError:
            return None

        lo, hi = min(a, b), max(a, b)
        run = self._labels[lo:hi + 1]
        if all(self._selectable.get(label, False) for label in run):
            return tuple(run)
        return None

    def _confirm(self, run: tuple[str, ...]) -> None:
        self._reset()
        logger.info("Selection confirmed: %s-%s (%d slots)", run[0], run[-1], len(run))
        self._on_confirm(list(run))

    def _reset(self) -> None:
        self._debouncer.cancel()
        self._state = IDLE
