"""
Destructive reset with a one-shot undo window.

``reset(new_state)`` captures the current state through ``get_state``,
applies *new_state* through ``apply_state`` and arms a timer.  Until the
timer fires (or :meth:`ResetUndoController.dismiss` is called) the captured
snapshot can be restored exactly once with :meth:`ResetUndoController.undo`.
"""

import logging
import threading
from enum import Enum

from .timers import DEFAULT_SCHEDULER

log = logging.getLogger("mentra")

#: How long a reset can be undone (milliseconds).
UNDO_TIMEOUT_MS: int = 10_000


class UndoState(str, Enum):
    ACTIVE = "active"
    PENDING_UNDO = "pending-undo"


class ResetUndoController:
    """Snapshot-before-reset state machine."""

    def __init__(self, get_state, apply_state,
                 timeout_ms: float = UNDO_TIMEOUT_MS,
                 scheduler=None, on_change=None) -> None:
        self._get_state = get_state
        self._apply_state = apply_state
        self._timeout_ms = timeout_ms
        self._scheduler = scheduler or DEFAULT_SCHEDULER
        self._on_change = on_change
        self._lock = threading.RLock()
        self._state = UndoState.ACTIVE
        self._snapshot = None
        self._timer = None
        self._generation = 0

    @property
    def state(self) -> UndoState:
        return self._state

    @property
    def can_undo(self) -> bool:
        return self._state is UndoState.PENDING_UNDO

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self._state)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._snapshot = None
        self._state = UndoState.ACTIVE

    def reset(self, new_state) -> None:
        """Apply *new_state*, keeping the previous state for undo.

        Resetting again while an undo is pending replaces the snapshot and
        restarts the window; the older snapshot is lost.
        """
        with self._lock:
            snapshot = self._get_state()
            if self._timer is not None:
                self._timer.cancel()
            self._snapshot = snapshot
            self._apply_state(new_state)
            self._state = UndoState.PENDING_UNDO
            self._generation += 1
            generation = self._generation
            self._timer = self._scheduler.call_later(
                self._timeout_ms, lambda: self._expire(generation),
            )
        log.debug("[UNDO] Reset applied; undo window %d ms", self._timeout_ms)
        self._notify()

    def undo(self) -> bool:
        """Restore the snapshot.  Returns *False* if nothing can be undone."""
        with self._lock:
            if self._state is not UndoState.PENDING_UNDO:
                return False
            snapshot = self._snapshot
            self._disarm()
            self._apply_state(snapshot)
        log.debug("[UNDO] Reset undone")
        self._notify()
        return True

    def dismiss(self) -> None:
        """Discard the snapshot; the reset stays applied."""
        with self._lock:
            if self._state is not UndoState.PENDING_UNDO:
                return
            self._disarm()
        self._notify()

    def _expire(self, generation: int) -> None:
        with self._lock:
            # Stale timer from a reset that was since replaced or undone.
            if generation != self._generation or self._state is not UndoState.PENDING_UNDO:
                return
            self._timer = None
            self._disarm()
        log.debug("[UNDO] Undo window elapsed")
        self._notify()

    def close(self) -> None:
        """Cancel the pending timer (surface teardown)."""
        with self._lock:
            self._disarm()
