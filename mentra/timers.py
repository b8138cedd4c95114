"""
Cancelable one-shot timers.

The draft autosave debounce, the reset-undo window and the voice auto-send
delay are the only timers in the client.  Each component receives a
scheduler so it can arm a callback and cancel it again when the surface is
torn down.  :class:`ThreadingScheduler` backs them with daemon
:class:`threading.Timer` threads; tests pass a manual scheduler instead.

Delays are given in milliseconds.
"""

import logging
import threading

log = logging.getLogger("mentra")


class TimerHandle:
    """Handle returned by :meth:`ThreadingScheduler.call_later`."""

    def __init__(self, timer: threading.Timer) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler:
    """Run callbacks on daemon timer threads."""

    def call_later(self, delay_ms: float, callback) -> TimerHandle:
        timer = threading.Timer(delay_ms / 1000.0, self._run, args=(callback,))
        timer.daemon = True
        timer.start()
        return TimerHandle(timer)

    @staticmethod
    def _run(callback) -> None:
        try:
            callback()
        except Exception:  # noqa: BLE001
            # A timer thread has nobody to propagate to; make the failure visible.
            log.exception("[TIMER] Scheduled callback %r failed", callback)


#: Shared default used when a component is created without a scheduler.
DEFAULT_SCHEDULER = ThreadingScheduler()
