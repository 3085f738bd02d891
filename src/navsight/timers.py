"""Single-threaded timer loop driven from the host's main loop."""
import logging
import sched
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTimer:
    """Re-arms itself every `interval` seconds until cancelled."""

    def __init__(self, loop: "TimerLoop", interval: float, callback: Callable[..., Any], args: tuple):
        self.loop = loop
        self.interval = interval
        self.callback = callback
        self.args = args
        self.cancelled = False
        self._event: Optional[sched.Event] = None

    def _arm(self) -> None:
        self._event = self.loop.call_later(self.interval, self._fire)

    def _fire(self) -> None:
        if self.cancelled:
            return
        self._arm()
        self.callback(*self.args)

    def cancel(self) -> None:
        self.cancelled = True
        self.loop.cancel(self._event)
        self._event = None


class TimerLoop:
    """
    Thin wrapper over `sched.scheduler` used as a cooperative event loop.
    Nothing runs until the owner calls `run_pending()`; every callback therefore
    executes on the owner's thread. `call_soon` may be used from other threads.
    """

    def __init__(self, timefunc: Callable[[], float] = time.monotonic):
        self._timefunc = timefunc
        self._scheduler = sched.scheduler(timefunc, time.sleep)

    def time(self) -> float:
        return self._timefunc()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> sched.Event:
        return self._scheduler.enter(max(0.0, delay), 0, self._guarded, (callback, args))

    def call_at(self, when: float, callback: Callable[..., Any], *args: Any) -> sched.Event:
        return self._scheduler.enterabs(when, 0, self._guarded, (callback, args))

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> sched.Event:
        return self.call_later(0.0, callback, *args)

    def call_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> PeriodicTimer:
        timer = PeriodicTimer(self, interval, callback, args)
        timer._arm()
        return timer

    def cancel(self, handle) -> None:
        if handle is None:
            return
        if isinstance(handle, PeriodicTimer):
            handle.cancel()
            return
        try:
            self._scheduler.cancel(handle)
        except ValueError:
            # Already fired or cancelled
            pass

    def cancel_all(self) -> None:
        for event in list(self._scheduler.queue):
            self.cancel(event)

    def next_deadline(self) -> Optional[float]:
        pending = self._scheduler.queue
        return pending[0].time if pending else None

    def run_pending(self) -> None:
        """Run every callback whose deadline has passed, in deadline order."""
        self._scheduler.run(blocking=False)

    def __len__(self) -> int:
        return len(self._scheduler.queue)

    @staticmethod
    def _guarded(callback: Callable[..., Any], args: tuple) -> None:
        try:
            callback(*args)
        except Exception:
            # A failing timer must not stop the loop
            logger.exception("Timer callback %r failed", callback)
