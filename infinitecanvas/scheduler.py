"""Deferred-callback scheduling used by the engine.

The engine never touches a main loop directly. Hosts pass an object with
`call_later(delay, callback) -> handle` and `cancel(handle)`; the GTK
host uses GLib sources, tests use a manual clock.
"""

from typing import Any, Callable, Optional, Protocol


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Any:
        ...

    def cancel(self, handle: Any) -> None:
        ...


class RepaintScheduler:
    """Coalesces repaint requests into one deferred repaint."""

    def __init__(self, scheduler: Scheduler, repaint: Callable[[], None]):
        self.scheduler = scheduler
        self.repaint = repaint
        self._pending: Optional[Any] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def request(self):
        if self._pending is not None:
            return
        self._pending = self.scheduler.call_later(0, self._fire)

    def _fire(self):
        self._pending = None
        self.repaint()

    def cancel(self):
        if self._pending is not None:
            self.scheduler.cancel(self._pending)
            self._pending = None


class Debouncer:
    """Runs a callback once, `delay` seconds after the last trigger."""

    def __init__(self, scheduler: Scheduler, delay: float,
                 callback: Callable[[], None]):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self._pending: Optional[Any] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def trigger(self):
        if self._pending is not None:
            self.scheduler.cancel(self._pending)
        self._pending = self.scheduler.call_later(self.delay, self._fire)

    def flush(self):
        """Run now if a call is pending."""
        if self._pending is not None:
            self.scheduler.cancel(self._pending)
            self._fire()

    def cancel(self):
        if self._pending is not None:
            self.scheduler.cancel(self._pending)
            self._pending = None

    def _fire(self):
        self._pending = None
        self.callback()
