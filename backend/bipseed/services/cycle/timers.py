import itertools
import logging
import time
from typing import Callable, List, Optional


class TimerHandle:
    """A single scheduled callback. Cancelling is idempotent."""

    def __init__(self, name: str, deadline: float, callback: Callable[[], None],
                 interval: Optional[float] = None):
        self.name = name
        self.deadline = deadline
        self.callback = callback
        self.interval = interval
        self.cancelled = False
        self.fired = False
        self.seq = 0

    @property
    def active(self) -> bool:
        if self.cancelled:
            return False
        return self.interval is not None or not self.fired

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self):
        return f"<TimerHandle {self.name} deadline={self.deadline:.3f} active={self.active}>"


class BackgroundTimerService:
    """Timers running as Socket.IO background tasks.

    Only ``start_background_task`` and ``sleep`` are used from the server
    object. The app pins Socket.IO to threading mode so these tasks are real
    threads and the state machine's RLock serializes them.
    """

    def __init__(self, socketio, logger=None, heartbeat_sec: int = 0):
        self.socketio = socketio
        self.logger = logger or logging.getLogger(__name__)
        self.heartbeat_sec = heartbeat_sec
        self._handles: List[TimerHandle] = []

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None], name: str = 'timer') -> TimerHandle:
        handle = TimerHandle(name, self.now() + delay, callback)
        self._track(handle)
        self.logger.debug(f"[timer-set] {name} delay={delay}s deadline={handle.deadline:.3f}")
        self.socketio.start_background_task(self._run_once, handle)
        return handle

    def call_every(self, interval: float, callback: Callable[[], None], name: str = 'interval') -> TimerHandle:
        handle = TimerHandle(name, self.now() + interval, callback, interval=interval)
        self._track(handle)
        self.socketio.start_background_task(self._run_periodic, handle)
        return handle

    def cancel_all(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles = []

    def _track(self, handle: TimerHandle) -> None:
        self._handles = [h for h in self._handles if h.active]
        self._handles.append(handle)

    def _sleep_until(self, handle: TimerHandle) -> None:
        hb = self.heartbeat_sec
        while not handle.cancelled:
            remaining = handle.deadline - self.now()
            if remaining <= 0:
                return
            step = min(hb, remaining) if hb and hb > 0 else remaining
            self.socketio.sleep(step)
            if hb and hb > 0 and not handle.cancelled:
                self.logger.info(
                    f"[timer-heartbeat] {handle.name} remaining={max(0.0, handle.deadline - self.now()):.1f}s"
                )

    def _run_once(self, handle: TimerHandle) -> None:
        self._sleep_until(handle)
        if handle.cancelled:
            self.logger.debug(f"[timer-cancelled] {handle.name}")
            return
        handle.fired = True
        try:
            handle.callback()
        except Exception:
            self.logger.exception(f"[timer-error] {handle.name}")

    def _run_periodic(self, handle: TimerHandle) -> None:
        while True:
            self._sleep_until(handle)
            if handle.cancelled:
                return
            handle.deadline += handle.interval
            try:
                handle.callback()
            except Exception:
                # a broken tick must not stop the interval
                self.logger.exception(f"[timer-error] {handle.name}")


class ManualTimerService:
    """Virtual clock for tests: nothing fires until ``advance`` is called."""

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self._handles: List[TimerHandle] = []
        self._order = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None], name: str = 'timer') -> TimerHandle:
        return self._add(TimerHandle(name, self._now + delay, callback))

    def call_every(self, interval: float, callback: Callable[[], None], name: str = 'interval') -> TimerHandle:
        return self._add(TimerHandle(name, self._now + interval, callback, interval=interval))

    def cancel_all(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles = []

    @property
    def pending(self) -> List[TimerHandle]:
        return [h for h in self._handles if h.active]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in deadline order."""
        target = self._now + seconds
        while True:
            due = [h for h in self.pending if h.deadline <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.deadline, h.seq))
            self._now = max(self._now, handle.deadline)
            if handle.interval is not None:
                handle.deadline += handle.interval
            else:
                handle.fired = True
            handle.callback()
        self._now = target
        self._handles = self.pending

    def _add(self, handle: TimerHandle) -> TimerHandle:
        handle.seq = next(self._order)
        self._handles = self.pending
        self._handles.append(handle)
        return handle
