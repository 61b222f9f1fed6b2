"""
Timer scheduling for cooldowns and banter.

The engine never sleeps or blocks. It asks a Scheduler for one-shot
callbacks and keeps the returned TimerHandle so the timer can be
cancelled later.

Two schedulers are provided:
- ManualScheduler: virtual clock advanced by the host (game loop, tests)
- ThreadingScheduler: wall-clock timers on daemon threads

Every scheduler owns a re-entrant lock. Timer callbacks run while holding
it and NpcEngine takes it for every public operation, so callbacks and
host calls never interleave.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle:
    """
    Cancellation handle for a scheduled callback.

    cancel() is idempotent and harmless after the callback has fired.
    """

    def __init__(self, delay_ms: float):
        self.delay_ms = delay_ms
        self._cancelled = False
        self._fired = False

    @property
    def active(self) -> bool:
        """True while the callback is still pending."""
        return not (self._cancelled or self._fired)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def _mark_fired(self) -> None:
        self._fired = True


class Scheduler(ABC):
    """One-shot timer service used by the engine."""

    def __init__(self):
        self.lock = threading.RLock()

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        """Run callback once after delay_ms milliseconds."""

    def shutdown(self) -> None:
        """Cancel all outstanding timers."""

    def _run(self, handle: TimerHandle, callback: Callback) -> None:
        with self.lock:
            if not handle.active:
                return
            handle._mark_fired()
            callback()


class ManualScheduler(Scheduler):
    """
    Scheduler driven by an explicit virtual clock.

    Hosts with their own frame loop call advance(dt_ms) every frame.
    Tests use it to step time deterministically.

    Example:
        >>> sched = ManualScheduler()
        >>> sched.call_later(1000, lambda: print("tick"))
        >>> sched.advance(999)   # nothing
        >>> sched.advance(1)     # prints "tick"
    """

    def __init__(self, start_ms: float = 0.0):
        super().__init__()
        self._now = float(start_ms)
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, TimerHandle, Callback]] = []

    @property
    def now(self) -> float:
        """Current virtual time in milliseconds."""
        return self._now

    @property
    def pending(self) -> int:
        """Number of timers still waiting to fire."""
        return sum(1 for _, _, handle, _ in self._queue if handle.active)

    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle(delay_ms)
        with self.lock:
            heapq.heappush(
                self._queue,
                (self._now + max(0.0, delay_ms), next(self._seq), handle, callback),
            )
        return handle

    def advance(self, ms: float) -> int:
        """
        Move the clock forward, firing every callback that falls due.

        Callbacks scheduled by other callbacks fire too if they fall
        inside the window.

        Returns:
            Number of callbacks fired
        """
        if ms < 0:
            raise ValueError("Cannot move the clock backwards")

        fired = 0
        with self.lock:
            target = self._now + ms
            while self._queue and self._queue[0][0] <= target:
                due, _, handle, callback = heapq.heappop(self._queue)
                if not handle.active:
                    continue
                self._now = due
                self._run(handle, callback)
                fired += 1
            self._now = target
        return fired

    def shutdown(self) -> None:
        with self.lock:
            for _, _, handle, _ in self._queue:
                handle.cancel()
            self._queue.clear()


class _ThreadTimerHandle(TimerHandle):
    def __init__(self, delay_ms: float, release: Callable[["_ThreadTimerHandle"], None]):
        super().__init__(delay_ms)
        self.timer: Optional[threading.Timer] = None
        self._release = release

    def cancel(self) -> None:
        super().cancel()
        if self.timer is not None:
            self.timer.cancel()
        # a cancelled Timer never runs fire()
        self._release(self)


class ThreadingScheduler(Scheduler):
    """
    Wall-clock scheduler backed by threading.Timer.

    Callbacks are serialized through the scheduler lock, so engine state
    is only ever touched by one thread at a time.
    """

    def __init__(self):
        super().__init__()
        self._handles: Set[_ThreadTimerHandle] = set()
        self._handles_lock = threading.Lock()

    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        handle = _ThreadTimerHandle(delay_ms, self._release)

        def fire():
            self._release(handle)
            try:
                self._run(handle, callback)
            except Exception:
                logger.exception("Timer callback failed")

        timer = threading.Timer(max(0.0, delay_ms) / 1000.0, fire)
        timer.daemon = True
        handle.timer = timer

        with self._handles_lock:
            self._handles.add(handle)
        timer.start()
        return handle

    def _release(self, handle: _ThreadTimerHandle) -> None:
        with self._handles_lock:
            self._handles.discard(handle)

    @property
    def pending(self) -> int:
        with self._handles_lock:
            return sum(1 for h in self._handles if h.active)

    def shutdown(self) -> None:
        with self._handles_lock:
            handles = list(self._handles)
            self._handles.clear()
        for handle in handles:
            handle.cancel()
        logger.debug(f"Cancelled {len(handles)} pending timers")