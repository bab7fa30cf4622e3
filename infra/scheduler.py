"""Cancellable delayed actions and fire-and-forget background work."""

from __future__ import annotations

import asyncio
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Callable, Protocol

from infra.logging import get_logger


class ScheduledHandle(Protocol):
    """Handle for a pending delayed callback."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Single event loop abstraction used by the session controller."""

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> ScheduledHandle: ...

    def submit(self, operation: Callable[[], None]) -> None: ...


class AsyncioScheduler:
    """Runs timers on an asyncio loop and background work on its executor."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None, executor: Executor | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._executor = executor

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> ScheduledHandle:
        return self._loop.call_later(delay_s, callback)

    def submit(self, operation: Callable[[], None]) -> None:
        future = self._loop.run_in_executor(self._executor, operation)
        future.add_done_callback(_log_background_failure)


def _log_background_failure(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is None:
        return
    get_logger().error(
        "background operation failed",
        extra={"event_type": "background_failure", "metadata": {"error": repr(exc)}},
    )


@dataclass
class ManualTimer:
    due_s: float
    sequence: int
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Deterministic scheduler driven by an explicit clock."""

    now_s: float = 0.0
    _timers: list[ManualTimer] = field(default_factory=list)
    _background: list[Callable[[], None]] = field(default_factory=list)
    _sequence: int = 0

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> ManualTimer:
        self._sequence += 1
        timer = ManualTimer(due_s=self.now_s + delay_s, sequence=self._sequence, callback=callback)
        self._timers.append(timer)
        return timer

    def submit(self, operation: Callable[[], None]) -> None:
        self._background.append(operation)

    @property
    def pending_timers(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    @property
    def pending_background(self) -> int:
        return len(self._background)

    def advance(self, seconds: float) -> int:
        """Move the clock forward and fire due timers in order; return how many fired."""
        deadline = self.now_s + seconds
        fired = 0
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due_s <= deadline]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due_s, t.sequence))
            self._timers.remove(timer)
            self.now_s = max(self.now_s, timer.due_s)
            timer.callback()
            fired += 1
        self._timers = [t for t in self._timers if not t.cancelled]
        self.now_s = deadline
        return fired

    def run_background(self) -> int:
        """Run queued background operations; return how many ran."""
        ran = 0
        while self._background:
            operation = self._background.pop(0)
            operation()
            ran += 1
        return ran
