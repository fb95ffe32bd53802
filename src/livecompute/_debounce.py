"""Keyed debouncing on top of a pluggable timer backend."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

logger = logging.getLogger(__name__)

# Direct edits settle fast; propagated or structural changes wait a little longer
IMMEDIATE_DELAY = 0.03
SETTLE_DELAY = 0.1


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timers(Protocol):
    """Runs a callback after a delay (seconds)."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioTimers:
    """Timers backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


@dataclass(order=True, slots=True)
class _ManualTimer:
    due: float
    sequence: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Virtual-time timers; nothing fires until ``advance`` is called.

    ``time`` doubles as the clock for components that need "now", so a test
    controls edit cooldowns and debounce windows with the same knob.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[_ManualTimer] = []
        self._sequence = itertools.count()

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(due=self._now + max(delay, 0.0), sequence=next(self._sequence), callback=callback)
        heapq.heappush(self._queue, timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._queue if not timer.cancelled)

    def advance(self, seconds: float) -> int:
        """Move virtual time forward, firing due timers in order.

        Returns:
            Number of callbacks that ran.

        """
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0].due <= target:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, timer.due)
            timer.callback()
            fired += 1
        self._now = target
        return fired

    def run_all(self) -> int:
        """Fire every pending timer, advancing time to the last due one."""
        fired = 0
        while self._queue:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, timer.due)
            timer.callback()
            fired += 1
        return fired


class Debouncer:
    """Coalesces repeated work per key into one call after a quiet period.

    Scheduling a key that is already pending cancels the earlier timer, so
    only the last callback for that key runs.
    """

    def __init__(self, timers: Timers) -> None:
        self._timers = timers
        self._pending: dict[Hashable, tuple[TimerHandle, Callable[[], None]]] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def schedule(self, key: Hashable, delay: float, callback: Callable[[], None]) -> None:
        self.cancel(key)

        def fire() -> None:
            self._pending.pop(key, None)
            callback()

        self._pending[key] = (self._timers.call_later(delay, fire), callback)

    def cancel(self, key: Hashable) -> bool:
        """Cancel pending work for a key; True if something was pending."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        pending[0].cancel()
        return True

    def cancel_all(self) -> None:
        for handle, _ in self._pending.values():
            handle.cancel()
        self._pending.clear()

    def flush(self) -> int:
        """Run all pending callbacks now, in scheduling order.

        Returns:
            Number of callbacks run.

        """
        pending = list(self._pending.values())
        self._pending.clear()
        for handle, callback in pending:
            handle.cancel()
            callback()
        if pending:
            logger.debug("Flushed %d debounced callback(s)", len(pending))
        return len(pending)
