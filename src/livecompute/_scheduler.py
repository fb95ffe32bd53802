"""Priority-ordered, batch-limited update queue with cooperative yields.

The scheduler never blocks: after each batch it hands the continuation to a
yield point, which decides when the next batch runs. Tests drive it
synchronously; an application can resume it from its event loop.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_MAX_QUEUE = 500


class Priority(IntEnum):
    """Scheduling class of a queued recompute; higher runs first."""

    LOW = 0
    NORMAL = 1
    HIGH = 2


@dataclass(frozen=True, slots=True)
class SchedulerEntry:
    """One pending recompute of an output node.

    Attributes:
        node_id: The node to recompute.
        priority: Scheduling class.
        source: Node whose write caused this entry, or None when nothing wrote.
        enqueued_at: Clock reading when (re-)enqueued.
        sequence: Monotonic tie-breaker for equal timestamps.

    """

    node_id: str
    priority: Priority
    source: str | None
    enqueued_at: float
    sequence: int

    @property
    def sort_key(self) -> tuple[int, float, int]:
        return (-self.priority, self.enqueued_at, self.sequence)


class YieldPoint(Protocol):
    """Decides when a deferred scheduler continuation runs."""

    def defer(self, callback: Callable[[], None]) -> None: ...


class SynchronousYield:
    """Runs deferred continuations right away, without growing the stack.

    Continuations deferred while one is running are queued and run by the
    outermost call, so draining a long queue is a loop rather than recursion.
    """

    def __init__(self) -> None:
        self._pending: deque[Callable[[], None]] = deque()
        self._running = False

    def defer(self, callback: Callable[[], None]) -> None:
        self._pending.append(callback)
        if self._running:
            return
        self._running = True
        try:
            while self._pending:
                self._pending.popleft()()
        finally:
            self._running = False


class ManualYield:
    """Holds deferred continuations until the caller runs them one by one."""

    def __init__(self) -> None:
        self._pending: deque[Callable[[], None]] = deque()

    def defer(self, callback: Callable[[], None]) -> None:
        self._pending.append(callback)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def run_next(self) -> bool:
        """Run the oldest continuation; False if there was none."""
        if not self._pending:
            return False
        self._pending.popleft()()
        return True

    def run_all(self) -> int:
        """Run continuations until none are left; returns how many ran."""
        count = 0
        while self.run_next():
            count += 1
        return count


class AsyncioYield:
    """Resumes on the next turn of an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def defer(self, callback: Callable[[], None]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_soon(callback)


class UpdateScheduler:
    """Single-threaded priority queue of recompute work.

    At most one entry is pending per node: re-enqueueing at the same priority
    refreshes the timestamp, enqueueing at a higher priority promotes the
    node, and enqueueing at a lower priority than a pending entry is a no-op.
    Entries run by priority (descending), then FIFO. When the queue exceeds
    ``max_queue``, the oldest entries of the lowest priority are dropped.
    """

    def __init__(
        self,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_queue: int = DEFAULT_MAX_QUEUE,
        yield_point: YieldPoint | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if batch_size < 1:
            msg = f"batch_size must be at least 1, got {batch_size}"
            raise ValueError(msg)
        self.batch_size = batch_size
        self.max_queue = max_queue
        self._yield_point = yield_point or SynchronousYield()
        self._clock = clock
        self._entries: dict[tuple[str, Priority], SchedulerEntry] = {}
        self._in_flight: deque[SchedulerEntry] = deque()
        self._sequence = itertools.count()
        self._draining = False
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def draining(self) -> bool:
        return self._draining

    def pending(self) -> list[SchedulerEntry]:
        """Pending entries in the order they would run."""
        return sorted(self._entries.values(), key=lambda e: e.sort_key)

    def is_pending(self, node_id: str) -> bool:
        """Check whether a node is queued, or waits later in the batch being processed."""
        if any((node_id, p) in self._entries for p in Priority):
            return True
        return any(entry.node_id == node_id for entry in self._in_flight)

    def enqueue(
        self,
        node_id: str,
        priority: Priority = Priority.NORMAL,
        source: str | None = None,
    ) -> SchedulerEntry | None:
        """Insert or refresh a pending recompute.

        Args:
            node_id: The node to recompute.
            priority: Scheduling class.
            source: Node whose write caused the recompute, if any.

        Returns:
            The pending entry, or None if a higher-priority entry already covers it.

        """
        if any((node_id, p) in self._entries for p in Priority if p > priority):
            return None
        for p in Priority:
            if p < priority:
                self._entries.pop((node_id, p), None)

        key = (node_id, priority)
        self._entries.pop(key, None)
        entry = SchedulerEntry(
            node_id=node_id,
            priority=priority,
            source=source,
            enqueued_at=self._clock(),
            sequence=next(self._sequence),
        )
        self._entries[key] = entry
        self._trim()
        return entry

    def _trim(self) -> None:
        while len(self._entries) > self.max_queue:
            victim = min(self._entries.values(), key=lambda e: (e.priority, e.enqueued_at, e.sequence))
            del self._entries[(victim.node_id, victim.priority)]
            self.dropped += 1
            logger.warning("Update queue full, dropped %s (%s)", victim.node_id, victim.priority.name)

    def take_batch(self, limit: int | None = None) -> list[SchedulerEntry]:
        """Remove and return up to ``limit`` (default ``batch_size``) entries in run order."""
        batch = self.pending()[: limit or self.batch_size]
        for entry in batch:
            del self._entries[(entry.node_id, entry.priority)]
        return batch

    def clear(self) -> None:
        """Discard all pending entries, including the rest of the running batch."""
        self._entries.clear()
        self._in_flight.clear()

    def drain(
        self,
        process: Callable[[SchedulerEntry], None],
        *,
        on_batch: Callable[[list[SchedulerEntry]], None] | None = None,
        on_idle: Callable[[], None] | None = None,
    ) -> None:
        """Process the queue in batches, yielding between batches.

        The first batch runs immediately; the rest are handed to the yield
        point. Calling ``drain`` while a drain is in progress does nothing,
        since the running drain picks up newly queued entries.

        Args:
            process: Called for each entry.
            on_batch: Called with each completed, non-empty batch.
            on_idle: Called once the queue is empty.

        """
        if self._draining:
            return
        self._draining = True
        self._run_slice(process, on_batch, on_idle)

    def _run_slice(
        self,
        process: Callable[[SchedulerEntry], None],
        on_batch: Callable[[list[SchedulerEntry]], None] | None,
        on_idle: Callable[[], None] | None,
    ) -> None:
        batch = self.take_batch()
        self._in_flight = deque(batch)
        try:
            while self._in_flight:
                process(self._in_flight.popleft())
        except BaseException:
            self._in_flight.clear()
            self._draining = False
            raise

        logger.debug("Processed batch of %d, %d pending", len(batch), len(self._entries))
        if batch and on_batch is not None:
            on_batch(batch)

        if self._entries:
            self._yield_point.defer(lambda: self._run_slice(process, on_batch, on_idle))
            return

        self._draining = False
        if on_idle is not None:
            on_idle()
