"""
Priority work queue with delayed availability and dependent-unit chaining.

Units are served lowest priority value first and FIFO within a priority.
A unit enqueued with a delay becomes available once the delay has elapsed.
Children registered with ``enqueue_after`` are released when their parent
completes and discarded when it fails. Only the most recent outcomes are
remembered for late ``enqueue_after`` calls.
"""

import heapq
import itertools
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from feedsync.models import Priority, WorkUnit

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 1024


class RecentIds:
    """Set of ids that forgets the oldest entries beyond ``maxsize``."""

    def __init__(self, maxsize: int = DEFAULT_HISTORY_SIZE):
        self.maxsize = maxsize
        self._ids: OrderedDict[str, None] = OrderedDict()

    def add(self, item: str) -> None:
        self._ids[item] = None
        self._ids.move_to_end(item)
        while len(self._ids) > self.maxsize:
            self._ids.popitem(last=False)

    def __contains__(self, item: object) -> bool:
        return item in self._ids

    def __len__(self) -> int:
        return len(self._ids)


@dataclass(frozen=True)
class ParkedUnit:
    """A unit that exhausted its retries, kept for operator inspection."""
    unit: WorkUnit
    error: str
    parked_at: float


class WorkQueue:
    """Thread-safe priority queue shared by producers and worker threads."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ):
        self._clock = clock
        self._condition = threading.Condition()
        self._counter = itertools.count()
        self._ready: list[tuple[int, int, WorkUnit]] = []
        self._delayed: list[tuple[float, int, WorkUnit]] = []
        self._priorities: dict[str, int] = {}
        self._children: dict[str, list[WorkUnit]] = {}
        self._in_flight: dict[str, WorkUnit] = {}
        self._completed = RecentIds(history_size)
        self._failed = RecentIds(history_size)
        self._parked: list[ParkedUnit] = []
        self._closed = False

    def enqueue(
        self,
        unit: WorkUnit,
        priority: Optional[Priority] = None,
        delay: float = 0.0,
    ) -> WorkUnit:
        """Add ``unit``; ``priority`` defaults to the unit's trigger priority."""
        rank = int(priority if priority is not None else unit.priority)
        with self._condition:
            seq = next(self._counter)
            if delay > 0:
                heapq.heappush(self._delayed, (self._clock() + delay, seq, unit))
                self._priorities[unit.id] = rank
            else:
                heapq.heappush(self._ready, (rank, seq, unit))
            self._condition.notify()
        logger.debug(
            f"Enqueued {unit.sync_type.value} unit for tenant {unit.tenant_id}",
            extra={"unit_id": unit.id, "sync_type": unit.sync_type.value},
        )
        return unit

    def enqueue_after(self, parent: WorkUnit, child: WorkUnit) -> bool:
        """
        Run ``child`` once ``parent`` completes.

        Returns False when the parent already failed and the child was discarded.
        """
        with self._condition:
            if parent.id in self._failed:
                return False
            if parent.id in self._completed:
                release_now = True
            else:
                self._children.setdefault(parent.id, []).append(child)
                release_now = False
        if release_now:
            self.enqueue(child)
        return True

    def dequeue(self, timeout: Optional[float] = None) -> Optional[WorkUnit]:
        """
        Take the next available unit.

        ``timeout=None`` blocks until a unit is available or the queue is
        closed; ``timeout=0`` never blocks. Returns None on timeout or close.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            while True:
                self._promote_due()
                if self._ready:
                    _, _, unit = heapq.heappop(self._ready)
                    self._in_flight[unit.id] = unit
                    return unit
                if self._closed:
                    return None

                wait = None
                if self._delayed:
                    wait = max(0.0, self._delayed[0][0] - self._clock())
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._condition.wait(wait)

    def complete(self, unit: WorkUnit) -> list[WorkUnit]:
        """Mark ``unit`` done and release its dependents."""
        with self._condition:
            self._in_flight.pop(unit.id, None)
            self._completed.add(unit.id)
            children = self._children.pop(unit.id, [])
        for child in children:
            self.enqueue(child)
        return children

    def retry(self, unit: WorkUnit, delay: float) -> None:
        """Put an in-flight unit back with a delay; its dependents stay attached."""
        with self._condition:
            self._in_flight.pop(unit.id, None)
        self.enqueue(unit, delay=delay)

    def fail(self, unit: WorkUnit, error: str) -> list[WorkUnit]:
        """Park ``unit`` for inspection and discard its dependents."""
        with self._condition:
            self._in_flight.pop(unit.id, None)
            self._failed.add(unit.id)
            self._parked.append(ParkedUnit(unit=unit, error=error, parked_at=self._clock()))
            discarded = self._children.pop(unit.id, [])
        for child in discarded:
            logger.warning(
                f"Discarding {child.sync_type.value} unit after parent failure",
                extra={"unit_id": child.id, "sync_type": child.sync_type.value},
            )
        return discarded

    def cancel(self, unit: WorkUnit) -> list[WorkUnit]:
        """Drop ``unit`` and its dependents without parking it."""
        with self._condition:
            self._in_flight.pop(unit.id, None)
            self._failed.add(unit.id)
            return self._children.pop(unit.id, [])

    @property
    def parked(self) -> list[ParkedUnit]:
        with self._condition:
            return list(self._parked)

    def pending_count(self) -> int:
        with self._condition:
            return len(self._ready) + len(self._delayed)

    def in_flight_count(self) -> int:
        with self._condition:
            return len(self._in_flight)

    def next_available_in(self) -> Optional[float]:
        """Seconds until the earliest delayed unit is due, 0 if one is ready now."""
        with self._condition:
            if self._ready:
                return 0.0
            if not self._delayed:
                return None
            return max(0.0, self._delayed[0][0] - self._clock())

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def __len__(self) -> int:
        return self.pending_count()

    def _promote_due(self) -> None:
        now = self._clock()
        while self._delayed and self._delayed[0][0] <= now:
            _, seq, unit = heapq.heappop(self._delayed)
            rank = self._priorities.pop(unit.id, int(unit.priority))
            heapq.heappush(self._ready, (rank, seq, unit))
