import asyncio
import enum
import heapq
import itertools
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

# Placeholder entries are released this far in the future (seconds).
PLACEHOLDER_HORIZON = 3600 * 24 * 365


class Direction(enum.Enum):
    TO_UPSTREAM = "to_upstream"
    TO_DOWNSTREAM = "to_downstream"


@dataclass(frozen=True)
class Segment:
    data: bytes
    direction: Optional[Direction]


# Keeps the queue non-empty; it is never written anywhere.
PLACEHOLDER = Segment(b"", None)


@dataclass(order=True)
class ScheduledEntry:
    release_time: float
    seq: int
    segment: Segment = field(compare=False)


class DelayScheduler:
    """
    Time-ordered queue of pending segments.

    `next_ready()` sleeps until the earliest release time and wakes early when
    `schedule()` inserts something that is due sooner. The queue always holds a
    far-future placeholder, so a waiter never sees it empty; extracting the
    placeholder seeds a fresh one.
    """

    def __init__(self, timefunc: Callable[[], float] = time.monotonic,
                 horizon: float = PLACEHOLDER_HORIZON):
        self._time = timefunc
        self._horizon = horizon
        self._heap: List[ScheduledEntry] = []
        self._counter = itertools.count()
        self._changed = asyncio.Event()
        self._seed_placeholder()

    def __len__(self) -> int:
        return sum(1 for entry in self._heap if entry.segment is not PLACEHOLDER)

    def _seed_placeholder(self):
        self._push(PLACEHOLDER, self._time() + self._horizon)

    def _push(self, segment: Segment, release_time: float) -> ScheduledEntry:
        entry = ScheduledEntry(release_time, next(self._counter), segment)
        heapq.heappush(self._heap, entry)
        return entry

    def schedule(self, segment: Segment, release_time: float):
        entry = self._push(segment, release_time)
        if self._heap[0] is entry:
            self._changed.set()

    async def next_ready(self) -> Segment:
        while True:
            head = self._heap[0]
            remaining = head.release_time - self._time()
            if remaining <= 0:
                heapq.heappop(self._heap)
                if head.segment is PLACEHOLDER:
                    self._seed_placeholder()
                return head.segment
            self._changed.clear()
            # Woken by the timer when the head is due, or by schedule() on a new head.
            timer = asyncio.get_running_loop().call_later(remaining, self._changed.set)
            try:
                await self._changed.wait()
            finally:
                timer.cancel()
