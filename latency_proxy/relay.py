import asyncio
import contextlib
import enum
import random
import time
from typing import Callable, Dict, Optional, Tuple

from .clock import DirectionClock
from .delay import random_delay
from .scheduler import PLACEHOLDER, PLACEHOLDER_HORIZON, DelayScheduler, Direction, Segment

Stream = Tuple[asyncio.StreamReader, asyncio.StreamWriter]


class RelayState(enum.Enum):
    RELAYING = "relaying"
    CLOSED_CLEAN = "closed_clean"
    CLOSED_ERROR = "closed_error"


# Sources raced on every iteration, in the order completed ones are consumed.
# Releases go first so a busy reader cannot hold back due segments.
_UPSTREAM_READ = "upstream_read"
_DOWNSTREAM_READ = "downstream_read"
_RELEASE = "release"
_SOURCE_ORDER = (_RELEASE, _UPSTREAM_READ, _DOWNSTREAM_READ)


class ConnectionRelay:
    """
    Forwards bytes between one accepted connection (upstream) and its
    connection to the target (downstream), holding every segment back for a
    random delay in milliseconds.

    `run()` returns once either side reaches EOF, dropping whatever is still
    queued, and lets any OSError from a read or write propagate. Both streams
    are closed when it exits.
    """

    def __init__(self, upstream: Stream, downstream: Stream, *, latency: int, jitter: int,
                 rng: Optional[random.Random] = None, read_chunk: int = 1024,
                 timefunc: Callable[[], float] = time.monotonic,
                 placeholder_horizon: float = PLACEHOLDER_HORIZON):
        self.upstream_reader, self.upstream_writer = upstream
        self.downstream_reader, self.downstream_writer = downstream
        self.latency = latency
        self.jitter = jitter
        self.read_chunk = read_chunk
        self.state = RelayState.RELAYING
        self._rng = rng if rng is not None else random.Random()
        self._time = timefunc
        self._horizon = placeholder_horizon
        opened_at = timefunc()
        self._clocks = {
            Direction.TO_UPSTREAM: DirectionClock(opened_at),
            Direction.TO_DOWNSTREAM: DirectionClock(opened_at),
        }
        self._scheduler: Optional[DelayScheduler] = None
        self.forwarded: Dict[Direction, int] = {d: 0 for d in Direction}
        self.segments: Dict[Direction, int] = {d: 0 for d in Direction}

    @property
    def widened(self) -> int:
        return sum(clock.widened for clock in self._clocks.values())

    def _arm(self, source: str) -> asyncio.Future:
        if source == _UPSTREAM_READ:
            coro = self.upstream_reader.read(self.read_chunk)
        elif source == _DOWNSTREAM_READ:
            coro = self.downstream_reader.read(self.read_chunk)
        else:
            coro = self._scheduler.next_ready()
        return asyncio.ensure_future(coro)

    def _enqueue(self, data: bytes, direction: Direction):
        delay_ms = random_delay(self.latency, self.jitter, self._rng)
        release = self._clocks[direction].assign(self._time(), delay_ms / 1000.0)
        self._scheduler.schedule(Segment(data, direction), release)

    async def _deliver(self, segment: Segment):
        if segment is PLACEHOLDER:
            return
        if segment.direction is Direction.TO_UPSTREAM:
            writer = self.upstream_writer
        else:
            writer = self.downstream_writer
        writer.write(segment.data)
        await writer.drain()
        self.segments[segment.direction] += 1
        self.forwarded[segment.direction] += len(segment.data)

    async def run(self):
        self._scheduler = DelayScheduler(self._time, self._horizon)
        pending = {self._arm(source): source for source in _SOURCE_ORDER}
        try:
            while True:
                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                task = min(done, key=lambda t: _SOURCE_ORDER.index(pending[t]))
                source = pending.pop(task)
                result = task.result()
                if source == _RELEASE:
                    await self._deliver(result)
                elif not result:
                    self.state = RelayState.CLOSED_CLEAN
                    return
                elif source == _UPSTREAM_READ:
                    self._enqueue(result, Direction.TO_DOWNSTREAM)
                else:
                    self._enqueue(result, Direction.TO_UPSTREAM)
                pending[self._arm(source)] = source
        except OSError:
            self.state = RelayState.CLOSED_ERROR
            raise
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            await self._close()

    async def _close(self):
        for writer in (self.upstream_writer, self.downstream_writer):
            writer.close()
        for writer in (self.upstream_writer, self.downstream_writer):
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()
