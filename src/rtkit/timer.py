"""Time abstraction: monotonic Instant plus sleep and timeout primitives.

Deadlines are fixed when a `Sleep` or `Timeout` is created, so callers can
chain them off a recorded `Instant` without accumulating drift:

    ```python
    started = Instant.now()
    await sleep_until(started + 0.150)
    match await timeout_at(started + 0.300, rx.recv()):
        case Ok(msg): ...
        case Err(Elapsed()): ...
    ```
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Generator
from datetime import timedelta
from inspect import iscoroutine
from typing import Any

import anyio
import anyio.lowlevel
import msgspec

from rtkit.errors import Elapsed
from rtkit.result import Err, Ok, Result

__all__ = [
    'Instant',
    'Sleep',
    'Timeout',
    'sleep',
    'sleep_until',
    'timeout',
    'timeout_at',
]

type Duration = float | timedelta


def _to_seconds(duration: Duration) -> float:
    if isinstance(duration, timedelta):
        duration = duration.total_seconds()
    return max(0.0, float(duration))


class Instant(msgspec.Struct, frozen=True, order=True, gc=False):
    """Opaque monotonic timestamp.

    Instants are totally ordered. Subtracting two instants yields the
    duration between them in seconds; adding seconds yields a new instant.
    Only compare instants produced by the same process clock.
    """

    ticks: float

    @classmethod
    def now(cls) -> Instant:
        return cls(time.monotonic())

    def elapsed(self) -> float:
        """Seconds since this instant, never negative."""
        return max(0.0, time.monotonic() - self.ticks)

    def duration_since(self, earlier: Instant) -> float:
        """Seconds from `earlier` to this instant, saturating at zero."""
        return max(0.0, self.ticks - earlier.ticks)

    def __add__(self, other: Duration) -> Instant:
        if isinstance(other, timedelta):
            other = other.total_seconds()
        return Instant(self.ticks + other)

    def __sub__(self, other: Instant | Duration) -> Any:
        if isinstance(other, Instant):
            return self.ticks - other.ticks
        if isinstance(other, timedelta):
            other = other.total_seconds()
        return Instant(self.ticks - other)


class Sleep:
    """Suspension that resolves once its deadline has passed.

    Never resolves before the deadline: the monotonic clock is re-checked
    after every wakeup and any remainder is slept again. Creating a Sleep
    and never awaiting it has no side effect.
    """

    __slots__ = ('_deadline',)

    def __init__(self, deadline: Instant) -> None:
        self._deadline = deadline

    @property
    def deadline(self) -> Instant:
        return self._deadline

    def is_elapsed(self) -> bool:
        return Instant.now() >= self._deadline

    def reset(self, deadline: Instant) -> None:
        """Move the deadline. Affects awaits that start after the call."""
        self._deadline = deadline

    async def wait(self) -> None:
        remaining = self._deadline - Instant.now()
        if remaining <= 0:
            await anyio.lowlevel.checkpoint()
            return
        while remaining > 0:
            await anyio.sleep(remaining)
            remaining = self._deadline - Instant.now()

    def __await__(self) -> Generator[Any, None, None]:
        return self.wait().__await__()

    def __repr__(self) -> str:
        return f'Sleep(deadline={self._deadline!r})'


class Timeout[T]:
    """Races an awaitable against a deadline.

    Awaiting yields `Ok(result)` if the operation finishes first. If the
    deadline passes first the operation is cancelled at its next suspension
    point, is not driven again, and `Err(Elapsed)` is returned. Exceptions
    raised by the operation propagate unchanged.
    """

    __slots__ = ('_awaitable', '_consumed', '_deadline', '_seconds')

    def __init__(self, awaitable: Awaitable[T], deadline: Instant, seconds: float) -> None:
        self._awaitable = awaitable
        self._deadline = deadline
        self._seconds = seconds
        self._consumed = False

    @property
    def deadline(self) -> Instant:
        return self._deadline

    async def wait(self) -> Result[T, Elapsed]:
        if self._consumed:
            msg = 'Timeout can only be awaited once'
            raise RuntimeError(msg)
        self._consumed = True

        remaining = max(0.0, self._deadline - Instant.now())
        with anyio.move_on_after(remaining):
            return Ok(await self._awaitable)
        return Err(Elapsed(self._seconds, getattr(self._awaitable, '__qualname__', None)))

    def close(self) -> None:
        """Release an un-awaited operation without running it."""
        if not self._consumed:
            self._consumed = True
            if iscoroutine(self._awaitable):
                self._awaitable.close()

    def __await__(self) -> Generator[Any, None, Result[T, Elapsed]]:
        return self.wait().__await__()


def sleep(duration: Duration) -> Sleep:
    """Sleep for `duration` seconds (or a timedelta), measured from now."""
    return Sleep(Instant.now() + _to_seconds(duration))


def sleep_until(deadline: Instant) -> Sleep:
    """Sleep until `deadline` has passed."""
    return Sleep(deadline)


def timeout[T](duration: Duration, awaitable: Awaitable[T]) -> Timeout[T]:
    """Race `awaitable` against a deadline `duration` seconds from now."""
    seconds = _to_seconds(duration)
    return Timeout(awaitable, Instant.now() + seconds, seconds)


def timeout_at[T](deadline: Instant, awaitable: Awaitable[T]) -> Timeout[T]:
    """Race `awaitable` against an absolute deadline."""
    return Timeout(awaitable, deadline, max(0.0, deadline - Instant.now()))
