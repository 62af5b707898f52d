"""Runtime facade protocols.

Each primitive is a small protocol of its own; `AsyncRuntime` composes them
so application code takes one backend parameter instead of many:

    ```python
    async def heartbeat(rt: AsyncRuntime, peers: MpscTx[str]) -> None:
        while True:
            await rt.sleep(0.05)
            if peers.send('ping').is_err():
                return
    ```

Implementations:
    - AnyioRuntime: anyio task group over asyncio or trio, aiologic wakeups
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rtkit.channels.protocols import MpscRx, MpscTx, OneshotRx, OneshotTx, WatchRx, WatchTx
    from rtkit.errors import JoinError
    from rtkit.rng import ThreadLocalRng
    from rtkit.task import JoinHandle
    from rtkit.timer import Duration, Instant, Sleep, Timeout

__all__ = [
    'AsyncRuntime',
    'MpscFactory',
    'OneshotFactory',
    'Spawner',
    'Timer',
    'WatchFactory',
]


@runtime_checkable
class Timer(Protocol):
    """Monotonic clock, sleeps and deadlines."""

    def now(self) -> Instant: ...

    def sleep(self, duration: Duration) -> Sleep:
        """Resolve once `duration` has elapsed, never earlier."""
        ...

    def sleep_until(self, deadline: Instant) -> Sleep:
        """Resolve once `deadline` has passed, never earlier."""
        ...

    def timeout[T](self, duration: Duration, awaitable: Awaitable[T]) -> Timeout[T]:
        """Race `awaitable` against a deadline `duration` from now."""
        ...

    def timeout_at[T](self, deadline: Instant, awaitable: Awaitable[T]) -> Timeout[T]:
        """Race `awaitable` against an absolute deadline."""
        ...


@runtime_checkable
class OneshotFactory(Protocol):
    def oneshot[T](self) -> tuple[OneshotTx[T], OneshotRx[T]]: ...


@runtime_checkable
class MpscFactory(Protocol):
    def unbounded_channel[T](self) -> tuple[MpscTx[T], MpscRx[T]]: ...


@runtime_checkable
class WatchFactory(Protocol):
    def watch[T](self, initial: T) -> tuple[WatchTx[T], WatchRx[T]]: ...


@runtime_checkable
class Spawner(Protocol):
    """Concurrent execution of units of work."""

    def spawn[T](self, work: Awaitable[T], *, name: str | None = None) -> JoinHandle[T]:
        """Schedule `work` and return immediately; it never runs inline."""
        ...

    def spawn_blocking[T](self, fn: Callable[..., T], *args: Any, name: str | None = None) -> JoinHandle[T]:
        """Run a synchronous callable on a worker thread."""
        ...

    def is_panic(self, error: JoinError) -> bool:
        """Whether a JoinError came from the work raising."""
        ...


@runtime_checkable
class AsyncRuntime(Timer, OneshotFactory, MpscFactory, WatchFactory, Spawner, Protocol):
    """Every capability application code needs from a concurrency runtime."""

    def thread_rng(self) -> ThreadLocalRng:
        """Random source for the calling thread only."""
        ...
