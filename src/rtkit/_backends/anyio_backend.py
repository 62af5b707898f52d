"""AnyioRuntime: reference backend built on anyio task groups and thread pools."""

from __future__ import annotations

import contextlib
import itertools
import weakref
from collections.abc import Awaitable, Callable
from functools import partial
from inspect import iscoroutine
from types import TracebackType
from typing import Any, Self

import aiologic
import anyio
import anyio.to_thread
from anyio.abc import TaskGroup

from rtkit import timer
from rtkit._config import RuntimeConfig, SpawnPolicy, get_or_init_config
from rtkit._logging import get_logger
from rtkit.channels import (
    MpscReceiver,
    MpscSender,
    OneshotReceiver,
    OneshotSender,
    WatchReceiver,
    WatchSender,
    oneshot,
    unbounded_channel,
    watch,
)
from rtkit.errors import JoinError
from rtkit.rng import ThreadLocalRng, thread_rng
from rtkit.task import JoinHandle, drive

__all__ = ['AnyioRuntime']

logger = get_logger(__name__)

type _Job = tuple[JoinHandle[Any], Awaitable[Any]]


def _discard(work: Awaitable[Any]) -> None:
    if iscoroutine(work):
        work.close()


class AnyioRuntime:
    """Runtime facade backed by anyio.

    Timers and channels need no setup. Spawning needs an entered runtime:
    entering opens the task group that owns every spawned unit, exiting
    waits for detached work and shuts down.

    Spawned work is queued on an unbounded channel to the event loop that
    will host it, so `spawn()` never suspends, never runs work inline, and may
    be called from worker threads. Where the work then runs depends on the
    configured `SpawnPolicy`:

    - SINGLE_THREAD: on the runtime's own event loop.
    - MULTI_THREAD: on one of `config.concurrency` worker threads, each
      running its own event loop for the runtime's whole life. Units are
      handed out round-robin and a worker loop hosts any number of them,
      so long-running tasks never hold back later spawns.

    `spawn_blocking()` calls run on anyio's thread pool, at most
    `config.concurrency` at a time.

    Example:
        ```python
        async def main(rt: AnyioRuntime) -> int:
            tx, rx = rt.oneshot()
            rt.spawn(answer(tx))
            return (await rx).unwrap()

        AnyioRuntime.block_on(main)
        ```
    """

    __slots__ = (
        '_config',
        '_dispatch_rx',
        '_dispatch_tx',
        '_handles',
        '_limiter',
        '_next_worker',
        '_task_count',
        '_task_group',
        '_task_group_cm',
        '_worker_limiter',
        '_workers',
    )

    def __init__(self, config: RuntimeConfig | None = None) -> None:
        self._config = config if config is not None else get_or_init_config()
        self._task_group: TaskGroup | None = None
        self._task_group_cm: Any = None
        self._dispatch_tx: MpscSender[_Job] | None = None
        self._dispatch_rx: MpscReceiver[_Job] | None = None
        self._handles: weakref.WeakSet[JoinHandle[Any]] = weakref.WeakSet()
        # CountdownEvent starts in "set" state (no pending tasks)
        self._task_count = aiologic.CountdownEvent()
        self._limiter: anyio.CapacityLimiter | None = None
        self._worker_limiter: anyio.CapacityLimiter | None = None
        self._workers: tuple[MpscSender[_Job], ...] = ()
        self._next_worker = itertools.count()

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    # --- Time ---

    def now(self) -> timer.Instant:
        return timer.Instant.now()

    def sleep(self, duration: timer.Duration) -> timer.Sleep:
        return timer.sleep(duration)

    def sleep_until(self, deadline: timer.Instant) -> timer.Sleep:
        return timer.sleep_until(deadline)

    def timeout[T](self, duration: timer.Duration, awaitable: Awaitable[T]) -> timer.Timeout[T]:
        return timer.timeout(duration, awaitable)

    def timeout_at[T](self, deadline: timer.Instant, awaitable: Awaitable[T]) -> timer.Timeout[T]:
        return timer.timeout_at(deadline, awaitable)

    # --- Channels ---

    def oneshot[T](self) -> tuple[OneshotSender[T], OneshotReceiver[T]]:
        return oneshot()

    def unbounded_channel[T](self) -> tuple[MpscSender[T], MpscReceiver[T]]:
        return unbounded_channel()

    def watch[T](self, initial: T) -> tuple[WatchSender[T], WatchReceiver[T]]:
        return watch(initial)

    # --- Randomness ---

    def thread_rng(self) -> ThreadLocalRng:
        return thread_rng()

    # --- Spawning ---

    @staticmethod
    def is_panic(error: JoinError) -> bool:
        return error.is_panic()

    def _route(self, on_loop: bool) -> MpscSender[_Job] | None:
        """Pick the queue for a job: the runtime's own loop or the next worker loop."""
        if on_loop:
            return self._dispatch_tx
        workers = self._workers
        if not workers:
            return None
        return workers[next(self._next_worker) % len(workers)]

    def _submit[T](self, handle: JoinHandle[T], work: Awaitable[T], on_loop: bool) -> JoinHandle[T]:
        queue = self._route(on_loop)
        if queue is None:
            _discard(work)
            msg = 'Runtime must be used as async context manager: async with AnyioRuntime() as rt:'
            raise RuntimeError(msg)

        self._task_count.up()
        self._handles.add(handle)
        try:
            queued = queue.send((handle, work)).is_ok()
        except RuntimeError:
            queued = False
        if not queued:
            self._task_count.down()
            _discard(work)
            msg = 'Runtime is shut down'
            raise RuntimeError(msg)
        return handle

    def spawn[T](self, work: Awaitable[T], *, name: str | None = None) -> JoinHandle[T]:
        """Schedule `work` for concurrent execution and return its handle.

        Args:
            work: A coroutine or other awaitable.
            name: Optional task name for logs; defaults to the coroutine's name.

        Raises:
            RuntimeError: If the runtime has not been entered or is shut down.
        """
        handle: JoinHandle[T] = JoinHandle(name or getattr(work, '__qualname__', None))
        return self._submit(handle, work, self._config.spawn_policy is SpawnPolicy.SINGLE_THREAD)

    def spawn_blocking[T](self, fn: Callable[..., T], *args: Any, name: str | None = None) -> JoinHandle[T]:
        """Run a synchronous callable on a worker thread.

        At most `config.concurrency` calls run at once. The call itself
        cannot be interrupted; cancelling the handle only stops waiting for it.
        """
        handle: JoinHandle[T] = JoinHandle(name or getattr(fn, '__qualname__', None))
        work = anyio.to_thread.run_sync(partial(fn, *args), limiter=self._limiter, abandon_on_cancel=True)
        return self._submit(handle, work, True)

    async def _serve(self, jobs: MpscReceiver[_Job]) -> None:
        """Host every job from `jobs` on the calling event loop until the queue closes."""
        async with anyio.create_task_group() as tg:
            async for handle, work in jobs:
                tg.start_soon(self._host, handle, work, name=handle.name)

    async def _host(self, handle: JoinHandle[Any], work: Awaitable[Any]) -> None:
        try:
            await drive(handle, work)
        finally:
            if not handle.is_finished():
                _discard(work)
                handle._fail(JoinError.cancelled('runtime shut down before the task started'))
            self._task_count.down()

    async def _run_worker(self, jobs: MpscReceiver[_Job]) -> None:
        """Run one worker event loop on its own thread until its queue closes."""
        serve = partial(
            anyio.run,
            self._serve,
            jobs,
            backend=self._config.backend.value,
            backend_options=self._config.backend_kwargs or None,
        )
        try:
            await anyio.to_thread.run_sync(serve, limiter=self._worker_limiter)
        finally:
            self._settle_unstarted(jobs)

    def _start_workers(self, count: int) -> None:
        tg = self._task_group
        assert tg is not None
        # One thread per worker loop for the runtime's whole life.
        self._worker_limiter = anyio.CapacityLimiter(count)
        self._next_worker = itertools.count()
        queues = []
        for index in range(count):
            tx, rx = unbounded_channel()
            queues.append(tx)
            tg.start_soon(self._run_worker, rx, name=f'rtkit-worker-{index}')
        self._workers = tuple(queues)
        logger.debug('worker_loops_started', workers=count)

    def _close_queues(self) -> None:
        if self._dispatch_tx is not None:
            self._dispatch_tx.close()
        for queue in self._workers:
            queue.close()

    # --- Lifecycle ---

    async def __aenter__(self) -> Self:
        if self._task_group is not None:
            msg = 'Runtime is already running'
            raise RuntimeError(msg)

        self._limiter = anyio.CapacityLimiter(self._config.concurrency)
        self._task_group_cm = anyio.create_task_group()
        self._task_group = await self._task_group_cm.__aenter__()
        self._dispatch_tx, self._dispatch_rx = unbounded_channel()
        self._task_group.start_soon(self._serve, self._dispatch_rx, name='rtkit-dispatch')
        if self._config.spawn_policy is SpawnPolicy.MULTI_THREAD:
            self._start_workers(self._config.concurrency)
        logger.debug(
            'runtime_started',
            backend=self._config.backend.value,
            spawn_policy=self._config.spawn_policy.value,
            concurrency=self._config.concurrency,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Wait for detached work, or cancel it if the body raised."""
        await self.shutdown(wait=exc_type is None)

    async def shutdown(self, *, wait: bool = True, timeout: float | None = None) -> None:
        """Shut the runtime down.

        Args:
            wait: If True, wait for spawned work (detached included) to
                finish. If False, cancel it.
            timeout: Maximum time to wait before cancelling what remains.
        """
        if self._task_group is None:
            return

        try:
            if wait:
                await self._wait_for_tasks(timeout)
            else:
                self._cancel_all_tasks()
                with contextlib.suppress(TimeoutError), anyio.fail_after(0.5):
                    await self._task_count
        finally:
            self._close_queues()
            if self._task_count.value:
                self._cancel_all_tasks()
                self._task_group.cancel_scope.cancel()

        await self._task_group_cm.__aexit__(None, None, None)
        if self._dispatch_rx is not None:
            self._settle_unstarted(self._dispatch_rx)
            self._dispatch_rx = None

        logger.debug('runtime_stopped')
        self._task_group = None
        self._task_group_cm = None
        self._dispatch_tx = None
        self._workers = ()

    async def _wait_for_tasks(self, timeout: float | None) -> None:
        if self._task_count.value == 0:
            return
        try:
            with anyio.fail_after(timeout):
                await self._task_count
        except TimeoutError:
            logger.warning('runtime_shutdown_timeout', pending=self._task_count.value)
            self._cancel_all_tasks()
            with contextlib.suppress(TimeoutError), anyio.fail_after(0.5):
                await self._task_count

    def _cancel_all_tasks(self) -> None:
        for handle in list(self._handles):
            handle.cancel('runtime shutting down')

    def _settle_unstarted(self, jobs: MpscReceiver[_Job]) -> None:
        """Cancel jobs that were queued but never reached an event loop."""
        while (job := jobs.try_recv()).is_ok():
            handle, work = job.unwrap()
            _discard(work)
            handle._fail(JoinError.cancelled('runtime shut down before the task started'))
            self._task_count.down()
        jobs.close()

    @classmethod
    def block_on[T](
        cls,
        main: Callable[..., Awaitable[T]],
        *args: Any,
        config: RuntimeConfig | None = None,
    ) -> T:
        """Run `main(rt, *args)` on a fresh event loop inside an entered runtime."""
        resolved = config if config is not None else get_or_init_config()

        async def _entry() -> T:
            async with cls(resolved) as rt:
                return await main(rt, *args)

        return anyio.run(_entry, backend=resolved.backend.value, backend_options=resolved.backend_kwargs or None)
