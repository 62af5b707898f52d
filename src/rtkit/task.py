"""JoinHandle and the driver that runs one spawned unit of work."""

from __future__ import annotations

from collections.abc import Awaitable, Generator
from enum import Enum
from inspect import iscoroutine
from typing import Any

import aiologic
import anyio

from rtkit._logging import get_logger
from rtkit.errors import JoinError
from rtkit.result import Err, Ok, Result

__all__ = [
    'ExitReason',
    'JoinHandle',
    'drive',
]

logger = get_logger(__name__)


class ExitReason(Enum):
    """Reason a task exited."""

    SUCCESS = 'success'
    CANCELLED = 'cancelled'
    PANIC = 'panic'


class JoinHandle[T]:
    """Handle to a spawned unit of work.

    Await it for the value; a task that raised or was cancelled makes the
    await raise `JoinError`. Dropping the handle detaches the task: it keeps
    running, but its result can no longer be observed.

    All methods are safe to call from any thread.
    """

    __slots__ = (
        '__weakref__',
        '_cancel_event',
        '_cancel_reason',
        '_cancel_requested',
        '_done',
        '_error',
        '_exit_reason',
        '_name',
        '_value',
    )

    def __init__(self, name: str | None = None) -> None:
        self._name = name
        self._value: T | None = None
        self._error: JoinError | None = None
        self._exit_reason: ExitReason | None = None
        self._done = aiologic.Event()
        self._cancel_event = aiologic.Event()
        self._cancel_requested = False
        self._cancel_reason: str | None = None

    @property
    def name(self) -> str | None:
        return self._name

    def _complete(self, value: T) -> None:
        self._value = value
        self._exit_reason = ExitReason.SUCCESS
        self._done.set()

    def _fail(self, error: JoinError) -> None:
        self._error = error
        self._exit_reason = ExitReason.PANIC if error.is_panic() else ExitReason.CANCELLED
        self._done.set()

    def cancel(self, reason: str | None = None) -> bool:
        """Request cancellation at the task's next suspension point.

        Returns:
            False if the task had already finished, True otherwise.
        """
        if self.is_finished():
            return False
        self._cancel_requested = True
        self._cancel_reason = reason
        self._cancel_event.set()
        return True

    def is_finished(self) -> bool:
        return self._exit_reason is not None

    @property
    def exit_reason(self) -> ExitReason | None:
        """Why the task exited, or None while it is still running."""
        return self._exit_reason

    def result(self) -> Result[T, JoinError]:
        """Get the outcome of a finished task without waiting.

        Raises:
            RuntimeError: If the task is still running.
        """
        if not self.is_finished():
            msg = 'Task not yet complete. Use await or join() first.'
            raise RuntimeError(msg)
        if self._error is not None:
            return Err(self._error)
        return Ok(self._value)  # type: ignore[arg-type]

    async def join(self) -> Result[T, JoinError]:
        """Wait for the task and return its outcome as a Result."""
        await self._done
        return self.result()

    async def wait(self) -> T:
        """Wait for the task and return its value.

        Raises:
            JoinError: If the task raised or was cancelled.
        """
        await self._done
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def __await__(self) -> Generator[Any, None, T]:
        return self.wait().__await__()

    def __repr__(self) -> str:
        state = self._exit_reason.value if self._exit_reason else 'running'
        return f'JoinHandle(name={self._name!r}, state={state})'


async def _cancel_on_request(cancel_event: aiologic.Event, scope: anyio.CancelScope) -> None:
    await cancel_event
    scope.cancel()


async def drive[T](handle: JoinHandle[T], work: Awaitable[T]) -> None:
    """Run `work` to completion and record its outcome on `handle`.

    Runs on whichever event loop calls it; cancellation requests arrive
    through the handle's thread-safe event, so the caller may live on a
    different thread.
    """
    if handle._cancel_requested:
        if iscoroutine(work):
            work.close()
        handle._fail(JoinError.cancelled(handle._cancel_reason))
        return

    try:
        with anyio.CancelScope() as scope:
            async with anyio.create_task_group() as tg:
                tg.start_soon(_cancel_on_request, handle._cancel_event, scope)
                try:
                    value = await work
                except Exception as exc:
                    logger.warning('task_panicked', task=handle.name, error=repr(exc))
                    handle._fail(JoinError.panic(exc))
                else:
                    handle._complete(value)
                finally:
                    tg.cancel_scope.cancel()
    finally:
        if not handle.is_finished():
            logger.debug('task_cancelled', task=handle.name, reason=handle._cancel_reason)
            handle._fail(JoinError.cancelled(handle._cancel_reason))
