"""Oneshot channel implementation: single-value, single-use."""

from __future__ import annotations

import threading
from collections.abc import Generator
from typing import Any

import aiologic

from rtkit.channels._handle import Handle
from rtkit.errors import AlreadySent, ChannelClosed, ChannelEmpty, RecvError, SendError
from rtkit.result import Err, Ok, Result

__all__ = ['OneshotReceiver', 'OneshotSender', 'oneshot']


class _OneshotState[T]:
    """Shared state for a oneshot sender/receiver pair.

    `event` is set once the sender is released, with or without a value.
    """

    __slots__ = ('event', 'has_value', 'lock', 'rx_closed', 'tx_closed', 'value')

    def __init__(self) -> None:
        # Reentrant: a finalizer releasing a handle may run while this thread holds it.
        self.lock = threading.RLock()
        self.event = aiologic.Event()
        self.value: T | None = None
        self.has_value = False
        self.tx_closed = False
        self.rx_closed = False

    def release_sender(self) -> None:
        with self.lock:
            self.tx_closed = True
        self.event.set()

    def release_receiver(self) -> None:
        with self.lock:
            self.rx_closed = True
            self.value = None
            self.has_value = False


class OneshotSender[T](Handle):
    """Oneshot channel sender - single value, single use.

    `send()` consumes the sender. Releasing it without sending makes the
    receiver resolve with `Err(RecvError)`.
    """

    __slots__ = ('_state', '_used')

    def __init__(self, state: _OneshotState[T]) -> None:
        self._state = state
        self._used = False
        self._register(state.release_sender)

    def send(self, value: T) -> Result[None, SendError[T]]:
        """Send the value and consume the sender.

        Returns:
            Ok(None) if the value was handed over.
            Err(SendError(value)) if the receiver is gone; the value is
            returned to the caller.

        Raises:
            AlreadySentError: If the sender was already used or closed.
        """
        if self._used or self.released:
            raise AlreadySent().to_exception()
        self._used = True

        state = self._state
        with state.lock:
            delivered = not state.rx_closed
            if delivered:
                state.value = value
                state.has_value = True
        self.close()

        if delivered:
            return Ok(None)
        return Err(SendError(value))

    def is_closed(self) -> bool:
        """True once the receiver is gone."""
        return self._state.rx_closed


class OneshotReceiver[T](Handle):
    """Oneshot channel receiver - resolves once with the value or an error.

    Awaiting the receiver is the same as awaiting `recv()`.
    """

    __slots__ = ('_consumed', '_state')

    def __init__(self, state: _OneshotState[T]) -> None:
        self._state = state
        self._consumed = False
        self._register(state.release_receiver)

    def _take(self) -> Result[T, RecvError]:
        state = self._state
        with state.lock:
            if state.has_value:
                value = state.value
                state.value = None
                state.has_value = False
                self._consumed = True
                return Ok(value)  # type: ignore[arg-type]
        return Err(ChannelClosed(reason='sender dropped without sending'))

    async def recv(self) -> Result[T, RecvError]:
        """Wait for the value.

        Returns:
            Ok(value) once sent.
            Err(RecvError) if the sender was released without sending, or
            the value was already received.
        """
        if self._consumed:
            return Err(ChannelClosed(reason='value already received'))
        self._ensure_open()
        await self._state.event
        return self._take()

    def try_recv(self) -> Result[T, ChannelEmpty | ChannelClosed]:
        """Take the value without waiting.

        Returns:
            Ok(value) if it has been sent.
            Err(ChannelEmpty) if the sender is still pending.
            Err(ChannelClosed) if the sender is gone without sending.
        """
        if self._consumed:
            return Err(ChannelClosed(reason='value already received'))
        self._ensure_open()
        with self._state.lock:
            pending = not self._state.tx_closed and not self._state.has_value
        if pending:
            return Err(ChannelEmpty())
        return self._take()

    def __await__(self) -> Generator[Any, None, Result[T, RecvError]]:
        return self.recv().__await__()


def oneshot[T]() -> tuple[OneshotSender[T], OneshotReceiver[T]]:
    """Create a oneshot sender/receiver pair."""
    state: _OneshotState[T] = _OneshotState()
    return OneshotSender(state), OneshotReceiver(state)
