"""Unbounded multi-producer single-consumer channel with weak senders.

Senders never wait: the queue has no capacity limit. Strong senders keep
the channel open; when the last one is released the receiver drains what
is queued and then sees `Nothing`. A `WeakMpscSender` does not keep the
channel open and can be upgraded only while the channel is still viable.

Upgrade policy: `upgrade()` succeeds only while at least one strong sender
exists and the receiver is open. Once the receiver is gone, upgrading
fails even if strong senders remain, since nothing sent could be delivered.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import UTC, datetime

import aiologic

from rtkit.channels._handle import Handle
from rtkit.channels.stats import ChannelStats
from rtkit.errors import ChannelClosed, ChannelEmpty, SendError
from rtkit.result import Err, Maybe, Nothing, Ok, Result, Some

__all__ = ['MpscReceiver', 'MpscSender', 'WeakMpscSender', 'unbounded_channel']


class _MpscState[T]:
    """Shared queue, reference counts and the receiver's wakeup event."""

    __slots__ = (
        'created_at',
        'high_watermark',
        'lock',
        'queue',
        'rx_closed',
        'total_received',
        'total_sent',
        'tx_count',
        'waiter',
        'weak_count',
    )

    def __init__(self) -> None:
        # Reentrant: a finalizer releasing a handle may run while this thread holds it.
        self.lock = threading.RLock()
        self.queue: deque[T] = deque()
        self.tx_count = 1
        self.weak_count = 0
        self.rx_closed = False
        self.waiter: aiologic.Event | None = None
        self.created_at = datetime.now(UTC)
        self.high_watermark = 0
        self.total_sent = 0
        self.total_received = 0

    def _take_waiter(self) -> aiologic.Event | None:
        waiter = self.waiter
        self.waiter = None
        return waiter

    def release_sender(self) -> None:
        with self.lock:
            self.tx_count -= 1
            waiter = self._take_waiter() if self.tx_count == 0 else None
        if waiter is not None:
            waiter.set()

    def release_weak(self) -> None:
        with self.lock:
            self.weak_count -= 1

    def release_receiver(self) -> None:
        with self.lock:
            self.rx_closed = True
            self.queue.clear()


class MpscSender[T](Handle):
    """Strong sending half. Clone it for additional producers."""

    __slots__ = ('_state',)

    def __init__(self, state: _MpscState[T]) -> None:
        self._state = state
        self._register(state.release_sender)

    def send(self, msg: T) -> Result[None, SendError[T]]:
        """Queue a message without waiting.

        Returns:
            Ok(None) once queued.
            Err(SendError(msg)) if the receiver is gone.
        """
        self._ensure_open()
        state = self._state
        with state.lock:
            if state.rx_closed:
                return Err(SendError(msg))
            state.queue.append(msg)
            state.total_sent += 1
            state.high_watermark = max(state.high_watermark, len(state.queue))
            waiter = state._take_waiter()
        if waiter is not None:
            waiter.set()
        return Ok(None)

    def clone(self) -> MpscSender[T]:
        """Create another strong sender on the same channel."""
        self._ensure_open()
        state = self._state
        with state.lock:
            state.tx_count += 1
        return MpscSender(state)

    def downgrade(self) -> WeakMpscSender[T]:
        """Create a weak sender that does not keep the channel open."""
        self._ensure_open()
        state = self._state
        with state.lock:
            state.weak_count += 1
        return WeakMpscSender(state)

    def is_closed(self) -> bool:
        """True once the receiver is gone."""
        return self._state.rx_closed

    def same_channel(self, other: MpscSender[T]) -> bool:
        return self._state is other._state


class WeakMpscSender[T](Handle):
    """Non-owning sender handle. See the module docstring for the upgrade policy."""

    __slots__ = ('_state',)

    def __init__(self, state: _MpscState[T]) -> None:
        self._state = state
        self._register(state.release_weak)

    def upgrade(self) -> MpscSender[T] | None:
        """Get a strong sender, or None if the channel is no longer viable."""
        if self.released:
            return None
        state = self._state
        with state.lock:
            if state.tx_count == 0 or state.rx_closed:
                return None
            state.tx_count += 1
        return MpscSender(state)


class MpscReceiver[T](Handle):
    """The single receiving half.

    `recv()` yields `Some(msg)` in per-sender FIFO order and `Nothing` once
    every strong sender is released and the queue is drained. Releasing the
    receiver discards anything still queued and makes later sends fail.
    """

    __slots__ = ('_state',)

    def __init__(self, state: _MpscState[T]) -> None:
        self._state = state
        self._register(state.release_receiver)

    async def recv(self) -> Maybe[T]:
        """Wait for the next message.

        Cancelling a pending `recv()` loses no messages.
        """
        state = self._state
        while True:
            with state.lock:
                if state.queue:
                    state.total_received += 1
                    return Some(state.queue.popleft())
                if state.tx_count == 0 or state.rx_closed:
                    return Nothing
                waiter = aiologic.Event()
                state.waiter = waiter
            await waiter

    def try_recv(self) -> Result[T, ChannelEmpty | ChannelClosed]:
        """Take the next message without waiting.

        Returns:
            Ok(msg) if one is queued.
            Err(ChannelEmpty) if none is queued but senders remain.
            Err(ChannelClosed) if none is queued and no sender remains.
        """
        state = self._state
        with state.lock:
            if state.queue:
                state.total_received += 1
                return Ok(state.queue.popleft())
            if state.tx_count == 0 or state.rx_closed:
                return Err(ChannelClosed(reason='all senders dropped'))
        return Err(ChannelEmpty())

    def is_closed(self) -> bool:
        """True once no strong sender remains (queued messages may still be drained)."""
        return self._state.tx_count == 0 or self._state.rx_closed

    def sender_count(self) -> int:
        return self._state.tx_count

    def statistics(self) -> ChannelStats:
        state = self._state
        with state.lock:
            return ChannelStats(
                sender_count=state.tx_count,
                weak_sender_count=state.weak_count,
                queue_size=len(state.queue),
                senders_closed=state.tx_count == 0,
                receiver_closed=state.rx_closed,
                created_at=state.created_at,
                high_watermark=state.high_watermark,
                total_sent=state.total_sent,
                total_received=state.total_received,
            )

    def __len__(self) -> int:
        """Number of queued messages."""
        return len(self._state.queue)

    def is_empty(self) -> bool:
        return not self._state.queue

    def __aiter__(self) -> MpscReceiver[T]:
        return self

    async def __anext__(self) -> T:
        match await self.recv():
            case Some(msg):
                return msg
            case _:
                raise StopAsyncIteration


def unbounded_channel[T]() -> tuple[MpscSender[T], MpscReceiver[T]]:
    """Create an unbounded MPSC channel."""
    state: _MpscState[T] = _MpscState()
    return MpscSender(state), MpscReceiver(state)
