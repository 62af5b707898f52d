"""Channel protocols: the contract every backend's channel halves satisfy.

Application code that only names these protocols runs unchanged on any
backend. Uses PEP 695 type parameter syntax so type checkers infer
variance: sending halves are contravariant in T, receiving halves covariant.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable, Generator
from typing import TYPE_CHECKING, Any, Protocol, Self

from rtkit.errors import ChannelClosed, ChannelEmpty, RecvError, SendError
from rtkit.result import Maybe, Result

if TYPE_CHECKING:
    from rtkit.channels.watch import Ref

__all__ = [
    'MpscRx',
    'MpscTx',
    'OneshotRx',
    'OneshotTx',
    'WatchRx',
    'WatchTx',
    'WeakMpscTx',
]


class OneshotTx[T](Protocol):
    """Sending half of a oneshot channel."""

    @abstractmethod
    def send(self, value: T) -> Result[None, SendError[T]]:
        """Send the value and consume the sender.

        Returns the value inside `Err(SendError)` if the receiver is gone.

        Example:
            ```python
            tx, rx = rt.oneshot()
            match tx.send(42):
                case Ok(_): ...
                case Err(SendError(value)): fallback(value)
            ```
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the sender without sending. The receiver sees RecvError."""
        ...


class OneshotRx[T](Protocol):
    """Receiving half of a oneshot channel. Awaiting it equals `recv()`."""

    @abstractmethod
    def __await__(self) -> Generator[Any, None, Result[T, RecvError]]: ...

    @abstractmethod
    async def recv(self) -> Result[T, RecvError]:
        """Wait for the value, or RecvError if the sender is gone without sending."""
        ...

    @abstractmethod
    def try_recv(self) -> Result[T, ChannelEmpty | ChannelClosed]:
        """Take the value without waiting."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the receiver. A later send returns its value."""
        ...


class MpscTx[T](Protocol):
    """Strong sending half of an unbounded MPSC channel."""

    @abstractmethod
    def send(self, msg: T) -> Result[None, SendError[T]]:
        """Queue a message without waiting; fails only if the receiver is gone.

        Example:
            ```python
            tx, rx = rt.unbounded_channel()
            tx.send('append-entries').unwrap()
            ```
        """
        ...

    @abstractmethod
    def clone(self) -> Self:
        """Create another strong sender on the same channel."""
        ...

    @abstractmethod
    def downgrade(self) -> WeakMpscTx[T]:
        """Create a weak sender that does not keep the channel open."""
        ...

    @abstractmethod
    def is_closed(self) -> bool:
        """True once the receiver is gone."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release this sender. The last release ends the stream."""
        ...


class WeakMpscTx[T](Protocol):
    """Non-owning sender handle."""

    @abstractmethod
    def upgrade(self) -> MpscTx[T] | None:
        """Get a strong sender, or None once the channel is no longer viable."""
        ...


class MpscRx[T](Protocol):
    """The single receiving half of an unbounded MPSC channel."""

    @abstractmethod
    async def recv(self) -> Maybe[T]:
        """Wait for the next message; `Nothing` once closed and drained.

        Example:
            ```python
            while (msg := await rx.recv()) is not Nothing:
                handle(msg.value)
            ```
        """
        ...

    @abstractmethod
    def try_recv(self) -> Result[T, ChannelEmpty | ChannelClosed]:
        """Take the next message without waiting."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the receiver; queued messages are discarded."""
        ...

    def __aiter__(self) -> Self: ...

    async def __anext__(self) -> T: ...


class WatchTx[T](Protocol):
    """Sending half of a watch channel."""

    @abstractmethod
    def send(self, value: T) -> Result[None, SendError[T]]:
        """Replace the value; fails with the value if no receiver remains."""
        ...

    @abstractmethod
    def send_if_modified(self, modify: Callable[[T], bool]) -> bool:
        """Mutate in place; notify receivers only if `modify` returns True."""
        ...

    @abstractmethod
    def send_modify(self, modify: Callable[[T], object]) -> None:
        """Mutate in place and always notify."""
        ...

    @abstractmethod
    def borrow_watched(self) -> Ref[T]:
        """Read the current value without affecting any receiver."""
        ...

    @abstractmethod
    def subscribe(self) -> WatchRx[T]:
        """Create a receiver that has already seen the current value."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release this sender. Once all are gone, receivers see RecvError."""
        ...


class WatchRx[T](Protocol):
    """Receiving half of a watch channel."""

    @abstractmethod
    async def changed(self) -> Result[None, RecvError]:
        """Wait for an unseen value and mark it seen.

        Example:
            ```python
            while (await rx.changed()).is_ok():
                with rx.borrow_watched() as metrics:
                    report(metrics)
            ```
        """
        ...

    @abstractmethod
    def borrow_watched(self) -> Ref[T]:
        """Read the current value without marking it seen."""
        ...

    @abstractmethod
    def borrow_and_update(self) -> Ref[T]:
        """Read the current value and mark it seen."""
        ...

    @abstractmethod
    def has_changed(self) -> Result[bool, RecvError]:
        """Whether an unseen value exists, without waiting."""
        ...

    @abstractmethod
    def clone(self) -> Self:
        """Create another receiver with the same seen state."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release this receiver."""
        ...
