"""Error values for channel, timer and task operations.

Each expected failure comes in two forms: a frozen msgspec struct carried
inside `Err(...)`, and an exception raised by `unwrap()` or by code that
prefers exceptions. `to_exception()` and `to_struct()` convert between them.
"""

from __future__ import annotations

from enum import Enum

import msgspec

__all__ = [
    'AlreadySent',
    'AlreadySentError',
    'ChannelClosed',
    'ChannelClosedError',
    'ChannelEmpty',
    'ChannelEmptyError',
    'Elapsed',
    'ElapsedError',
    'JoinError',
    'JoinErrorKind',
    'RecvError',
    'SendError',
    'SendException',
]


# --- Channel Errors ---


class ChannelClosed(msgspec.Struct, frozen=True, gc=False):
    """The other half of the channel is gone."""

    reason: str | None = None

    def to_exception(self) -> ChannelClosedError:
        """Convert to exception for raise-based code."""
        return ChannelClosedError(self.reason)


class ChannelClosedError(Exception):
    """Raised form of `ChannelClosed`."""

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(reason or 'Channel peer is closed')

    def to_struct(self) -> ChannelClosed:
        return ChannelClosed(self.reason)


RecvError = ChannelClosed
"""Receive-side failure: the sending half is gone with nothing left to observe."""


class ChannelEmpty(msgspec.Struct, frozen=True, gc=False):
    """No message is queued yet, but senders remain."""

    def to_exception(self) -> ChannelEmptyError:
        return ChannelEmptyError()


class ChannelEmptyError(Exception):
    """Raised form of `ChannelEmpty`."""

    def __init__(self) -> None:
        super().__init__('No message queued')

    def to_struct(self) -> ChannelEmpty:
        return ChannelEmpty()


class SendError[T](msgspec.Struct, frozen=True):
    """A send failed because no receiver remains.

    Carries the undelivered value so the caller can inspect or redeliver it.
    """

    value: T

    def to_exception(self) -> SendException:
        return SendException(self.value)


class SendException(Exception):
    """A send failed because no receiver remains - exception variant."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__('Send failed: no receiver remains')

    def to_struct(self) -> SendError[object]:
        return SendError(self.value)


class AlreadySent(msgspec.Struct, frozen=True, gc=False):
    """A oneshot sender was used twice - struct variant."""

    def to_exception(self) -> AlreadySentError:
        return AlreadySentError()


class AlreadySentError(Exception):
    """A oneshot sender was used twice - exception variant."""

    def __init__(self) -> None:
        super().__init__('Oneshot sender already used')

    def to_struct(self) -> AlreadySent:
        return AlreadySent()


# --- Timer Errors ---


class Elapsed(msgspec.Struct, frozen=True, gc=False):
    """Deadline passed before the raced operation finished - struct variant."""

    seconds: float
    operation: str | None = None

    def to_exception(self) -> ElapsedError:
        return ElapsedError(self.seconds, self.operation)


class ElapsedError(TimeoutError):
    """Deadline passed before the raced operation finished - exception variant."""

    def __init__(self, seconds: float, operation: str | None = None) -> None:
        self.seconds = seconds
        self.operation = operation
        msg = f'Deadline elapsed after {seconds:.3f}s'
        if operation:
            msg = f'{operation}: {msg}'
        super().__init__(msg)

    def to_struct(self) -> Elapsed:
        return Elapsed(self.seconds, self.operation)


# --- Task Errors ---


class JoinErrorKind(Enum):
    """Why a spawned unit of work produced no value."""

    PANIC = 'panic'
    CANCELLED = 'cancelled'


class JoinError(Exception):
    """A spawned unit of work terminated without producing a value.

    Attributes:
        kind: PANIC when the work raised, CANCELLED when it was cancelled.
        cause: The exception raised by the work, for PANIC.
        reason: Optional cancellation reason, for CANCELLED.
    """

    def __init__(
        self,
        kind: JoinErrorKind,
        cause: BaseException | None = None,
        reason: str | None = None,
    ) -> None:
        self.kind = kind
        self.cause = cause
        self.reason = reason
        if kind is JoinErrorKind.PANIC:
            msg = f'Task panicked: {cause!r}'
        else:
            msg = f'Task cancelled: {reason}' if reason else 'Task cancelled'
        super().__init__(msg)

    @classmethod
    def panic(cls, cause: BaseException) -> JoinError:
        return cls(JoinErrorKind.PANIC, cause=cause)

    @classmethod
    def cancelled(cls, reason: str | None = None) -> JoinError:
        return cls(JoinErrorKind.CANCELLED, reason=reason)

    def is_panic(self) -> bool:
        return self.kind is JoinErrorKind.PANIC

    def is_cancelled(self) -> bool:
        return self.kind is JoinErrorKind.CANCELLED
