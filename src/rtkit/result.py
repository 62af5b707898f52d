"""Rust-like Result/Maybe values returned by runtime operations.

Expected outcomes of channel and timer operations (a closed peer, an empty
queue, an elapsed deadline) are returned as values instead of being raised:

    ```python
    from rtkit.result import Ok, Err

    match tx.send(42):
        case Ok(_):
            ...
        case Err(SendError(value)):
            reroute(value)
    ```

`Maybe` is used where absence is a normal end-of-stream rather than an
error (e.g. `MpscReceiver.recv()` after every sender is gone).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeGuard

__all__ = [
    'Err',
    'Maybe',
    'Nothing',
    'Ok',
    'Result',
    'Some',
    'UnwrapError',
    'is_err',
    'is_nothing',
    'is_ok',
    'is_some',
]


class UnwrapError(Exception):
    """Raised when unwrapping the wrong variant of a Result or Maybe."""


def _raise_error(error: Any) -> Any:
    if isinstance(error, BaseException):
        raise error
    to_exception = getattr(error, 'to_exception', None)
    if callable(to_exception):
        raise to_exception()
    raise UnwrapError(f'called unwrap() on Err({error!r})')


# ---------------------------------------------------------------------
# Result[T, E]: Ok / Err
# ---------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Ok[T]:
    """Successful outcome carrying `value`."""

    value: T
    __match_args__ = ('value',)

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def map[U](self, f: Callable[[T], U]) -> Ok[U]:
        """Transform the contained value."""
        return Ok(f(self.value))

    def map_err(self, f: Callable[[Any], Any]) -> Ok[T]:
        return self

    def and_then[U, E](self, f: Callable[[T], Ok[U] | Err[E]]) -> Ok[U] | Err[E]:
        return f(self.value)

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_or_else(self, f: Callable[[Any], T]) -> T:
        return self.value

    def unwrap_err(self) -> Any:
        """Raises, since there is no error to unwrap."""
        raise UnwrapError(f'called unwrap_err() on Ok({self.value!r})')

    def expect(self, msg: str) -> T:
        return self.value

    def ok(self) -> T | None:
        return self.value

    def err(self) -> None:
        return None

    def __repr__(self) -> str:
        return f'Ok({self.value!r})'


@dataclass(slots=True, frozen=True)
class Err[E]:
    """Failed outcome carrying `error`.

    The error is usually one of the struct variants from `rtkit.errors`;
    `unwrap()` raises its exception variant.
    """

    error: E
    __match_args__ = ('error',)

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def map(self, f: Callable[[Any], Any]) -> Err[E]:
        return self

    def map_err[F](self, f: Callable[[E], F]) -> Err[F]:
        """Transform the contained error."""
        return Err(f(self.error))

    def and_then(self, f: Callable[[Any], Any]) -> Err[E]:
        return self

    def unwrap(self) -> Any:
        """Raise the exception form of the contained error.

        Raises:
            Exception: The error itself if it is an exception, its
                `to_exception()` conversion if it has one, else UnwrapError.
        """
        return _raise_error(self.error)

    def unwrap_or(self, default: Any) -> Any:
        return default

    def unwrap_or_else(self, f: Callable[[E], Any]) -> Any:
        return f(self.error)

    def unwrap_err(self) -> E:
        return self.error

    def expect(self, msg: str) -> Any:
        raise UnwrapError(f'{msg}: {self.error!r}')

    def ok(self) -> None:
        return None

    def err(self) -> E:
        return self.error

    def __repr__(self) -> str:
        return f'Err({self.error!r})'


type Result[T, E] = Ok[T] | Err[E]


def is_ok[T, E](r: Result[T, E]) -> TypeGuard[Ok[T]]:
    """Check whether a Result is Ok."""
    return isinstance(r, Ok)


def is_err[T, E](r: Result[T, E]) -> TypeGuard[Err[E]]:
    """Check whether a Result is Err."""
    return isinstance(r, Err)


# ---------------------------------------------------------------------
# Maybe[T]: Some / Nothing
# ---------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Some[T]:
    """A present value."""

    value: T
    __match_args__ = ('value',)

    def is_some(self) -> bool:
        return True

    def is_nothing(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def __bool__(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f'Some({self.value!r})'


class _Nothing:
    """Absence of a value. Use the `Nothing` singleton."""

    __slots__ = ()

    def is_some(self) -> bool:
        return False

    def is_nothing(self) -> bool:
        return True

    def unwrap(self) -> Any:
        raise UnwrapError('called unwrap() on Nothing')

    def unwrap_or(self, default: Any) -> Any:
        return default

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return 'Nothing'


Nothing: _Nothing = _Nothing()
"""Singleton instance representing the absence of a value."""

type Maybe[T] = Some[T] | _Nothing


def is_some[T](m: Maybe[T]) -> TypeGuard[Some[T]]:
    """Check whether a Maybe holds a value."""
    return isinstance(m, Some)


def is_nothing[T](m: Maybe[T]) -> TypeGuard[_Nothing]:
    """Check whether a Maybe is Nothing."""
    return m is Nothing
