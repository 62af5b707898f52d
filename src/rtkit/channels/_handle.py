"""Release-once lifecycle shared by every channel half."""

from __future__ import annotations

import weakref
from collections.abc import Callable
from types import TracebackType
from typing import Self

__all__ = ['Handle']


class Handle:
    """A channel half that is released exactly once.

    Release happens on the first of: `close()`, leaving a `with` block, or
    the handle being garbage-collected. The release callback must not hold
    a reference to the handle itself.
    """

    __slots__ = ('__weakref__', '_finalizer')

    def _register(self, release: Callable[[], None]) -> None:
        self._finalizer = weakref.finalize(self, release)
        self._finalizer.atexit = False

    def close(self) -> None:
        """Release this handle. Idempotent."""
        self._finalizer()

    @property
    def released(self) -> bool:
        return not self._finalizer.alive

    def _ensure_open(self) -> None:
        if not self._finalizer.alive:
            msg = f'{type(self).__name__} has been closed'
            raise RuntimeError(msg)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
