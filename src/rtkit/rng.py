"""Thread-local random source."""

from __future__ import annotations

import os
import random
import threading
from collections.abc import MutableSequence, Sequence

__all__ = ['ThreadLocalRng', 'thread_rng']

_local = threading.local()


class ThreadLocalRng:
    """Unshared random source bound to the thread that created it.

    Each thread gets its own generator seeded from the OS, so no locking is
    needed. Using the instance from another thread raises RuntimeError.
    """

    __slots__ = ('_owner', '_rng')

    def __init__(self, seed: int | None = None) -> None:
        self._owner = threading.get_ident()
        self._rng = random.Random(int.from_bytes(os.urandom(16)) if seed is None else seed)  # noqa: S311

    def _check_owner(self) -> random.Random:
        if threading.get_ident() != self._owner:
            msg = 'ThreadLocalRng used outside the thread that created it'
            raise RuntimeError(msg)
        return self._rng

    def random(self) -> float:
        """Float in [0.0, 1.0)."""
        return self._check_owner().random()

    def rand_range(self, start: int, stop: int) -> int:
        """Integer in [start, stop)."""
        return self._check_owner().randrange(start, stop)

    def uniform(self, low: float, high: float) -> float:
        return self._check_owner().uniform(low, high)

    def choice[T](self, seq: Sequence[T]) -> T:
        return self._check_owner().choice(seq)

    def shuffle(self, seq: MutableSequence[object]) -> None:
        self._check_owner().shuffle(seq)

    def getrandbits(self, k: int) -> int:
        return self._check_owner().getrandbits(k)


def thread_rng() -> ThreadLocalRng:
    """Get the calling thread's random source, creating it on first use."""
    rng: ThreadLocalRng | None = getattr(_local, 'rng', None)
    if rng is None:
        rng = ThreadLocalRng()
        _local.rng = rng
    return rng
