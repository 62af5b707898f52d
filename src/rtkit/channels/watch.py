"""Watch channel: one slot holding the latest value, observed by many receivers.

Used for state that is read far more often than it changes, such as the
current leader or a config snapshot. Senders overwrite; receivers wake on
the next version they have not seen.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from types import TracebackType

import aiologic

from rtkit.channels._handle import Handle
from rtkit.errors import ChannelClosed, RecvError, SendError
from rtkit.result import Err, Ok, Result

__all__ = ['Ref', 'WatchReceiver', 'WatchSender', 'watch']


class _WatchState[T]:
    """The value, its version counter and the event for the next change.

    `notify` is shared by every parked `changed()` call and swapped for a
    fresh event whenever it fires, so abandoned waits leave nothing behind.
    """

    __slots__ = ('lock', 'notify', 'rx_count', 'tx_count', 'value', 'version')

    def __init__(self, initial: T) -> None:
        # Reentrant so a send_if_modified closure may borrow the slot.
        self.lock = threading.RLock()
        self.value: T = initial
        self.version = 0
        self.tx_count = 1
        self.rx_count = 1
        self.notify = aiologic.Event()

    def _swap_notify(self) -> aiologic.Event:
        fired = self.notify
        self.notify = aiologic.Event()
        return fired

    def bump(self) -> aiologic.Event:
        """Advance the version and hand back the event to set. Call under lock."""
        self.version += 1
        return self._swap_notify()

    def release_sender(self) -> None:
        with self.lock:
            self.tx_count -= 1
            fired = self._swap_notify() if self.tx_count == 0 else None
        if fired is not None:
            fired.set()

    def release_receiver(self) -> None:
        with self.lock:
            self.rx_count -= 1


class Ref[T]:
    """Read-only view of the watched value, valid for one scope.

    No copy is made; treat the value as immutable. Used as a context
    manager, the view is invalidated when the block exits:

        ```python
        with rx.borrow_watched() as state:
            print(state.term)
        ```
    """

    __slots__ = ('_has_changed', '_released', '_value')

    def __init__(self, value: T, has_changed: bool) -> None:
        self._value = value
        self._has_changed = has_changed
        self._released = False

    @property
    def value(self) -> T:
        if self._released:
            msg = 'Ref used outside of its scope'
            raise RuntimeError(msg)
        return self._value

    @property
    def has_changed(self) -> bool:
        """Whether the value was unseen by the borrowing receiver."""
        return self._has_changed

    def __enter__(self) -> T:
        return self.value

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._released = True
        self._value = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        if self._released:
            return 'Ref(<released>)'
        return f'Ref({self._value!r})'


class WatchSender[T](Handle):
    """Writes the slot. Every live receiver sees each write as a new version.

    Clone for more writers; `subscribe()` attaches a receiver that starts
    out caught up.
    """

    __slots__ = ('_state',)

    def __init__(self, state: _WatchState[T]) -> None:
        self._state = state
        self._register(state.release_sender)

    def send(self, value: T) -> Result[None, SendError[T]]:
        """Replace the value and notify every receiver.

        Returns:
            Ok(None) if stored.
            Err(SendError(value)) if no receiver remains; the slot is untouched.
        """
        self._ensure_open()
        state = self._state
        with state.lock:
            if state.rx_count == 0:
                return Err(SendError(value))
            state.value = value
            fired = state.bump()
        fired.set()
        return Ok(None)

    def send_replace(self, value: T) -> T:
        """Replace the value whether or not receivers remain, returning the old one."""
        self._ensure_open()
        state = self._state
        with state.lock:
            old = state.value
            state.value = value
            fired = state.bump()
        fired.set()
        return old

    def send_if_modified(self, modify: Callable[[T], bool]) -> bool:
        """Mutate the value in place, notifying only if `modify` reports a change.

        `modify` runs under exclusive access and receives the stored object.
        Receivers are woken only when it returns True, so frequent no-op
        recomputations cause no spurious wakeups.

        Returns:
            The value returned by `modify`.
        """
        self._ensure_open()
        state = self._state
        with state.lock:
            modified = modify(state.value)
            fired = state.bump() if modified else None
        if fired is not None:
            fired.set()
        return modified

    def send_modify(self, modify: Callable[[T], object]) -> None:
        """Mutate the value in place and always notify."""

        def _always(value: T) -> bool:
            modify(value)
            return True

        self.send_if_modified(_always)

    def borrow_watched(self) -> Ref[T]:
        """Read the current value without touching any receiver's seen state."""
        with self._state.lock:
            return Ref(self._state.value, has_changed=False)

    def subscribe(self) -> WatchReceiver[T]:
        """Create a receiver that has already seen the current value."""
        self._ensure_open()
        state = self._state
        with state.lock:
            state.rx_count += 1
            version = state.version
        return WatchReceiver(state, version)

    def clone(self) -> WatchSender[T]:
        self._ensure_open()
        state = self._state
        with state.lock:
            state.tx_count += 1
        return WatchSender(state)

    def receiver_count(self) -> int:
        return self._state.rx_count

    def is_closed(self) -> bool:
        """True once every receiver is gone."""
        return self._state.rx_count == 0


class WatchReceiver[T](Handle):
    """Reads the slot and waits for versions it has not seen yet.

    Each receiver tracks its own seen version. Intermediate values sent
    between two `changed()` calls are coalesced; a receiver never observes
    an older version after a newer one.
    """

    __slots__ = ('_seen', '_state')

    def __init__(self, state: _WatchState[T], seen_version: int) -> None:
        self._state = state
        self._seen = seen_version
        self._register(state.release_receiver)

    def borrow_watched(self) -> Ref[T]:
        """Read the current value without marking it as seen."""
        state = self._state
        with state.lock:
            return Ref(state.value, has_changed=self._seen != state.version)

    def borrow_and_update(self) -> Ref[T]:
        """Read the current value and mark it as seen."""
        state = self._state
        with state.lock:
            changed = self._seen != state.version
            self._seen = state.version
            return Ref(state.value, has_changed=changed)

    def has_changed(self) -> Result[bool, RecvError]:
        """Check for an unseen value without waiting or marking it seen.

        Returns:
            Ok(True) if an unseen value exists, Ok(False) if not,
            Err(RecvError) if nothing is unseen and every sender is gone.
        """
        state = self._state
        with state.lock:
            if self._seen != state.version:
                return Ok(True)
            if state.tx_count == 0:
                return Err(ChannelClosed(reason='all watch senders dropped'))
        return Ok(False)

    async def changed(self) -> Result[None, RecvError]:
        """Wait for an unseen value, then mark it as seen.

        Returns:
            Ok(None) once the value has changed since this receiver last
            looked.
            Err(RecvError) if every sender is gone and nothing is unseen.
        """
        self._ensure_open()
        state = self._state
        while True:
            with state.lock:
                if self._seen != state.version:
                    self._seen = state.version
                    return Ok(None)
                if state.tx_count == 0:
                    return Err(ChannelClosed(reason='all watch senders dropped'))
                event = state.notify
            await event

    async def wait_for(self, predicate: Callable[[T], bool]) -> Result[Ref[T], RecvError]:
        """Wait until the value satisfies `predicate`, marking it as seen."""
        while True:
            ref = self.borrow_and_update()
            if predicate(ref.value):
                return Ok(ref)
            result = await self.changed()
            if result.is_err():
                return result  # type: ignore[return-value]

    def clone(self) -> WatchReceiver[T]:
        """Create another receiver with the same seen version."""
        self._ensure_open()
        state = self._state
        with state.lock:
            state.rx_count += 1
        return WatchReceiver(state, self._seen)

    def __aiter__(self) -> WatchReceiver[T]:
        return self

    async def __anext__(self) -> T:
        """Wait for the next change and return the new value."""
        if (await self.changed()).is_err():
            raise StopAsyncIteration
        return self.borrow_watched().value


def watch[T](initial: T) -> tuple[WatchSender[T], WatchReceiver[T]]:
    """Create a watch channel holding `initial`, already seen by the receiver."""
    state: _WatchState[T] = _WatchState(initial)
    return WatchSender(state), WatchReceiver(state, state.version)
