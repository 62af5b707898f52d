"""Channels: oneshot, unbounded MPSC with weak senders, and watch.

- `oneshot()`: single value, single use; a request/response rendezvous
- `unbounded_channel()`: many strong senders, one receiver, never blocks on send
- `watch(initial)`: latest value broadcast with per-receiver change tracking

Every half is safe to use from any thread and any event loop: state is
guarded by a short lock and suspended receivers are woken through
`aiologic` events. Sending never suspends; only receiving does.

Halves are released by `close()`, by leaving a `with` block, or by being
garbage-collected. Failed sends return the undelivered value inside
`Err(SendError(...))`.

## Cancellation & Timeouts

Pending `recv()`/`changed()` calls can be cancelled (anyio cancel scopes,
`rtkit.timeout`) with no effect beyond giving up the wait; no message is
lost.

    ```python
    match await rtkit.timeout(5, rx.recv()):
        case Ok(Some(msg)): ...
        case Ok(_): ...  # closed
        case Err(Elapsed()): ...
    ```
"""

from rtkit.channels.mpsc import MpscReceiver, MpscSender, WeakMpscSender, unbounded_channel
from rtkit.channels.oneshot import OneshotReceiver, OneshotSender, oneshot
from rtkit.channels.protocols import MpscRx, MpscTx, OneshotRx, OneshotTx, WatchRx, WatchTx, WeakMpscTx
from rtkit.channels.stats import ChannelStats
from rtkit.channels.watch import Ref, WatchReceiver, WatchSender, watch

__all__ = [
    'ChannelStats',
    'MpscReceiver',
    'MpscRx',
    'MpscSender',
    'MpscTx',
    'OneshotReceiver',
    'OneshotRx',
    'OneshotSender',
    'OneshotTx',
    'Ref',
    'WatchReceiver',
    'WatchRx',
    'WatchSender',
    'WatchTx',
    'WeakMpscSender',
    'WeakMpscTx',
    'oneshot',
    'unbounded_channel',
    'watch',
]
