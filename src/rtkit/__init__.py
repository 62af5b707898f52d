"""
rtkit: runtime-agnostic async execution contracts.

Application code (a consensus engine, a replication pipeline) depends on the
`AsyncRuntime` facade only: task spawning, sleeps and timeouts, oneshot,
unbounded MPSC and watch channels, and a thread-local random source. The
concrete backend is chosen once per process through `init()`.

    ```python
    import rtkit

    async def main(rt: rtkit.AsyncRuntime) -> None:
        tx, rx = rt.unbounded_channel()
        rt.spawn(produce(tx))
        async for msg in rx:
            ...

    rtkit.init(spawn_policy='single_thread')
    rtkit.AnyioRuntime.block_on(main)
    ```
"""

from rtkit._backends import AsyncRuntime, MpscFactory, OneshotFactory, Spawner, Timer, WatchFactory
from rtkit._backends.anyio_backend import AnyioRuntime
from rtkit._config import Backend, RuntimeConfig, SpawnPolicy, get_config, get_or_init_config, init
from rtkit._logging import add_log_hook, clear_log_hooks, configure_logging, get_logger, remove_log_hook
from rtkit.channels import (
    ChannelStats,
    MpscReceiver,
    MpscSender,
    OneshotReceiver,
    OneshotSender,
    Ref,
    WatchReceiver,
    WatchSender,
    WeakMpscSender,
    oneshot,
    unbounded_channel,
    watch,
)
from rtkit.errors import (
    AlreadySent,
    AlreadySentError,
    ChannelClosed,
    ChannelClosedError,
    ChannelEmpty,
    ChannelEmptyError,
    Elapsed,
    ElapsedError,
    JoinError,
    JoinErrorKind,
    RecvError,
    SendError,
    SendException,
)
from rtkit.result import Err, Maybe, Nothing, Ok, Result, Some
from rtkit.rng import ThreadLocalRng, thread_rng
from rtkit.task import ExitReason, JoinHandle
from rtkit.timer import Instant, Sleep, Timeout, sleep, sleep_until, timeout, timeout_at


def runtime() -> AnyioRuntime:
    """Create the runtime selected by the process configuration."""
    return AnyioRuntime(get_or_init_config())


__all__ = [
    'AlreadySent',
    'AlreadySentError',
    'AnyioRuntime',
    # Facade
    'AsyncRuntime',
    # Config
    'Backend',
    # Errors
    'ChannelClosed',
    'ChannelClosedError',
    'ChannelEmpty',
    'ChannelEmptyError',
    # Channels
    'ChannelStats',
    'Elapsed',
    'ElapsedError',
    # Results
    'Err',
    # Tasks
    'ExitReason',
    # Time
    'Instant',
    'JoinError',
    'JoinErrorKind',
    'JoinHandle',
    'Maybe',
    'MpscFactory',
    'MpscReceiver',
    'MpscSender',
    'Nothing',
    'Ok',
    'OneshotFactory',
    'OneshotReceiver',
    'OneshotSender',
    'RecvError',
    'Ref',
    'Result',
    'RuntimeConfig',
    'SendError',
    'SendException',
    'Sleep',
    'Some',
    'SpawnPolicy',
    'Spawner',
    # Randomness
    'ThreadLocalRng',
    'Timeout',
    'Timer',
    'WatchFactory',
    'WatchReceiver',
    'WatchSender',
    'WeakMpscSender',
    'add_log_hook',
    'clear_log_hooks',
    'configure_logging',
    'get_config',
    'get_logger',
    'get_or_init_config',
    'init',
    'oneshot',
    'remove_log_hook',
    'runtime',
    'sleep',
    'sleep_until',
    'thread_rng',
    'timeout',
    'timeout_at',
    'unbounded_channel',
    'watch',
]
