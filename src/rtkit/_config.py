"""Process-wide runtime configuration.

The backend and spawn policy are chosen once per process, either explicitly
through `init()` or from the environment:

    RTKIT_BACKEND       asyncio | trio
    RTKIT_SPAWN_POLICY  single_thread | multi_thread

Worker concurrency defaults to the physical core count, capped by any
container CPU quota and by available memory.
"""

from __future__ import annotations

import contextlib
import logging
import os
import pathlib
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import psutil

from rtkit._logging import configure_logging

__all__ = [
    'Backend',
    'RuntimeConfig',
    'SpawnPolicy',
    'get_config',
    'get_or_init_config',
    'init',
]

_MAX_CONCURRENCY = 256
_FALLBACK_CONCURRENCY = 4
_BYTES_PER_WORKER = 1024**3


class Backend(Enum):
    """Event loop library driving the anyio runtime."""

    ASYNCIO = 'asyncio'
    TRIO = 'trio'


class SpawnPolicy(Enum):
    """Where spawned work runs. Chosen once per process."""

    MULTI_THREAD = 'multi_thread'
    SINGLE_THREAD = 'single_thread'


@dataclass(frozen=True)
class RuntimeConfig:
    """Configuration for the rtkit runtime.

    Attributes:
        backend: Event loop library (ASYNCIO or TRIO).
        spawn_policy: MULTI_THREAD runs each spawned unit on a worker thread,
            SINGLE_THREAD keeps every unit on the runtime's event loop.
        concurrency: Number of worker event loops for MULTI_THREAD spawning,
            and the cap on concurrent spawn_blocking() calls.
        log_level: Level passed to configure_logging() by init(). None leaves
            logging unconfigured.
        backend_kwargs: Options passed to anyio.run() as backend_options.
    """

    backend: Backend = Backend.ASYNCIO
    spawn_policy: SpawnPolicy = SpawnPolicy.SINGLE_THREAD
    concurrency: int = _FALLBACK_CONCURRENCY
    log_level: str | None = None
    backend_kwargs: dict[str, Any] = field(default_factory=dict)


_config: RuntimeConfig | None = None


def _normalize(value: str) -> str:
    return value.strip().lower().replace('-', '_')


def _env_choice[E: Enum](var: str, choices: type[E], default: E) -> E:
    """Read an enum member from environment variable `var`.

    Unknown values log a warning and yield `default`.
    """
    raw = _normalize(os.environ.get(var, ''))
    if not raw:
        return default
    try:
        return choices(raw)
    except ValueError:
        logging.warning("Unknown %s value '%s', defaulting to %s", var, raw, default.value)
        return default


def _detect_backend() -> Backend:
    return _env_choice('RTKIT_BACKEND', Backend, Backend.ASYNCIO)


def _detect_spawn_policy() -> SpawnPolicy:
    return _env_choice('RTKIT_SPAWN_POLICY', SpawnPolicy, SpawnPolicy.SINGLE_THREAD)


def _clamp_concurrency(n: int) -> int:
    return max(1, min(_MAX_CONCURRENCY, n))


def _detect_concurrency() -> int:
    """Worker threads to use: physical cores, capped by container quota and memory."""
    try:
        cores = psutil.cpu_count(logical=False) or psutil.cpu_count(logical=True) or _FALLBACK_CONCURRENCY
        limits = [cores]

        quota = _detect_container_cpu_limit()
        if quota is not None:
            limits.append(quota)

        with contextlib.suppress(OSError, RuntimeError):
            limits.append(int(psutil.virtual_memory().available // _BYTES_PER_WORKER))

        return _clamp_concurrency(min(limits))
    except (OSError, RuntimeError):
        return _FALLBACK_CONCURRENCY


def _read_cgroup_file(path: str) -> str | None:
    try:
        return pathlib.Path(path).read_text().strip()
    except OSError:
        return None


def _detect_container_cpu_limit() -> int | None:
    """Whole-core CPU quota from cgroups v2 or v1, or None when unlimited."""
    # v2: "<quota> <period>", quota may be "max"
    cpu_max = _read_cgroup_file('/sys/fs/cgroup/cpu.max')
    if cpu_max is not None:
        quota, _, period = cpu_max.partition(' ')
        if quota != 'max' and period:
            with contextlib.suppress(ValueError, ZeroDivisionError):
                return max(1, int(quota) // int(period))

    # v1: quota of -1 means unlimited
    quota_us = _read_cgroup_file('/sys/fs/cgroup/cpu/cpu.cfs_quota_us')
    period_us = _read_cgroup_file('/sys/fs/cgroup/cpu/cpu.cfs_period_us')
    if quota_us and period_us:
        with contextlib.suppress(ValueError, ZeroDivisionError):
            if int(quota_us) > 0:
                return max(1, int(quota_us) // int(period_us))

    return None


def _resolve[E: Enum](value: E | str | None, choices: type[E], detect: Callable[[], E]) -> E:
    if value is None:
        return detect()
    if isinstance(value, str):
        return choices(_normalize(value))
    return value


def init(
    backend: Backend | str | None = None,
    spawn_policy: SpawnPolicy | str | None = None,
    concurrency: int | None = None,
    log_level: str | None = None,
    **backend_kwargs: Any,
) -> RuntimeConfig:
    """Set the process-wide runtime configuration.

    Arguments left as None are detected from the environment and the host.
    Strings are accepted for the enums, case-insensitively and with dashes
    or underscores ("multi-thread", "MULTI_THREAD").

    Args:
        backend: Event loop library.
        spawn_policy: Where spawned work runs.
        concurrency: Worker event loops and blocking-call cap, clamped to [1, 256].
        log_level: If given, configure_logging() is called with it.
        **backend_kwargs: Passed to anyio.run() as backend options.

    Returns:
        The RuntimeConfig that was set.

    Raises:
        ValueError: If a string names no known backend or policy.

    Example:
        ```python
        import rtkit

        rtkit.init()
        rtkit.init(spawn_policy='multi_thread', concurrency=8, log_level='INFO')
        ```
    """
    global _config  # noqa: PLW0603

    _config = RuntimeConfig(
        backend=_resolve(backend, Backend, _detect_backend),
        spawn_policy=_resolve(spawn_policy, SpawnPolicy, _detect_spawn_policy),
        concurrency=_detect_concurrency() if concurrency is None else _clamp_concurrency(concurrency),
        log_level=log_level,
        backend_kwargs=backend_kwargs,
    )

    if log_level is not None:
        configure_logging(log_level)

    return _config


def get_config() -> RuntimeConfig:
    """Get the current runtime configuration.

    Raises:
        RuntimeError: If init() has not been called.
    """
    if _config is None:
        msg = 'Runtime not initialized. Call rtkit.init() first.'
        raise RuntimeError(msg)
    return _config


def get_or_init_config() -> RuntimeConfig:
    """Get the current configuration, initializing from the environment if needed."""
    if _config is None:
        return init()
    return _config
