"""Structured logging for rtkit.

Runtime events (task panics and cancellations, runtime start and stop) are
structlog events emitted on stdlib loggers under the `rtkit` namespace.
Until `configure_logging()` runs they follow stdlib defaults, so the runtime
stays quiet below WARNING. Once configured, structlog events and foreign
stdlib records (anyio, asyncio) are rendered by one ProcessorFormatter,
each tagged with the emitting thread so output from worker threads under
the multi-thread spawn policy can be told apart.
"""

from __future__ import annotations

import contextlib
import logging
import sys
import threading
from typing import IO, TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = [
    'LogHook',
    'add_log_hook',
    'clear_log_hooks',
    'configure_logging',
    'get_logger',
    'remove_log_hook',
]

type LogHook = Callable[[dict[str, Any]], None]

_HANDLER_NAME = 'rtkit'

_hooks: list[LogHook] = []


def _add_thread_name(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault('thread', threading.current_thread().name)
    return event_dict


def _run_hooks(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for hook in tuple(_hooks):
        # Hooks observe; a broken one must not take logging down with it.
        with contextlib.suppress(Exception):
            hook(event_dict.copy())
    return event_dict


def _common_processors() -> list[Any]:
    """Processors applied to structlog events and foreign stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_thread_name,
        structlog.processors.TimeStamper(fmt='iso', utc=True),
        structlog.stdlib.ExtraAdder(),
        _run_hooks,
    ]


def configure_logging(
    level: str | int = 'INFO',
    *,
    json_output: bool | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Route structlog and stdlib records through one rendering pipeline.

    Installs a single handler on the root logger. Calling this again
    replaces the handler installed by the previous call and leaves other
    handlers alone.

    Args:
        level: Root level, as a name ("DEBUG", "INFO", ...) or a number.
            Unknown names fall back to INFO.
        json_output: Emit JSON lines. Defaults to JSON unless `stream` is a
            terminal, in which case console output is used.
        stream: Destination, sys.stderr by default.
    """
    stream = stream if stream is not None else sys.stderr
    interactive = stream.isatty()
    if json_output is None:
        json_output = not interactive
    renderer: Any = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=interactive)
    )

    structlog.configure(
        processors=[
            *_common_processors(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_common_processors(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    for previous in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(previous)
    root.addHandler(handler)
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    root.setLevel(level)


def get_logger(name: str = 'rtkit') -> Any:
    """Structlog logger emitting through the stdlib logger `name`."""
    return structlog.wrap_logger(logging.getLogger(name), wrapper_class=structlog.stdlib.BoundLogger)


def add_log_hook(hook: LogHook) -> None:
    """Call `hook` with a copy of every event dict once logging is configured."""
    _hooks.append(hook)


def remove_log_hook(hook: LogHook) -> None:
    with contextlib.suppress(ValueError):
        _hooks.remove(hook)


def clear_log_hooks() -> None:
    _hooks.clear()
