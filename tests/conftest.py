"""Pytest configuration and shared fixtures for rtkit tests.

Runtimes are entered inside each test body rather than in fixtures: anyio
task groups must be exited by the task that entered them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from rtkit import RuntimeConfig, SpawnPolicy

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def single_thread_config() -> RuntimeConfig:
    """Config that keeps spawned work on the test's event loop."""
    return RuntimeConfig(spawn_policy=SpawnPolicy.SINGLE_THREAD, concurrency=4)


@pytest.fixture
def multi_thread_config() -> RuntimeConfig:
    """Config that runs each spawned unit on a worker thread."""
    return RuntimeConfig(spawn_policy=SpawnPolicy.MULTI_THREAD, concurrency=4)


@pytest.fixture(params=[SpawnPolicy.SINGLE_THREAD, SpawnPolicy.MULTI_THREAD], ids=lambda p: p.value)
def any_config(request: pytest.FixtureRequest) -> RuntimeConfig:
    """Run a test once per spawn policy."""
    return RuntimeConfig(spawn_policy=request.param, concurrency=4)


@pytest.fixture
def reset_global_config() -> Generator[None]:
    """Restore the process-wide config after a test that calls init()."""
    import rtkit._config as config_module

    saved = config_module._config
    config_module._config = None
    yield
    config_module._config = saved
