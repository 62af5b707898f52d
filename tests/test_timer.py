"""Tests for Instant, sleep/sleep_until and timeout/timeout_at."""

from __future__ import annotations

import inspect
import random
from datetime import timedelta

import anyio
import pytest

from rtkit import Elapsed, Err, Instant, Ok, sleep, sleep_until, timeout, timeout_at


class TestInstant:
    """Ordering and arithmetic on Instant."""

    def test_now_is_monotonic(self) -> None:
        a = Instant.now()
        b = Instant.now()
        assert a <= b

    def test_subtracting_instants_gives_seconds(self) -> None:
        a = Instant(10.0)
        b = Instant(12.5)
        assert b - a == 2.5
        assert a - b == -2.5

    def test_adding_seconds_and_timedelta(self) -> None:
        a = Instant(1.0)
        assert a + 0.5 == Instant(1.5)
        assert a + timedelta(milliseconds=250) == Instant(1.25)
        assert a - 0.5 == Instant(0.5)

    def test_total_order(self) -> None:
        instants = [Instant(float(i)) for i in range(10)]
        shuffled = instants[:]
        random.shuffle(shuffled)
        assert sorted(shuffled) == instants

    def test_duration_since_saturates(self) -> None:
        assert Instant(5.0).duration_since(Instant(3.0)) == 2.0
        assert Instant(3.0).duration_since(Instant(5.0)) == 0.0

    def test_elapsed_is_non_negative(self) -> None:
        assert Instant.now().elapsed() >= 0.0


class TestSleep:
    """Sleeps never resolve before their deadline."""

    async def test_sleep_waits_at_least_duration(self) -> None:
        start = Instant.now()
        await sleep(0.05)
        assert Instant.now() - start >= 0.05

    async def test_sleep_accepts_timedelta(self) -> None:
        start = Instant.now()
        await sleep(timedelta(milliseconds=20))
        assert Instant.now() - start >= 0.02

    async def test_negative_duration_is_immediate(self) -> None:
        s = sleep(-1)
        assert s.is_elapsed()
        await s

    async def test_sleep_until_past_deadline_returns(self) -> None:
        await sleep_until(Instant.now() - 1.0)

    async def test_deadline_fixed_at_creation(self) -> None:
        s = sleep(0.03)
        await anyio.sleep(0.05)
        start = Instant.now()
        await s
        assert Instant.now() - start < 0.03

    async def test_reset_moves_deadline(self) -> None:
        s = sleep(10)
        target = Instant.now() + 0.02
        s.reset(target)
        assert s.deadline == target
        await s
        assert Instant.now() >= target

    async def test_unawaited_sleep_has_no_side_effect(self) -> None:
        s = sleep(0.01)
        del s
        await anyio.sleep(0.02)

    async def test_many_sleeps_resolve_in_deadline_order(self) -> None:
        base = Instant.now() + 0.02
        deadlines = [base + 0.01 * i for i in range(8)]
        order = list(range(8))
        random.shuffle(order)
        woke: list[tuple[int, Instant]] = []

        async def sleeper(i: int) -> None:
            await sleep_until(deadlines[i])
            woke.append((i, Instant.now()))

        async with anyio.create_task_group() as tg:
            for i in order:
                tg.start_soon(sleeper, i)

        assert [i for i, _ in woke] == list(range(8))
        for i, at in woke:
            assert at >= deadlines[i]


class TestTimeout:
    """Racing an operation against a deadline."""

    async def test_fast_operation_returns_ok(self) -> None:
        async def fast() -> str:
            await anyio.sleep(0.001)
            return 'done'

        assert await timeout(1.0, fast()) == Ok('done')

    async def test_slow_operation_elapses_and_stops(self) -> None:
        progressed = False

        async def slow() -> None:
            nonlocal progressed
            await anyio.sleep(0.2)
            progressed = True

        result = await timeout(0.02, slow())
        match result:
            case Err(Elapsed(seconds=seconds)):
                assert seconds == pytest.approx(0.02)
            case _:
                pytest.fail(f'expected Elapsed, got {result!r}')

        await anyio.sleep(0.3)
        assert progressed is False

    async def test_elapsed_names_the_operation(self) -> None:
        async def stuck() -> None:
            await anyio.sleep_forever()

        result = await timeout(0.01, stuck())
        assert result.is_err()
        assert 'stuck' in (result.unwrap_err().operation or '')

    async def test_timeout_at_past_deadline(self) -> None:
        result = await timeout_at(Instant.now() - 1.0, anyio.sleep(1))
        assert isinstance(result.unwrap_err(), Elapsed)

    async def test_timeout_at_future_deadline(self) -> None:
        async def value() -> int:
            return 7

        assert await timeout_at(Instant.now() + 1.0, value()) == Ok(7)

    async def test_operation_exception_propagates(self) -> None:
        async def boom() -> None:
            raise ValueError('boom')

        with pytest.raises(ValueError, match='boom'):
            await timeout(1.0, boom())

    async def test_await_twice_raises(self) -> None:
        async def value() -> int:
            return 1

        t = timeout(1.0, value())
        await t
        with pytest.raises(RuntimeError):
            await t

    async def test_close_releases_unawaited_coroutine(self) -> None:
        async def value() -> int:
            return 1

        coro = value()
        t = timeout(1.0, coro)
        t.close()
        assert inspect.getcoroutinestate(coro) == inspect.CORO_CLOSED

    async def test_unwrap_elapsed_raises_timeout_error(self) -> None:
        result = await timeout(0.0, anyio.sleep(1))
        with pytest.raises(TimeoutError):
            result.unwrap()
