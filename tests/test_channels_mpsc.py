"""Tests for the unbounded MPSC channel and weak senders."""

from __future__ import annotations

import threading

import anyio
import anyio.to_thread
import pytest
from hypothesis import given
from hypothesis import strategies as st

from rtkit import (
    ChannelClosed,
    ChannelEmpty,
    ChannelStats,
    Err,
    Nothing,
    Ok,
    SendError,
    Some,
    unbounded_channel,
)


class TestMpscOrdering:
    """Per-sender FIFO delivery."""

    async def test_single_sender_fifo(self) -> None:
        tx, rx = unbounded_channel()
        for i in range(5):
            assert tx.send(i) == Ok(None)
        assert [(await rx.recv()).unwrap() for _ in range(5)] == [0, 1, 2, 3, 4]

    @pytest.mark.hypothesis_property
    @given(st.lists(st.integers()))
    def test_try_recv_preserves_send_order(self, messages: list[int]) -> None:
        tx, rx = unbounded_channel()
        for msg in messages:
            tx.send(msg)

        received = []
        while (result := rx.try_recv()).is_ok():
            received.append(result.unwrap())

        assert received == messages
        assert result == Err(ChannelEmpty())

    @pytest.mark.hypothesis_property
    @given(st.lists(st.tuples(st.integers(min_value=0, max_value=3), st.integers())))
    def test_cloned_senders_keep_their_own_order(self, sends: list[tuple[int, int]]) -> None:
        tx, rx = unbounded_channel()
        senders = [tx, tx.clone(), tx.clone(), tx.clone()]
        for idx, value in sends:
            senders[idx].send((idx, value))
        for sender in senders:
            sender.close()

        received = []
        while (result := rx.try_recv()).is_ok():
            received.append(result.unwrap())

        assert isinstance(result.unwrap_err(), ChannelClosed)
        for idx in range(4):
            assert [m for m in received if m[0] == idx] == [(i, v) for i, v in sends if i == idx]

    async def test_threaded_producers_keep_their_own_order(self) -> None:
        tx, rx = unbounded_channel()
        per_thread = 200

        def produce(sender, tag: int) -> None:
            with sender:
                for i in range(per_thread):
                    sender.send((tag, i))

        threads = [threading.Thread(target=produce, args=(tx.clone(), tag)) for tag in range(4)]
        tx.close()
        for t in threads:
            t.start()

        received = [msg async for msg in rx]
        for t in threads:
            t.join()

        assert len(received) == 4 * per_thread
        for tag in range(4):
            assert [i for t, i in received if t == tag] == list(range(per_thread))


class TestMpscClosure:
    """Drain-then-closed semantics."""

    async def test_drains_before_reporting_closed(self) -> None:
        tx, rx = unbounded_channel()
        tx.send('a')
        tx.send('b')
        tx.close()
        assert await rx.recv() == Some('a')
        assert await rx.recv() == Some('b')
        assert await rx.recv() is Nothing
        assert await rx.recv() is Nothing

    async def test_pending_recv_woken_by_last_sender_release(self) -> None:
        tx, rx = unbounded_channel()
        clone = tx.clone()
        results = []

        async def receiver() -> None:
            results.append(await rx.recv())

        async with anyio.create_task_group() as tg:
            tg.start_soon(receiver)
            await anyio.sleep(0.01)
            tx.close()
            await anyio.sleep(0.01)
            assert results == []
            clone.close()

        assert results == [Nothing]

    async def test_pending_recv_woken_by_send_from_thread(self) -> None:
        tx, rx = unbounded_channel()

        async with anyio.create_task_group() as tg:
            tg.start_soon(anyio.to_thread.run_sync, tx.send, 99)
            assert await rx.recv() == Some(99)

    def test_send_after_receiver_closed_returns_message(self) -> None:
        tx, rx = unbounded_channel()
        rx.close()
        assert tx.is_closed()
        assert tx.send('lost') == Err(SendError('lost'))

    def test_receiver_close_discards_queue(self) -> None:
        tx, rx = unbounded_channel()
        tx.send(1)
        rx.close()
        assert rx.statistics().queue_size == 0

    def test_try_recv_closed_after_drain(self) -> None:
        tx, rx = unbounded_channel()
        tx.send(1)
        tx.close()
        assert rx.try_recv() == Ok(1)
        assert isinstance(rx.try_recv().unwrap_err(), ChannelClosed)

    def test_closed_sender_cannot_be_used(self) -> None:
        tx, _rx = unbounded_channel()
        tx.close()
        with pytest.raises(RuntimeError, match='closed'):
            tx.send(1)

    def test_is_closed_tracks_senders(self) -> None:
        tx, rx = unbounded_channel()
        assert not rx.is_closed()
        tx.close()
        assert rx.is_closed()

    async def test_async_iteration_ends_when_senders_gone(self) -> None:
        tx, rx = unbounded_channel()
        with tx:
            for word in ('x', 'y', 'z'):
                tx.send(word)
        assert [msg async for msg in rx] == ['x', 'y', 'z']

    def test_same_channel(self) -> None:
        tx, _rx = unbounded_channel()
        other, _other_rx = unbounded_channel()
        assert tx.same_channel(tx.clone())
        assert not tx.same_channel(other)

    def test_release_while_channel_lock_held(self) -> None:
        tx, rx = unbounded_channel()
        extra = tx.clone()

        def release_under_lock() -> None:
            with rx._state.lock:
                extra.close()

        worker = threading.Thread(target=release_under_lock, daemon=True)
        worker.start()
        worker.join(2)
        assert not worker.is_alive()
        assert rx.sender_count() == 1


class TestMpscCancellation:
    """Abandoned receives lose nothing."""

    async def test_cancelled_recv_loses_no_message(self) -> None:
        tx, rx = unbounded_channel()
        with anyio.move_on_after(0.01):
            await rx.recv()
        tx.send('kept')
        assert rx.try_recv() == Ok('kept')


class TestWeakSender:
    """Weak senders and the upgrade policy."""

    def test_upgrade_while_strong_sender_alive(self) -> None:
        tx, rx = unbounded_channel()
        weak = tx.downgrade()
        strong = weak.upgrade()
        assert strong is not None
        assert strong.send('via weak') == Ok(None)
        assert rx.try_recv() == Ok('via weak')

    def test_upgrade_fails_after_last_strong_sender(self) -> None:
        tx, _rx = unbounded_channel()
        weak = tx.downgrade()
        tx.close()
        assert weak.upgrade() is None

    def test_upgrade_fails_after_receiver_closed(self) -> None:
        tx, rx = unbounded_channel()
        weak = tx.downgrade()
        rx.close()
        assert weak.upgrade() is None
        tx.send(1)

    def test_upgrade_fails_after_weak_closed(self) -> None:
        tx, _rx = unbounded_channel()
        weak = tx.downgrade()
        weak.close()
        assert weak.upgrade() is None

    async def test_weak_sender_does_not_keep_channel_open(self) -> None:
        tx, rx = unbounded_channel()
        weak = tx.downgrade()
        tx.close()
        assert await rx.recv() is Nothing
        assert weak.upgrade() is None

    def test_upgraded_sender_keeps_channel_open(self) -> None:
        tx, rx = unbounded_channel()
        upgraded = tx.downgrade().upgrade()
        tx.close()
        assert rx.try_recv() == Err(ChannelEmpty())
        assert upgraded is not None
        upgraded.close()
        assert isinstance(rx.try_recv().unwrap_err(), ChannelClosed)


class TestMpscStatistics:
    """Counters reported by statistics()."""

    def test_statistics_snapshot(self) -> None:
        tx, rx = unbounded_channel()
        tx.clone()
        weak = tx.downgrade()
        for i in range(3):
            tx.send(i)
        rx.try_recv()

        stats = rx.statistics()
        assert isinstance(stats, ChannelStats)
        assert stats.weak_sender_count == 1
        assert stats.queue_size == 2
        assert stats.high_watermark == 3
        assert stats.total_sent == 3
        assert stats.total_received == 1
        assert not stats.senders_closed
        assert not stats.receiver_closed
        assert len(rx) == 2
        assert not rx.is_empty()
        weak.close()
        assert rx.statistics().weak_sender_count == 0

    def test_sender_count(self) -> None:
        tx, rx = unbounded_channel()
        clone = tx.clone()
        assert rx.sender_count() == 2
        clone.close()
        assert rx.sender_count() == 1
