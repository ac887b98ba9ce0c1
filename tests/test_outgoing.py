"""Tests for chat_loyalty.outgoing module."""

from __future__ import annotations

import asyncio
import logging

from chat_loyalty.outgoing import MIN_PENDING, OutgoingQueue

from conftest import FAST_INTERVAL, RecordingSender


class TestDelivery:
    """FIFO order, dedup and pacing."""

    async def test_consecutive_duplicates_sent_once(self, outgoing: OutgoingQueue, sender: RecordingSender):
        """A, A, B → exactly A then B, paced by the interval."""
        for text in ("A", "A", "B"):
            outgoing.enqueue(text)
        outgoing.start()
        await asyncio.wait_for(outgoing.join(), timeout=2)

        assert sender.texts == ["A", "B"]
        (t_a, _), (t_b, _) = sender.sent
        assert t_b - t_a >= FAST_INTERVAL * 0.9
        assert outgoing.deduplicated_count == 1
        assert outgoing.sent_count == 2

    async def test_non_consecutive_duplicates_both_sent(self, outgoing: OutgoingQueue, sender: RecordingSender):
        for text in ("A", "B", "A"):
            outgoing.enqueue(text)
        outgoing.start()
        await asyncio.wait_for(outgoing.join(), timeout=2)
        assert sender.texts == ["A", "B", "A"]

    async def test_fifo_order(self, outgoing: OutgoingQueue, sender: RecordingSender):
        outgoing.start()
        for i in range(5):
            outgoing.enqueue(f"msg {i}")
        await asyncio.wait_for(outgoing.join(), timeout=2)
        assert sender.texts == [f"msg {i}" for i in range(5)]

    async def test_duplicate_after_delivery_is_skipped(self, outgoing: OutgoingQueue, sender: RecordingSender):
        """Dedup compares against the last delivered text, even after a pause."""
        outgoing.start()
        outgoing.enqueue("same")
        await asyncio.wait_for(outgoing.join(), timeout=2)
        outgoing.enqueue("same")
        await asyncio.wait_for(outgoing.join(), timeout=2)
        assert sender.texts == ["same"]

    async def test_send_failure_does_not_stop_worker(self):
        calls: list[str] = []

        async def flaky_send(text: str) -> None:
            calls.append(text)
            if text == "boom":
                raise ConnectionError("socket gone")

        queue = OutgoingQueue(flaky_send, interval=0.01, logger=logging.getLogger("test"))
        queue.start()
        queue.enqueue("boom")
        queue.enqueue("after")
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()
        assert calls == ["boom", "after"]


class TestCapacity:
    """Bounded buffer behavior."""

    def test_capacity_floor(self, sender: RecordingSender):
        queue = OutgoingQueue(sender, max_pending=5)
        for i in range(MIN_PENDING):
            queue.enqueue(str(i))
        assert queue.pending == MIN_PENDING
        assert queue.dropped_count == 0

    def test_full_queue_drops_oldest(self, sender: RecordingSender):
        queue = OutgoingQueue(sender, max_pending=MIN_PENDING, logger=logging.getLogger("test"))
        for i in range(MIN_PENDING + 2):
            queue.enqueue(str(i))
        assert queue.pending == MIN_PENDING
        assert queue.dropped_count == 2

    async def test_dropped_items_never_delivered(self, sender: RecordingSender):
        queue = OutgoingQueue(sender, interval=0.001, max_pending=MIN_PENDING, logger=logging.getLogger("test"))
        for i in range(MIN_PENDING + 1):
            queue.enqueue(str(i))
        queue.start()
        await asyncio.wait_for(queue.join(), timeout=30)
        await queue.stop()
        assert sender.texts[0] == "1"
        assert sender.texts[-1] == str(MIN_PENDING)


class TestLifecycle:
    async def test_stop_abandons_pending(self, sender: RecordingSender):
        queue = OutgoingQueue(sender, interval=10.0, logger=logging.getLogger("test"))
        queue.enqueue("first")
        queue.enqueue("second")
        queue.enqueue("third")
        queue.start()
        # Let the worker send "first" and enter its pacing sleep
        while not sender.sent:
            await asyncio.sleep(0.01)
        await queue.stop()

        assert sender.texts == ["first"]
        assert queue.pending == 0
        assert not queue.running

    async def test_start_is_idempotent(self, outgoing: OutgoingQueue):
        outgoing.start()
        task = outgoing._worker_task
        outgoing.start()
        assert outgoing._worker_task is task

    async def test_stop_without_start(self, outgoing: OutgoingQueue):
        await outgoing.stop()
        assert not outgoing.running

    async def test_enqueue_does_not_block_without_worker(self, outgoing: OutgoingQueue, sender: RecordingSender):
        outgoing.enqueue("queued")
        assert outgoing.pending == 1
        assert sender.sent == []
