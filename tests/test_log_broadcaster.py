"""Tests for log fan-out."""

import asyncio

import pytest

from deploy_agent.supervisor.log_broadcaster import LogBroadcaster


class TestLogBroadcaster:
    """Publishing to subscribers and history."""

    @pytest.mark.asyncio
    async def test_subscribers_receive_chunks_in_order(self):
        broadcaster = LogBroadcaster()
        first = broadcaster.subscribe()
        second = broadcaster.subscribe()

        broadcaster.publish(b"one\n")
        broadcaster.publish(b"two\n")

        for subscription in (first, second):
            assert await subscription.get() == b"one\n"
            assert await subscription.get() == b"two\n"

    @pytest.mark.asyncio
    async def test_full_queue_drops_for_that_subscriber_only(self):
        broadcaster = LogBroadcaster()
        slow = broadcaster.subscribe(maxsize=1)
        fast = broadcaster.subscribe(maxsize=10)

        for i in range(3):
            broadcaster.publish(f"line {i}\n".encode())

        assert slow.dropped == 2
        assert slow.queue.qsize() == 1
        assert fast.dropped == 0
        assert fast.queue.qsize() == 3

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self):
        broadcaster = LogBroadcaster()
        broadcaster.publish(b"nobody listening\n")
        assert broadcaster.recent() == [b"nobody listening\n"]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        broadcaster = LogBroadcaster()
        subscription = broadcaster.subscribe()
        subscription.close()

        broadcaster.publish(b"after close\n")

        assert subscription.queue.empty()

    @pytest.mark.asyncio
    async def test_empty_chunks_are_ignored(self):
        broadcaster = LogBroadcaster()
        subscription = broadcaster.subscribe()

        broadcaster.publish(b"")

        assert subscription.queue.empty()
        assert broadcaster.recent() == []

    @pytest.mark.asyncio
    async def test_publish_line(self):
        broadcaster = LogBroadcaster()
        broadcaster.publish_line("Working directory does not exist: /x")
        assert broadcaster.recent() == [b"[deploy-agent] Working directory does not exist: /x\n"]

    @pytest.mark.asyncio
    async def test_get_waits_for_publish(self):
        broadcaster = LogBroadcaster()
        subscription = broadcaster.subscribe()

        getter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)
        assert not getter.done()

        broadcaster.publish(b"late")
        assert await asyncio.wait_for(getter, timeout=1.0) == b"late"

    def test_history_is_bounded(self):
        broadcaster = LogBroadcaster(history_size=3)
        for i in range(5):
            broadcaster.publish(str(i).encode())

        assert broadcaster.recent() == [b"2", b"3", b"4"]
        assert broadcaster.recent(2) == [b"3", b"4"]
        assert broadcaster.recent(0) == []
