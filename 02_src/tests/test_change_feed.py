"""Tests for ChangeFeed, FeedConsumer and RecentMessageCache."""

import asyncio
from datetime import datetime, timezone

import pytest

from agora.feed import ChangeFeed, FeedConsumer, RecentMessageCache
from agora.models import FeedEventKind, Message


def make_message(i: int) -> Message:
    return Message(
        id=f"id-{i:04d}",
        api_key_id="k",
        role="user",
        content=f"m{i}",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


class RecordingListener:
    def __init__(self):
        self.events = []

    def deliver(self, event):
        self.events.append(event)


class TestChangeFeed:
    """Tests for subscriptions."""

    async def test_snapshot_then_inserts(self, storage):
        feed = ChangeFeed(storage, snapshot_size=10)
        storage.attach_sink(feed)
        await storage.insert_message("k", "user", "before", {})

        subscription = await feed.subscribe()
        await storage.insert_message("k", "user", "after", {})

        first = await subscription.next_event(timeout=1)
        second = await subscription.next_event(timeout=1)
        assert first.kind == FeedEventKind.SNAPSHOT
        assert [m.content for m in first.messages] == ["before"]
        assert second.kind == FeedEventKind.INSERT
        assert second.message.content == "after"

    async def test_snapshot_bounded(self, storage):
        feed = ChangeFeed(storage, snapshot_size=2)
        for i in range(5):
            await storage.insert_message("k", "user", f"m{i}", {})

        subscription = await feed.subscribe()
        snapshot = await subscription.next_event(timeout=1)

        assert [m.content for m in snapshot.messages] == ["m4", "m3"]

    async def test_insert_during_snapshot_not_duplicated(self):
        """An insert buffered while the snapshot loads is dropped if the snapshot already has it."""
        gate = asyncio.Event()
        message = make_message(1)

        class GatedStorage:
            async def recent_messages(self, limit):
                await gate.wait()
                return [message]

        feed = ChangeFeed(GatedStorage())
        subscribing = asyncio.create_task(feed.subscribe())
        await wait_until(lambda: feed.subscriber_count == 1)
        feed.publish(message)
        feed.publish(make_message(2))
        gate.set()
        subscription = await subscribing

        snapshot = await subscription.next_event(timeout=1)
        insert = await subscription.next_event(timeout=1)
        assert snapshot.kind == FeedEventKind.SNAPSHOT
        assert insert.message.id == "id-0002"
        with pytest.raises(asyncio.TimeoutError):
            await subscription.next_event(timeout=0.01)

    async def test_slow_subscriber_is_disconnected(self, storage):
        feed = ChangeFeed(storage)
        subscription = await feed.subscribe()
        subscription._max_pending = 3

        for i in range(10):
            feed.publish(make_message(i))

        event = await subscription.next_event(timeout=1)
        assert event.kind == FeedEventKind.DISCONNECTED
        assert subscription.lost
        assert feed.subscriber_count == 0

    async def test_drop_subscribers_signals_loss(self, storage):
        feed = ChangeFeed(storage)
        subscription = await feed.subscribe()
        await subscription.next_event(timeout=1)

        feed.drop_subscribers()

        events = [event async for event in subscription]
        assert [e.kind for e in events] == [FeedEventKind.DISCONNECTED]

    async def test_close_rejects_new_subscriptions(self, storage):
        feed = ChangeFeed(storage)
        feed.close()
        with pytest.raises(RuntimeError):
            await feed.subscribe()


class TestRecentMessageCache:
    def test_newest_first_and_bounded(self):
        cache = RecentMessageCache(max_size=3)
        for i in range(5):
            cache.add(make_message(i))

        assert [m.id for m in cache.get()] == ["id-0004", "id-0003", "id-0002"]
        assert len(cache) == 3

    def test_duplicates_ignored(self):
        cache = RecentMessageCache(max_size=3)
        cache.add(make_message(1))
        cache.add(make_message(1))
        assert len(cache) == 1

    def test_replace_and_limit(self):
        cache = RecentMessageCache(max_size=2)
        cache.replace([make_message(9), make_message(8), make_message(7)])

        assert [m.id for m in cache.get(1)] == ["id-0009"]
        assert len(cache) == 2

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            RecentMessageCache(max_size=0)


class TestFeedConsumer:
    """Tests for the single consumer task."""

    async def test_primes_cache_and_notifies_listeners(self, storage):
        feed = ChangeFeed(storage)
        storage.attach_sink(feed)
        await storage.insert_message("k", "user", "old", {})
        cache = RecentMessageCache(10)
        consumer = FeedConsumer(feed, cache, retry_delay=0.01)
        listener = RecordingListener()
        consumer.add_listener(listener)

        await consumer.start()
        try:
            await wait_until(lambda: consumer.connected)
            await storage.insert_message("k", "user", "new", {})
            await wait_until(lambda: len(listener.events) == 1)
        finally:
            await consumer.stop()

        assert [m.content for m in cache.get()] == ["new", "old"]
        assert listener.events[0].message.content == "new"

    async def test_reconnects_and_reprimes(self, storage):
        feed = ChangeFeed(storage)
        storage.attach_sink(feed)
        cache = RecentMessageCache(10)
        consumer = FeedConsumer(feed, cache, retry_delay=0.01)

        await consumer.start()
        try:
            await wait_until(lambda: consumer.connected)
            feed.drop_subscribers()
            await wait_until(lambda: not consumer.connected)
            # Written while disconnected; only the next snapshot can carry it.
            await storage.insert_message("k", "user", "missed", {})
            await wait_until(lambda: consumer.connect_count == 2 and consumer.connected)
        finally:
            await consumer.stop()

        assert [m.content for m in cache.get()] == ["missed"]

    async def test_listener_failure_contained(self, storage):
        feed = ChangeFeed(storage)
        storage.attach_sink(feed)
        cache = RecentMessageCache(10)
        consumer = FeedConsumer(feed, cache, retry_delay=0.01)

        class Broken:
            def deliver(self, event):
                raise RuntimeError("boom")

        consumer.add_listener(Broken())
        await consumer.start()
        try:
            await wait_until(lambda: consumer.connected)
            await storage.insert_message("k", "user", "a", {})
            await storage.insert_message("k", "user", "b", {})
            await wait_until(lambda: len(cache) == 2)
        finally:
            await consumer.stop()

        assert consumer.connect_count == 1
