"""Tests for Storage."""

import asyncio

import aiosqlite
import pytest

from agora.errors import DuplicateRecord, StoreError
from agora.storage import match_expression


class RecordingSink:
    def __init__(self):
        self.published = []

    def publish(self, message):
        self.published.append(message)


class TestStorageInit:
    """Tests for Storage initialization."""

    async def test_init_creates_tables(self, storage):
        """Test that init creates all tables."""
        async with storage._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ) as cursor:
            tables = [row[0] for row in await cursor.fetchall()]
            assert "api_keys" in tables
            assert "messages" in tables
            assert "messages_fts" in tables


class TestStorageMessages:
    """Tests for message storage."""

    async def test_insert_returns_message(self, storage):
        """Inserted message carries id, created_at and a default meta."""
        message = await storage.insert_message("key1", "user", "Hello", None)

        assert message.id
        assert message.role == "user"
        assert message.meta == {}
        assert message.created_at.tzinfo is not None

    async def test_created_at_strictly_increasing(self, storage):
        """Back-to-back inserts never share a timestamp."""
        messages = [
            await storage.insert_message("key1", "user", f"m{i}", {}) for i in range(20)
        ]
        stamps = [m.created_at for m in messages]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)

    async def test_query_newest_first(self, storage):
        """Messages come back in descending created_at order."""
        for i in range(5):
            await storage.insert_message("key1", "user", f"m{i}", {"n": i})

        messages = await storage.query_messages(limit=10)

        assert [m.content for m in messages] == ["m4", "m3", "m2", "m1", "m0"]
        assert messages[0].meta == {"n": 4}

    async def test_query_before_is_exclusive(self, storage):
        """The ``before`` bound excludes the message it came from."""
        for i in range(5):
            await storage.insert_message("key1", "user", f"m{i}", {})
        first_page = await storage.query_messages(limit=2)

        rest = await storage.query_messages(limit=10, before=first_page[-1].created_at)

        assert [m.content for m in rest] == ["m2", "m1", "m0"]

    async def test_full_text_search(self, storage):
        """FTS matches on content words."""
        await storage.insert_message("key1", "user", "the quick brown fox", {})
        await storage.insert_message("key1", "user", "a lazy dog", {})

        messages = await storage.query_messages("fox", limit=10)

        assert [m.content for m in messages] == ["the quick brown fox"]

    async def test_conjunctive_search(self, storage):
        """``a & b`` matches only messages containing both terms."""
        await storage.insert_message("key1", "user", "hello world", {})
        await storage.insert_message("key1", "user", "hello there", {})

        messages = await storage.query_messages("hello & world", limit=10)

        assert [m.content for m in messages] == ["hello world"]

    async def test_malformed_search_raises_store_error(self, storage):
        """FTS syntax errors surface as StoreError."""
        await storage.insert_message("key1", "user", "hello", {})

        with pytest.raises(StoreError):
            await storage.query_messages('"unterminated', limit=10)

    async def test_insert_publishes_to_sink(self, storage):
        """Committed messages are handed to attached sinks."""
        sink = RecordingSink()
        storage.attach_sink(sink)

        message = await storage.insert_message("key1", "tool", "x", {})

        assert sink.published == [message]

    async def test_recent_messages(self, storage):
        for i in range(3):
            await storage.insert_message("key1", "user", f"m{i}", {})

        messages = await storage.recent_messages(2)

        assert [m.content for m in messages] == ["m2", "m1"]


def _intercept_fts_insert(storage, monkeypatch, action):
    """Run ``action`` just before the full-text row of a message is written."""
    execute = storage._conn.execute

    async def _execute(sql, parameters=None):
        if "INSERT INTO messages_fts" in sql:
            await action()
        return await execute(sql, parameters)

    monkeypatch.setattr(storage._conn, "execute", _execute)


class TestStorageTransactions:
    """A failed or abandoned write leaves nothing behind."""

    async def test_failed_index_write_rolls_back_message(self, storage, monkeypatch):
        sink = RecordingSink()
        storage.attach_sink(sink)

        async def _fail():
            raise aiosqlite.OperationalError("database or disk is full")

        _intercept_fts_insert(storage, monkeypatch, _fail)
        with pytest.raises(StoreError):
            await storage.insert_message("key1", "user", "first", {})
        monkeypatch.undo()

        await storage.insert_message("key1", "user", "second", {})

        messages = await storage.query_messages(limit=10)
        assert [m.content for m in messages] == ["second"]
        assert await storage.query_messages("first", limit=10) == []
        assert [m.content for m in sink.published] == ["second"]

    async def test_timed_out_write_rolls_back_message(self, storage, monkeypatch):
        sink = RecordingSink()
        storage.attach_sink(sink)

        async def _stall():
            await asyncio.sleep(1)

        _intercept_fts_insert(storage, monkeypatch, _stall)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                storage.insert_message("key1", "user", "first", {}), timeout=0.05
            )
        monkeypatch.undo()

        await storage.insert_message("key1", "user", "second", {})

        messages = await storage.query_messages(limit=10)
        assert [m.content for m in messages] == ["second"]
        assert [m.content for m in sink.published] == ["second"]

    async def test_service_timeout_leaves_no_message(
        self, storage, registry, limiter, cache, monkeypatch
    ):
        from agora.errors import OperationTimeout
        from agora.messages import MessageService

        service = MessageService(storage, registry, limiter, cache, operation_timeout=0.05)
        credential, _ = await registry.register("slow@example.com")

        async def _stall():
            await asyncio.sleep(1)

        _intercept_fts_insert(storage, monkeypatch, _stall)
        with pytest.raises(OperationTimeout):
            await service.write(credential.key, "addr", "user", "first")
        monkeypatch.undo()

        assert await storage.query_messages(limit=10) == []

    async def test_concurrent_inserts_publish_in_timestamp_order(self, storage):
        sink = RecordingSink()
        storage.attach_sink(sink)

        await asyncio.gather(
            *(storage.insert_message("key1", "user", f"m{i}", {}) for i in range(20))
        )

        published = [m.created_at for m in sink.published]
        assert published == sorted(published)
        assert len(set(published)) == 20
        stored = await storage.query_messages(limit=20)
        assert [m.id for m in stored] == [m.id for m in reversed(sink.published)]


class TestStorageCredentials:
    """Tests for credential storage."""

    async def test_insert_and_find(self, storage):
        credential = await storage.insert_credential("a@example.com", "amcp_" + "x" * 32)

        by_email = await storage.find_credential("a@example.com")
        by_key = await storage.find_credential_by_key(credential.key)

        assert by_email.id == credential.id
        assert by_key.email == "a@example.com"
        assert by_key.active is True

    async def test_find_missing_returns_none(self, storage):
        assert await storage.find_credential("nobody@example.com") is None
        assert await storage.find_credential_by_key("amcp_missing") is None

    async def test_duplicate_email_rejected(self, storage):
        await storage.insert_credential("a@example.com", "amcp_" + "x" * 32)

        with pytest.raises(DuplicateRecord):
            await storage.insert_credential("a@example.com", "amcp_" + "y" * 32)

    async def test_deactivate_and_reactivate(self, storage):
        await storage.insert_credential("a@example.com", "amcp_" + "x" * 32)

        inactive = await storage.deactivate_credential("a@example.com")
        active = await storage.reactivate_credential("a@example.com")

        assert inactive.active is False
        assert active.active is True
        assert active.key == "amcp_" + "x" * 32

    async def test_reactivate_unknown_raises(self, storage):
        with pytest.raises(StoreError):
            await storage.reactivate_credential("nobody@example.com")


class TestStorageClear:
    async def test_clear(self, storage):
        await storage.insert_credential("a@example.com", "amcp_" + "x" * 32)
        await storage.insert_message("key1", "user", "hello", {})

        await storage.clear()

        assert await storage.query_messages(limit=10) == []
        assert await storage.find_credential("a@example.com") is None


class TestMatchExpression:
    def test_plain_query_untouched(self):
        assert match_expression("hello world") == "hello world"

    def test_conjunction_quoted(self):
        assert match_expression("hello & wor\"ld") == '"hello" AND "wor""ld"'
