"""SQLite storage implementation."""

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Protocol

import aiosqlite

from ..config import resolve_db_path
from ..errors import DuplicateRecord, StoreError
from ..logging_config import get_logger
from ..models import Credential, Message

logger = get_logger(__name__)


class IMessageSink(Protocol):
    """Receives every message right after it is committed."""

    def publish(self, message: Message) -> None:
        ...


class IStorage(Protocol):
    """Persistent storage for credentials and messages (SQLite)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Messages
    async def insert_message(
        self, api_key_id: str, role: str, content: str, meta: dict[str, Any]
    ) -> Message:
        """Append a message and return it with its id and created_at."""
        ...

    async def query_messages(
        self,
        search_text: str | None = None,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        """Messages newest first, optionally full-text filtered and strictly before a timestamp.

        Terms joined with ``&`` are treated as a conjunction.
        """
        ...

    async def recent_messages(self, limit: int) -> list[Message]:
        """Most recent messages, newest first."""
        ...

    # Credentials
    async def find_credential(self, email: str) -> Credential | None:
        """Get the credential registered for an email."""
        ...

    async def find_credential_by_key(self, key: str) -> Credential | None:
        """Get the credential with the given key."""
        ...

    async def insert_credential(self, email: str, key: str) -> Credential:
        """Create an active credential."""
        ...

    async def reactivate_credential(self, email: str) -> Credential:
        """Set the credential for an email active again."""
        ...

    async def deactivate_credential(self, email: str) -> Credential:
        """Administrative deactivation."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO-8601 representation used for storage and cursors."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def match_expression(search_text: str) -> str:
    """Translate ``a & b`` conjunctions into an FTS5 expression.

    Anything without ``&`` is handed to FTS5 untouched.
    """
    if "&" not in search_text:
        return search_text
    terms = [term.strip() for term in search_text.split("&") if term.strip()]
    return " AND ".join('"' + term.replace('"', '""') + '"' for term in terms)


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._sinks: list[IMessageSink] = []
        self._last_created_at: datetime | None = None
        self._lock = asyncio.Lock()

    def attach_sink(self, sink: IMessageSink) -> None:
        """Register a receiver for committed messages (the change feed)."""
        self._sinks.append(sink)

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

        cursor = await self._conn.execute("SELECT MAX(created_at) FROM messages")
        row = await cursor.fetchone()
        if row and row[0]:
            self._last_created_at = parse_timestamp(row[0])

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @asynccontextmanager
    async def _translate_errors(
        self, operation: str, write: bool = False
    ) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize access to the connection and map driver errors.

        Writes are rolled back on any failure, cancellation included, so a
        half-written transaction never becomes visible or rides along with
        the next commit.
        """
        if self._conn is None:
            raise RuntimeError("Storage not initialized")
        async with self._lock:
            try:
                yield self._conn
            except BaseException as e:
                if write:
                    await self._rollback(operation)
                if isinstance(e, aiosqlite.IntegrityError):
                    raise DuplicateRecord(f"{operation}: {e}") from e
                if isinstance(e, aiosqlite.Error):
                    logger.warning("Store error during %s: %s", operation, e)
                    raise StoreError(f"{operation} failed: {e}") from e
                raise

    async def _rollback(self, operation: str) -> None:
        try:
            await asyncio.shield(self._conn.rollback())
        except aiosqlite.Error as e:
            logger.error("Rollback failed during %s: %s", operation, e)

    async def _commit(self, conn: aiosqlite.Connection) -> None:
        commit = asyncio.ensure_future(conn.commit())
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            # The commit has started; its outcome stands even if the caller gave up.
            await commit

    def _next_created_at(self) -> datetime:
        # Strictly increasing so the timestamp cursor never splits equal values.
        # Called under the lock, so commit order matches timestamp order.
        now = datetime.now(timezone.utc)
        if self._last_created_at and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now

    # Messages
    async def insert_message(
        self, api_key_id: str, role: str, content: str, meta: dict[str, Any]
    ) -> Message:
        """Append a message and return it with its id and created_at."""
        async with self._translate_errors("insert_message", write=True) as conn:
            message = Message(
                id=str(uuid.uuid4()),
                api_key_id=api_key_id,
                role=role,
                content=content,
                meta=dict(meta or {}),
                created_at=self._next_created_at(),
            )
            await conn.execute(
                """
                INSERT INTO messages (id, api_key_id, role, content, meta, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    message.api_key_id,
                    message.role,
                    message.content,
                    json.dumps(message.meta),
                    format_timestamp(message.created_at),
                ),
            )
            await conn.execute(
                "INSERT INTO messages_fts (message_id, content) VALUES (?, ?)",
                (message.id, message.content),
            )
            await self._commit(conn)

            # Published in commit order.
            for sink in self._sinks:
                sink.publish(message)

        return message

    async def query_messages(
        self,
        search_text: str | None = None,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        """Messages newest first, optionally full-text filtered and strictly before a timestamp."""
        conditions = []
        params: list[Any] = []

        if search_text:
            conditions.append(
                "id IN (SELECT message_id FROM messages_fts WHERE messages_fts MATCH ?)"
            )
            params.append(match_expression(search_text))
        if before:
            conditions.append("created_at < ?")
            params.append(format_timestamp(before))

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, api_key_id, role, content, meta, created_at
            FROM messages
            {where_clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
        """
        params.append(limit)

        async with self._translate_errors("query_messages") as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        return [
            Message(
                id=row[0],
                api_key_id=row[1],
                role=row[2],
                content=row[3],
                meta=json.loads(row[4]) if row[4] else {},
                created_at=parse_timestamp(row[5]),
            )
            for row in rows
        ]

    async def recent_messages(self, limit: int) -> list[Message]:
        """Most recent messages, newest first."""
        return await self.query_messages(limit=limit)

    # Credentials
    async def _fetch_credential(self, column: str, value: str) -> Credential | None:
        async with self._translate_errors("find_credential") as conn:
            cursor = await conn.execute(
                f"""
                SELECT id, email, key, active, created_at
                FROM api_keys
                WHERE {column} = ?
                """,
                (value,),
            )
            row = await cursor.fetchone()

        if not row:
            return None

        return Credential(
            id=row[0],
            email=row[1],
            key=row[2],
            active=bool(row[3]),
            created_at=parse_timestamp(row[4]),
        )

    async def find_credential(self, email: str) -> Credential | None:
        """Get the credential registered for an email."""
        return await self._fetch_credential("email", email)

    async def find_credential_by_key(self, key: str) -> Credential | None:
        """Get the credential with the given key."""
        return await self._fetch_credential("key", key)

    async def insert_credential(self, email: str, key: str) -> Credential:
        """Create an active credential."""
        credential = Credential(
            id=str(uuid.uuid4()),
            email=email,
            key=key,
            active=True,
            created_at=datetime.now(timezone.utc),
        )

        async with self._translate_errors("insert_credential", write=True) as conn:
            await conn.execute(
                """
                INSERT INTO api_keys (id, email, key, active, created_at)
                VALUES (?, ?, ?, 1, ?)
                """,
                (
                    credential.id,
                    credential.email,
                    credential.key,
                    format_timestamp(credential.created_at),
                ),
            )
            await self._commit(conn)

        return credential

    async def _set_active(self, email: str, active: bool) -> Credential:
        async with self._translate_errors("update_credential", write=True) as conn:
            cursor = await conn.execute(
                "UPDATE api_keys SET active = ? WHERE email = ?",
                (1 if active else 0, email),
            )
            await self._commit(conn)
            updated = cursor.rowcount

        if not updated:
            raise StoreError(f"No credential registered for {email}")

        credential = await self.find_credential(email)
        if credential is None:
            raise StoreError(f"No credential registered for {email}")
        return credential

    async def reactivate_credential(self, email: str) -> Credential:
        """Set the credential for an email active again."""
        return await self._set_active(email, True)

    async def deactivate_credential(self, email: str) -> Credential:
        """Administrative deactivation."""
        return await self._set_active(email, False)

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        async with self._translate_errors("clear", write=True) as conn:
            for table in ["messages_fts", "messages", "api_keys"]:
                await conn.execute(f"DELETE FROM {table}")
            await self._commit(conn)
            self._last_created_at = None
