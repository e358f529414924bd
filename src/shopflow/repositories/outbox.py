"""
Recovery log for events that could not be published.

When the broker is unreachable the publisher records the event here as
well as in the error log. ``RabbitMQEventBus.republish_pending()`` later
drains the pending entries once the connection is back. Entries are
never the reason a caller's own state change is rolled back: the state
is already committed by the time an event is published.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from shopflow.events.base import DomainEvent
from shopflow.repositories._connection import connection_scope

STATUS_PENDING = "pending"
STATUS_PUBLISHED = "published"


@dataclass
class OutboxEntry:
    """
    An event waiting to be republished.

    Attributes:
        id: Unique entry identifier
        event_id: ID of the recorded event
        event_type: Type name of the event
        routing_key: Routing key the publish was attempted with
        payload: Serialized event (camelCase JSON)
        created_at: When the failed publish was recorded
        status: "pending" or "published"
        retry_count: Republish attempts so far
        last_error: Error from the most recent attempt
        published_at: When a republish succeeded
    """

    id: UUID
    event_id: UUID
    event_type: str
    routing_key: str
    payload: str
    created_at: datetime
    status: str = STATUS_PENDING
    retry_count: int = 0
    last_error: str | None = None
    published_at: datetime | None = None


@dataclass(frozen=True)
class OutboxStats:
    pending_count: int
    published_count: int
    oldest_pending: datetime | None = None


@runtime_checkable
class OutboxRepository(Protocol):
    """Storage for unpublished events."""

    async def add_event(
        self,
        event: DomainEvent,
        routing_key: str,
        error: str | None = None,
    ) -> UUID:
        """Record an event whose publish failed. Returns the entry id."""
        ...

    async def get_pending_events(self, limit: int = 100) -> list[OutboxEntry]:
        """Pending entries, oldest first."""
        ...

    async def mark_published(self, outbox_id: UUID) -> None: ...

    async def increment_retry(self, outbox_id: UUID, error: str | None = None) -> None: ...

    async def cleanup_published(self, days: int = 7) -> int:
        """Delete entries republished more than ``days`` ago. Returns the count."""
        ...

    async def get_stats(self) -> OutboxStats: ...


class InMemoryOutboxRepository:
    """
    In-memory outbox for tests and single-process development.

    Example:
        >>> outbox = InMemoryOutboxRepository()
        >>> bus = RabbitMQEventBus(config, outbox=outbox)
    """

    def __init__(self) -> None:
        self._entries: dict[UUID, OutboxEntry] = {}
        self._lock = asyncio.Lock()

    async def add_event(
        self,
        event: DomainEvent,
        routing_key: str,
        error: str | None = None,
    ) -> UUID:
        outbox_id = uuid4()
        async with self._lock:
            self._entries[outbox_id] = OutboxEntry(
                id=outbox_id,
                event_id=event.event_id,
                event_type=event.event_type,
                routing_key=routing_key,
                payload=event.to_json(),
                created_at=datetime.now(UTC),
                last_error=error,
            )
        return outbox_id

    async def get_pending_events(self, limit: int = 100) -> list[OutboxEntry]:
        async with self._lock:
            pending = [e for e in self._entries.values() if e.status == STATUS_PENDING]
            pending.sort(key=lambda e: e.created_at)
            return pending[:limit]

    async def mark_published(self, outbox_id: UUID) -> None:
        async with self._lock:
            entry = self._entries.get(outbox_id)
            if entry is not None:
                entry.status = STATUS_PUBLISHED
                entry.published_at = datetime.now(UTC)

    async def increment_retry(self, outbox_id: UUID, error: str | None = None) -> None:
        async with self._lock:
            entry = self._entries.get(outbox_id)
            if entry is not None:
                entry.retry_count += 1
                entry.last_error = error

    async def cleanup_published(self, days: int = 7) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days)
        async with self._lock:
            expired = [
                id_
                for id_, entry in self._entries.items()
                if entry.status == STATUS_PUBLISHED
                and entry.published_at is not None
                and entry.published_at < cutoff
            ]
            for id_ in expired:
                del self._entries[id_]
        return len(expired)

    async def get_stats(self) -> OutboxStats:
        async with self._lock:
            pending = [e for e in self._entries.values() if e.status == STATUS_PENDING]
            published = [e for e in self._entries.values() if e.status == STATUS_PUBLISHED]
            return OutboxStats(
                pending_count=len(pending),
                published_count=len(published),
                oldest_pending=min((e.created_at for e in pending), default=None),
            )


OUTBOX_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS unpublished_events (
    id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    routing_key TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    retry_count INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    published_at TEXT
)
"""


class SQLAlchemyOutboxRepository:
    """
    Outbox stored in the ``unpublished_events`` table.

    Uses portable column types (ids and timestamps as ISO-8601 text) so
    the same statements run on SQLite and PostgreSQL.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///invoice.db")
        >>> outbox = SQLAlchemyOutboxRepository(engine)
        >>> await outbox.create_table()
    """

    def __init__(self, conn: AsyncConnection | AsyncEngine) -> None:
        self._conn = conn

    async def create_table(self) -> None:
        async with connection_scope(self._conn) as conn:
            await conn.execute(text(OUTBOX_TABLE_DDL))

    async def add_event(
        self,
        event: DomainEvent,
        routing_key: str,
        error: str | None = None,
    ) -> UUID:
        outbox_id = uuid4()
        async with connection_scope(self._conn) as conn:
            await conn.execute(
                text("""
                    INSERT INTO unpublished_events
                        (id, event_id, event_type, routing_key, payload, created_at,
                         status, retry_count, last_error)
                    VALUES
                        (:id, :event_id, :event_type, :routing_key, :payload, :created_at,
                         'pending', 0, :last_error)
                """),
                {
                    "id": str(outbox_id),
                    "event_id": str(event.event_id),
                    "event_type": event.event_type,
                    "routing_key": routing_key,
                    "payload": event.to_json(),
                    "created_at": datetime.now(UTC).isoformat(),
                    "last_error": error,
                },
            )
        return outbox_id

    async def get_pending_events(self, limit: int = 100) -> list[OutboxEntry]:
        async with connection_scope(self._conn, write=False) as conn:
            result = await conn.execute(
                text("""
                    SELECT id, event_id, event_type, routing_key, payload, created_at,
                           status, retry_count, last_error, published_at
                    FROM unpublished_events
                    WHERE status = 'pending'
                    ORDER BY created_at ASC
                    LIMIT :limit
                """),
                {"limit": limit},
            )
            return [self._row_to_entry(row) for row in result.fetchall()]

    async def mark_published(self, outbox_id: UUID) -> None:
        async with connection_scope(self._conn) as conn:
            await conn.execute(
                text("""
                    UPDATE unpublished_events
                    SET status = 'published', published_at = :published_at
                    WHERE id = :id
                """),
                {"id": str(outbox_id), "published_at": datetime.now(UTC).isoformat()},
            )

    async def increment_retry(self, outbox_id: UUID, error: str | None = None) -> None:
        async with connection_scope(self._conn) as conn:
            await conn.execute(
                text("""
                    UPDATE unpublished_events
                    SET retry_count = retry_count + 1, last_error = :error
                    WHERE id = :id
                """),
                {"id": str(outbox_id), "error": error},
            )

    async def cleanup_published(self, days: int = 7) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days)
        async with connection_scope(self._conn) as conn:
            result = await conn.execute(
                text("""
                    DELETE FROM unpublished_events
                    WHERE status = 'published' AND published_at < :cutoff
                """),
                {"cutoff": cutoff.isoformat()},
            )
            return int(result.rowcount or 0)

    async def get_stats(self) -> OutboxStats:
        async with connection_scope(self._conn, write=False) as conn:
            result = await conn.execute(
                text("""
                    SELECT
                        SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END),
                        SUM(CASE WHEN status = 'published' THEN 1 ELSE 0 END),
                        MIN(CASE WHEN status = 'pending' THEN created_at END)
                    FROM unpublished_events
                """)
            )
            pending, published, oldest = result.fetchone() or (0, 0, None)
            return OutboxStats(
                pending_count=int(pending or 0),
                published_count=int(published or 0),
                oldest_pending=datetime.fromisoformat(oldest) if oldest else None,
            )

    @staticmethod
    def _row_to_entry(row: Any) -> OutboxEntry:
        return OutboxEntry(
            id=UUID(row[0]),
            event_id=UUID(row[1]),
            event_type=row[2],
            routing_key=row[3],
            payload=row[4],
            created_at=datetime.fromisoformat(row[5]),
            status=row[6],
            retry_count=row[7],
            last_error=row[8],
            published_at=datetime.fromisoformat(row[9]) if row[9] else None,
        )
