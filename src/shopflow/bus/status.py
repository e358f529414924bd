"""
Connection state and status snapshots for event buses.

``ConnectionState`` is owned by one bus instance for the lifetime of the
process. The transport adapter mutates it on connect and disconnect; the
publisher on every publish attempt; health checks only read snapshots.
Publishes and consumer callbacks can run concurrently, so every update
happens under one lock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class EventBusStatus:
    """
    Point-in-time view of an event bus.

    Attributes:
        is_connected: Whether the broker connection and channel are open
        connection_type: "RabbitMQ" or "InMemory"
        events_published: Events confirmed by the broker
        publish_failures: Events that could not be published
        last_connected_at: Last successful connection time
        last_failure_at: Last connection or publish failure time
        last_error: Message of the last failure
    """

    is_connected: bool
    connection_type: str
    events_published: int = 0
    publish_failures: int = 0
    last_connected_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_error: str | None = None

    @property
    def is_healthy(self) -> bool:
        return self.is_connected

    def to_dict(self) -> dict[str, Any]:
        """Health-check data; optional timestamps are omitted when unset."""
        data: dict[str, Any] = {
            "connection_type": self.connection_type,
            "is_connected": self.is_connected,
            "events_published": self.events_published,
            "publish_failures": self.publish_failures,
        }
        if self.last_connected_at is not None:
            data["last_connected_at"] = self.last_connected_at.isoformat()
        if self.last_failure_at is not None:
            data["last_failure_at"] = self.last_failure_at.isoformat()
        if self.last_error:
            data["last_error"] = self.last_error
        return data


class ConnectionState:
    """Thread-safe connection flags and publish counters."""

    def __init__(self, connection_type: str = "RabbitMQ") -> None:
        self._connection_type = connection_type
        self._lock = threading.Lock()
        self._is_connected = False
        self._events_published = 0
        self._publish_failures = 0
        self._last_connected_at: datetime | None = None
        self._last_failure_at: datetime | None = None
        self._last_error: str | None = None

    @property
    def connection_type(self) -> str:
        return self._connection_type

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._is_connected

    @property
    def events_published(self) -> int:
        with self._lock:
            return self._events_published

    @property
    def publish_failures(self) -> int:
        with self._lock:
            return self._publish_failures

    def mark_connected(self) -> None:
        with self._lock:
            self._is_connected = True
            self._last_connected_at = datetime.now(UTC)

    def mark_disconnected(self, error: str | None = None) -> None:
        with self._lock:
            self._is_connected = False
            if error:
                self._last_failure_at = datetime.now(UTC)
                self._last_error = error

    def record_published(self, count: int = 1) -> None:
        with self._lock:
            self._events_published += count

    def record_failure(self, error: str | None = None, count: int = 1) -> None:
        """Count ``count`` failed events and remember the error."""
        with self._lock:
            self._publish_failures += count
            self._last_failure_at = datetime.now(UTC)
            if error:
                self._last_error = error

    def snapshot(self) -> EventBusStatus:
        with self._lock:
            return EventBusStatus(
                is_connected=self._is_connected,
                connection_type=self._connection_type,
                events_published=self._events_published,
                publish_failures=self._publish_failures,
                last_connected_at=self._last_connected_at,
                last_failure_at=self._last_failure_at,
                last_error=self._last_error,
            )
