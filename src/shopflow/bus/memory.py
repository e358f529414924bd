"""In-memory event bus implementation.

Records every published event and hands it to subscribers in the same
process. Used when ``use_in_memory_event_bus`` is set (development and
tests); it is always "connected" and never fails a publish.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from shopflow.bus.interface import EventBus, EventHandlerFunc
from shopflow.bus.status import ConnectionState, EventBusStatus
from shopflow.events.base import DomainEvent
from shopflow.handlers.adapter import HandlerAdapter
from shopflow.observability import Tracer, create_tracer
from shopflow.observability.attributes import (
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_NAME,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishedEvent:
    """A record of one event published to the in-memory bus."""

    event_id: UUID
    event_type: str
    routing_key: str | None
    occurred_at: datetime
    published_at: datetime
    event_data: str
    event: DomainEvent


class InMemoryEventBus(EventBus):
    """
    In-process event bus that records what was published.

    Subscribers are invoked concurrently for each event; a failing
    subscriber is logged and does not affect the publisher or the other
    subscribers.

    Example:
        >>> bus = InMemoryEventBus()
        >>> bus.subscribe(OrderCreatedEvent, reserve_inventory)
        >>> await bus.publish(OrderCreatedEvent(...))
        >>> bus.get_event_count("OrderCreatedEvent")
        1
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = False,
    ) -> None:
        self._subscribers: dict[str, list[HandlerAdapter]] = defaultdict(list)
        self._published: list[PublishedEvent] = []
        self._lock = threading.RLock()
        self._state = ConnectionState("InMemory")
        self._state.mark_connected()
        self._started_at = datetime.now(UTC)
        self._handler_errors = 0
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

        logger.info("InMemoryEventBus initialized; events are recorded but not sent to a broker")

    # =========================================================================
    # Publishing
    # =========================================================================

    async def publish(self, event: DomainEvent, *, routing_key: str | None = None) -> bool:
        event_data = event.to_json()
        record = PublishedEvent(
            event_id=event.event_id,
            event_type=event.event_type,
            routing_key=routing_key,
            occurred_at=event.occurred_at,
            published_at=datetime.now(UTC),
            event_data=event_data,
            event=event,
        )
        with self._lock:
            self._published.append(record)
            handlers = list(self._subscribers.get(event.event_type, []))
        self._state.record_published()

        logger.info(
            f"Published {event.event_type} to in-memory bus (id: {event.event_id})",
            extra={
                "event_id": str(event.event_id),
                "event_type": event.event_type,
                "payload": event_data,
            },
        )

        if handlers:
            await asyncio.gather(*(self._safe_handle(h, event) for h in handlers))
        return True

    async def publish_batch(self, events: Sequence[DomainEvent]) -> dict[str, int]:
        batch = list(events)
        for event in batch:
            await self.publish(event)
        if batch:
            logger.info(
                f"Published batch of {len(batch)} events to in-memory bus",
                extra={"event_count": len(batch)},
            )
        return {"total": len(batch), "published": len(batch), "failed": 0}

    async def _safe_handle(self, adapter: HandlerAdapter, event: DomainEvent) -> None:
        with self._tracer.span(
            "shopflow.event_bus.handle",
            {
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_EVENT_ID: str(event.event_id),
                ATTR_HANDLER_NAME: adapter.name,
            },
        ):
            try:
                await adapter.handle(event)
            except Exception as e:
                with self._lock:
                    self._handler_errors += 1
                logger.error(
                    f"Handler {adapter.name} failed processing {event.event_type}: {e}",
                    exc_info=True,
                    extra={
                        "handler": adapter.name,
                        "event_type": event.event_type,
                        "event_id": str(event.event_id),
                        "error": str(e),
                    },
                )

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, event_class: type[DomainEvent], handler: Any | EventHandlerFunc) -> None:
        """Invoke ``handler`` for every published event of ``event_class``."""
        adapter = HandlerAdapter(handler)
        event_type = event_class.model_fields["event_type"].default or event_class.__name__
        with self._lock:
            self._subscribers[event_type].append(adapter)
        logger.info(
            f"Registered handler {adapter.name} for {event_type}",
            extra={"handler": adapter.name, "event_type": event_type},
        )

    def clear_subscribers(self) -> None:
        with self._lock:
            self._subscribers.clear()

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_published_events(self, event_type: str | type[DomainEvent] | None = None) -> list[PublishedEvent]:
        """Published events, optionally only those of one type (case-insensitive name)."""
        with self._lock:
            records = list(self._published)
        if event_type is None:
            return records
        name = event_type if isinstance(event_type, str) else event_type.__name__
        return [r for r in records if r.event_type.lower() == name.lower()]

    def get_events(self, event_class: type[DomainEvent]) -> list[Any]:
        """The published event objects of one class."""
        return [r.event for r in self.get_published_events(event_class)]

    def get_event_count(self, event_type: str | type[DomainEvent] | None = None) -> int:
        if event_type is None:
            return self._state.events_published
        return len(self.get_published_events(event_type))

    def clear(self) -> None:
        """Forget recorded events. The total published counter is kept."""
        with self._lock:
            self._published.clear()
        logger.info("Cleared all events from in-memory event bus")

    def get_statistics(self) -> dict[str, Any]:
        with self._lock:
            records = list(self._published)
            handler_errors = self._handler_errors
        by_type = Counter(r.event_type for r in records)
        published_times = [r.published_at for r in records]
        now = datetime.now(UTC)
        return {
            "total_events_published": self._state.events_published,
            "events_in_memory": len(records),
            "event_type_count": len(by_type),
            "events_by_type": dict(by_type),
            "oldest_event": min(published_times, default=None),
            "newest_event": max(published_times, default=None),
            "handler_errors": handler_errors,
            "started_at": self._started_at,
            "uptime_seconds": (now - self._started_at).total_seconds(),
        }

    # =========================================================================
    # Health
    # =========================================================================

    def is_healthy(self) -> bool:
        return True

    def get_status(self) -> EventBusStatus:
        return self._state.snapshot()


__all__ = ["InMemoryEventBus", "PublishedEvent"]
