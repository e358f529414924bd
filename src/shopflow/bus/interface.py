"""
Event bus interface.

Services publish through ``EventBus`` after their own state change has
been persisted. Implementations never raise on broker failure: a failed
publish is counted, logged with its full payload, and reported through
``get_status()``.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from shopflow.bus.status import EventBusStatus
from shopflow.events.base import DomainEvent

EventHandlerFunc = Callable[[DomainEvent], Awaitable[Any] | Any]


class EventBus(ABC):
    """
    Abstract event bus used by command handlers.

    Tracing:
        Implementations take ``tracer`` / ``enable_tracing`` and create
        ``shopflow.event_bus.publish`` spans of kind PRODUCER.

    Example:
        >>> bus = create_event_bus(settings)
        >>> await order_repository.add(order)
        >>> await bus.publish(OrderCreatedEvent(order_id=order.id, ...))
    """

    @abstractmethod
    async def publish(self, event: DomainEvent, *, routing_key: str | None = None) -> bool:
        """
        Publish a single event.

        Args:
            event: The event to publish
            routing_key: Explicit routing key (defaults to the registry's key
                for the event type)

        Returns:
            True if the broker accepted the event, False if it was recorded
            as a publish failure instead
        """
        pass

    @abstractmethod
    async def publish_batch(self, events: Sequence[DomainEvent]) -> dict[str, int]:
        """
        Publish several events as one unit where the backend supports it.

        Returns:
            Dict with "total", "published" and "failed" counts
        """
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        """True only when the underlying connection and channel are open."""
        pass

    @abstractmethod
    def get_status(self) -> EventBusStatus:
        pass

    async def close(self) -> None:
        """Release broker resources. No-op by default."""
        return None
