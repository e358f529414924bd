"""
Base class for domain events exchanged between services.

An event is an immutable envelope: identity, type, timestamp and an
optional correlation id, plus the payload fields declared by each
subclass. On the wire every field name is camelCase.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar, Self
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Frozen model serialized with camelCase field names."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class DomainEvent(WireModel):
    """
    Base class for all domain events.

    The event_type is the class name unless a subclass sets one
    explicitly. Each subclass names the service that publishes it in
    ``source_service``; the routing key is derived from that and the
    event type unless ``routing_key`` overrides it.

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: Type name of the event (class name by default)
        occurred_at: When the state change happened (UTC)
        correlation_id: ID linking the events of one workflow

    Example:
        >>> class OrderCreatedEvent(DomainEvent):
        ...     source_service: ClassVar[str] = "order"
        ...     routing_key: ClassVar[str | None] = "order.created"
        ...     order_id: UUID
        ...
        >>> event = OrderCreatedEvent(order_id=uuid4())
        >>> event.event_type
        'OrderCreatedEvent'
        >>> event.to_json()
        '{"eventId":"...","eventType":"OrderCreatedEvent",...,"orderId":"..."}'
    """

    source_service: ClassVar[str] = ""
    routing_key: ClassVar[str | None] = None

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier (also the broker message id)",
    )
    event_type: str = Field(
        default="",
        description="Type of event (class name if not set)",
    )
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When event occurred (UTC)",
    )
    correlation_id: str | None = Field(
        default=None,
        description="ID linking related events across services",
    )

    @model_validator(mode="before")
    @classmethod
    def _ensure_event_type(cls, data: Any) -> Any:
        """Fill in event_type from the class name when it is missing or empty."""
        if isinstance(data, dict):
            if not data.get("event_type") and not data.get("eventType"):
                data = {k: v for k, v in data.items() if k != "eventType"}
                data["event_type"] = cls.__name__
        return data

    def with_correlation(self, correlation_id: str) -> Self:
        """Return a copy of this event carrying ``correlation_id``."""
        return self.model_copy(update={"correlation_id": correlation_id})

    def to_json(self) -> str:
        """Serialize to the camelCase JSON wire format."""
        return self.model_dump_json(by_alias=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json(cls, data: str | bytes) -> Self:
        return cls.model_validate_json(data)

    def __str__(self) -> str:
        return f"{self.event_type}(id={self.event_id})"
