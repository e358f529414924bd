"""Domain event envelope and the event type / routing key registry."""

from shopflow.events.base import DomainEvent, WireModel
from shopflow.events.registry import (
    DuplicateEventTypeError,
    EventRegistry,
    EventTypeNotFoundError,
    default_registry,
    derive_routing_key,
    register_event,
)

__all__ = [
    "DomainEvent",
    "WireModel",
    "EventRegistry",
    "EventTypeNotFoundError",
    "DuplicateEventTypeError",
    "default_registry",
    "derive_routing_key",
    "register_event",
]
