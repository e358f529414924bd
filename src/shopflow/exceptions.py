"""Library exceptions for the shopflow package."""

from typing import Any


class ShopflowError(Exception):
    """Base exception for shopflow."""

    pass


class EventBusError(ShopflowError):
    """Raised when there's an error in the event bus."""

    pass


class BrokerUnavailableError(EventBusError):
    """Raised when no open broker connection or channel is available."""

    pass


class SerializationError(ShopflowError):
    """Raised when event serialization or deserialization fails."""

    def __init__(self, event_type: str, message: str) -> None:
        self.event_type = event_type
        super().__init__(f"Serialization error for {event_type}: {message}")


class DuplicateRoutingKeyError(ShopflowError):
    """Raised when two event types would share one routing key."""

    def __init__(self, routing_key: str, existing_type: str, new_type: str) -> None:
        self.routing_key = routing_key
        self.existing_type = existing_type
        self.new_type = new_type
        super().__init__(
            f"Routing key '{routing_key}' is already mapped to {existing_type}. "
            f"Cannot map {new_type} to the same key."
        )


class HandlerAlreadyRegisteredError(ShopflowError):
    """Raised when a second handler is subscribed for the same event type."""

    def __init__(self, event_type: str, existing_handler: str) -> None:
        self.event_type = event_type
        self.existing_handler = existing_handler
        super().__init__(
            f"Event type '{event_type}' already has a handler ({existing_handler})"
        )


class EntityNotFoundError(ShopflowError):
    """Raised when an entity referenced by a message does not exist."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class DuplicateEntityError(ShopflowError):
    """Raised by a repository when a natural key is already taken."""

    def __init__(self, entity_type: str, key: Any) -> None:
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"{entity_type} already exists for key {key}")
