"""
shopflow - event-driven consistency core for the shop microservices.

This library provides:
- Domain event envelope with a type / routing key registry
- RabbitMQ publisher with publisher confirms and a recovery outbox
- RabbitMQ consumer with ack / requeue / dead-letter settlement
- Idempotent command handlers returning structured results
- Event bus health reporting
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("shopflow")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from shopflow.bus import (
    ConnectionState,
    EventBus,
    EventBusStatus,
    InMemoryEventBus,
    RabbitMQConnection,
    RabbitMQConsumerConfig,
    RabbitMQEventBus,
    RabbitMQEventBusConfig,
    RabbitMQEventConsumer,
)
from shopflow.bus.factory import create_event_bus
from shopflow.events import (
    DomainEvent,
    EventRegistry,
    default_registry,
    derive_routing_key,
    register_event,
)
from shopflow.exceptions import (
    BrokerUnavailableError,
    DuplicateEntityError,
    DuplicateRoutingKeyError,
    EntityNotFoundError,
    EventBusError,
    HandlerAlreadyRegisteredError,
    SerializationError,
    ShopflowError,
)
from shopflow.health import EventBusHealthCheck, HealthCheckResult, HealthStatus
from shopflow.results import FailureKind, Result, to_http_status
from shopflow.settings import EventBusSettings
from shopflow.validation import ValidationResult, Validator

__all__ = [
    "__version__",
    # Events
    "DomainEvent",
    "EventRegistry",
    "default_registry",
    "derive_routing_key",
    "register_event",
    # Bus
    "EventBus",
    "EventBusStatus",
    "ConnectionState",
    "InMemoryEventBus",
    "RabbitMQConnection",
    "RabbitMQEventBus",
    "RabbitMQEventBusConfig",
    "RabbitMQEventConsumer",
    "RabbitMQConsumerConfig",
    "create_event_bus",
    "EventBusSettings",
    # Health
    "EventBusHealthCheck",
    "HealthCheckResult",
    "HealthStatus",
    # Results
    "FailureKind",
    "Result",
    "to_http_status",
    "ValidationResult",
    "Validator",
    # Exceptions
    "ShopflowError",
    "EventBusError",
    "BrokerUnavailableError",
    "SerializationError",
    "DuplicateRoutingKeyError",
    "HandlerAlreadyRegisteredError",
    "EntityNotFoundError",
    "DuplicateEntityError",
]
