"""Event bus implementations.

- RabbitMQEventBus: publishes to a service's topic exchange with publisher confirms
- RabbitMQEventConsumer: settles deliveries from a durable queue
- InMemoryEventBus: in-process bus for development and tests

Example:
    >>> from shopflow.bus import RabbitMQEventBus, RabbitMQEventBusConfig
    >>>
    >>> bus = RabbitMQEventBus(RabbitMQEventBusConfig(service_name="order"))
    >>> await bus.connect()
    >>> await bus.publish(OrderCreatedEvent(...))
"""

from shopflow.bus.config import RabbitMQConsumerConfig, RabbitMQEventBusConfig
from shopflow.bus.connection import RabbitMQConnection
from shopflow.bus.consumer import ConsumerStats, RabbitMQEventConsumer
from shopflow.bus.interface import EventBus, EventHandlerFunc
from shopflow.bus.memory import InMemoryEventBus, PublishedEvent
from shopflow.bus.rabbitmq import RabbitMQEventBus
from shopflow.bus.status import ConnectionState, EventBusStatus

__all__ = [
    "EventBus",
    "EventHandlerFunc",
    "EventBusStatus",
    "ConnectionState",
    "InMemoryEventBus",
    "PublishedEvent",
    "RabbitMQConnection",
    "RabbitMQEventBus",
    "RabbitMQEventBusConfig",
    "RabbitMQEventConsumer",
    "RabbitMQConsumerConfig",
    "ConsumerStats",
]
