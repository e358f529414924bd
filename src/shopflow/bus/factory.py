"""Event bus selection from settings."""

from __future__ import annotations

import logging

from shopflow.bus.interface import EventBus
from shopflow.bus.memory import InMemoryEventBus
from shopflow.bus.rabbitmq import RabbitMQEventBus
from shopflow.events.registry import EventRegistry
from shopflow.observability import Tracer
from shopflow.repositories.outbox import OutboxRepository
from shopflow.settings import EventBusSettings

logger = logging.getLogger(__name__)


def create_event_bus(
    settings: EventBusSettings | None = None,
    *,
    event_registry: EventRegistry | None = None,
    outbox: OutboxRepository | None = None,
    tracer: Tracer | None = None,
) -> EventBus:
    """
    Build the event bus a service publishes through.

    Returns an ``InMemoryEventBus`` when ``use_in_memory_event_bus`` is set,
    otherwise an unconnected ``RabbitMQEventBus``; call ``connect()`` on it
    during startup.
    """
    settings = settings or EventBusSettings()

    if settings.use_in_memory_event_bus:
        logger.info(
            "Using InMemoryEventBus for development/testing",
            extra={"service": settings.service_name},
        )
        return InMemoryEventBus(tracer=tracer, enable_tracing=settings.enable_tracing)

    logger.info(
        "Using RabbitMQEventBus",
        extra={"service": settings.service_name},
    )
    return RabbitMQEventBus(
        settings.to_bus_config(),
        event_registry=event_registry,
        outbox=outbox,
        tracer=tracer,
    )
