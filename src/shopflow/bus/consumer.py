"""RabbitMQ event consumer.

Binds a durable queue to the routing keys of the event types a service
subscribes to and settles every delivery exactly once:

    Received -> Processing -> Acked | Retried | DeadLettered

- Undecodable bodies, unknown event types and unbound event types are
  dead-lettered (nack without requeue) and logged at ERROR. No handler runs.
- A handler that raises is retried: the message is republished to the
  queue with its ``x-retry-count`` header incremented and the original is
  acked, so handlers must be idempotent.
- A handler that returns a failed ``Result`` is settled by its
  ``FailureKind``: NOT_FOUND and business-rule failures are acked with a
  warning because no retry can fix them, VALIDATION_FAILED is
  dead-lettered, PROCESSING_FAILED is retried.
- A message that has failed ``max_delivery_count`` times is dead-lettered
  to a direct exchange that routes it only to this queue's DLQ.

Up to ``prefetch_count`` deliveries are processed concurrently.

Example:
    >>> consumer = RabbitMQEventConsumer(
    ...     connection,
    ...     RabbitMQConsumerConfig(
    ...         queue_name="invoice.payment.events",
    ...         exchange_name="payment-service-events",
    ...     ),
    ... )
    >>> consumer.subscribe(PaymentConfirmedEvent, PaymentConfirmedHandler(create_invoice))
    >>> await consumer.start()
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from shopflow.bus.config import RabbitMQConsumerConfig
from shopflow.bus.connection import RabbitMQConnection
from shopflow.events.base import DomainEvent
from shopflow.events.registry import EventRegistry, default_registry
from shopflow.exceptions import EntityNotFoundError, HandlerAlreadyRegisteredError
from shopflow.handlers.adapter import HandlerAdapter
from shopflow.observability import SpanKindEnum, Tracer, create_tracer, extract_trace_context
from shopflow.observability.attributes import (
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_NAME,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_ROUTING_KEY,
    ATTR_MESSAGING_SYSTEM,
    MESSAGING_SYSTEM_RABBITMQ,
)
from shopflow.results import FailureKind, Result

logger = logging.getLogger(__name__)

# Failed results that no redelivery can fix; acked so they don't loop
_ACK_WITH_WARNING = frozenset(
    {
        FailureKind.NOT_FOUND,
        FailureKind.CONFLICT,
        FailureKind.ALREADY_PAID,
        FailureKind.TERMINAL_STATE,
    }
)


@dataclass
class ConsumerStats:
    """Counters for a consumer's deliveries.

    Attributes:
        messages_received: Deliveries handed to the consumer
        messages_acked: Deliveries acknowledged
        messages_requeued: Failed deliveries sent back for another attempt
        messages_dead_lettered: Deliveries nacked without requeue
        handler_errors: Handler calls that raised
        last_message_at: When the last delivery arrived
    """

    messages_received: int = 0
    messages_acked: int = 0
    messages_requeued: int = 0
    messages_dead_lettered: int = 0
    handler_errors: int = 0
    last_message_at: datetime | None = None


def _header_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class RabbitMQEventConsumer:
    """Queue consumer dispatching each event type to exactly one handler.

    Args:
        connection: Transport adapter shared with the service's publisher
        config: Queue, exchange and flow-control settings
        event_registry: Registry for event classes and routing keys
        tracer: Optional tracer (created from ``config.enable_tracing`` if omitted)
    """

    def __init__(
        self,
        connection: RabbitMQConnection,
        config: RabbitMQConsumerConfig,
        *,
        event_registry: EventRegistry | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self._connection = connection
        self._config = config
        self._registry = event_registry or default_registry
        self._tracer = tracer or create_tracer(__name__, config.enable_tracing)
        self._handlers: dict[str, HandlerAdapter] = {}
        self._bindings: dict[str, str] = {}
        self._channel: AbstractChannel | None = None
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None
        self._stats = ConsumerStats()

    @property
    def config(self) -> RabbitMQConsumerConfig:
        return self._config

    @property
    def stats(self) -> ConsumerStats:
        return self._stats

    @property
    def is_consuming(self) -> bool:
        return self._consumer_tag is not None

    @property
    def bindings(self) -> dict[str, str]:
        """Routing key -> event type for every subscription."""
        return dict(self._bindings)

    # =========================================================================
    # Subscription
    # =========================================================================

    def subscribe(self, event_class: type[DomainEvent], handler: Any) -> None:
        """Register the handler for an event type and bind its routing key.

        Unregistered event classes are added to the registry first.

        Raises:
            HandlerAlreadyRegisteredError: If the event type already has a handler
            RuntimeError: If called after ``start()``
        """
        if self.is_consuming:
            raise RuntimeError("Subscribe all handlers before starting the consumer")

        self._registry.register(event_class)
        event_type = self._registry.event_type_of(event_class)
        if event_type in self._handlers:
            raise HandlerAlreadyRegisteredError(event_type, self._handlers[event_type].name)

        adapter = HandlerAdapter(handler)
        routing_key = self._registry.routing_key_for(event_type)
        self._handlers[event_type] = adapter
        self._bindings[routing_key] = event_type

        logger.info(
            f"Subscribed {adapter.name} to {event_type}",
            extra={
                "handler": adapter.name,
                "event_type": event_type,
                "routing_key": routing_key,
                "queue": self._config.queue_name,
            },
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> bool:
        """Declare the topology and start consuming.

        Returns:
            True if consuming, False if the broker is unavailable (logged)
        """
        if self.is_consuming:
            return True
        if not self._bindings:
            logger.warning(
                "Consumer has no subscriptions; not starting",
                extra={"queue": self._config.queue_name},
            )
            return False

        try:
            self._channel = await self._connection.open_channel(
                prefetch_count=self._config.prefetch_count,
            )
            self._queue = await self._declare_topology(self._channel)
            self._consumer_tag = await self._queue.consume(self.process_message)
        except Exception as e:
            logger.error(
                f"Failed to start consumer on {self._config.queue_name}: {e}",
                exc_info=True,
                extra={
                    "queue": self._config.queue_name,
                    "exchange": self._config.exchange_name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return False

        logger.info(
            f"Consuming from {self._config.queue_name}",
            extra={
                "queue": self._config.queue_name,
                "exchange": self._config.exchange_name,
                "routing_keys": sorted(self._bindings),
                "prefetch_count": self._config.prefetch_count,
            },
        )
        return True

    async def _declare_topology(self, channel: AbstractChannel) -> AbstractQueue:
        exchange = await self._connection.declare_exchange(
            channel,
            self._config.exchange_name,
            self._config.exchange_type,
        )

        arguments: dict[str, Any] = {}
        if self._config.enable_dlq:
            # Direct DLX keyed by queue name; consumers of the same exchange share it
            dlx = await channel.declare_exchange(
                self._config.dlq_exchange_name,
                type=ExchangeType.DIRECT,
                durable=True,
            )
            dlq = await channel.declare_queue(self._config.dlq_queue_name, durable=True)
            await dlq.bind(dlx, routing_key=self._config.queue_name)
            arguments["x-dead-letter-exchange"] = self._config.dlq_exchange_name
            arguments["x-dead-letter-routing-key"] = self._config.queue_name

        queue = await channel.declare_queue(
            self._config.queue_name,
            durable=self._config.durable,
            exclusive=False,
            auto_delete=self._config.auto_delete,
            arguments=arguments or None,
        )
        for routing_key in self._bindings:
            await queue.bind(exchange, routing_key=routing_key)
        return queue

    async def stop(self) -> None:
        """Cancel the consumer and close its channel."""
        if self._queue is not None and self._consumer_tag is not None:
            await self._queue.cancel(self._consumer_tag)
        self._consumer_tag = None
        if self._channel is not None and not self._channel.is_closed:
            await self._channel.close()
        self._channel = None
        self._queue = None
        logger.info(
            f"Stopped consuming from {self._config.queue_name}",
            extra={"queue": self._config.queue_name, **self.get_stats_dict()},
        )

    # =========================================================================
    # Message processing
    # =========================================================================

    async def process_message(self, message: AbstractIncomingMessage) -> None:
        """Decode, dispatch and settle one delivery."""
        self._stats.messages_received += 1
        self._stats.last_message_at = datetime.now(UTC)

        decoded = self._decode(message)
        if decoded is None:
            await self._dead_letter(message)
            return
        event_type, event = decoded

        attempts = self._attempt_count(message)
        if attempts >= self._config.max_delivery_count:
            logger.error(
                f"{event.event_type} already attempted {attempts} times; dead-lettering",
                extra={
                    "event_id": str(event.event_id),
                    "event_type": event.event_type,
                    "retry_count": attempts,
                },
            )
            await self._dead_letter(message)
            return

        handler = self._handlers[event_type]
        span = self._tracer.start_span(
            "shopflow.event_bus.consume",
            kind=SpanKindEnum.CONSUMER,
            attributes={
                ATTR_MESSAGING_SYSTEM: MESSAGING_SYSTEM_RABBITMQ,
                ATTR_MESSAGING_DESTINATION: self._config.queue_name,
                ATTR_MESSAGING_ROUTING_KEY: message.routing_key or "",
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_EVENT_ID: str(event.event_id),
                ATTR_HANDLER_NAME: handler.name,
            },
            context=extract_trace_context(message.headers),
        )
        try:
            await self._dispatch(message, event, handler, span)
        finally:
            if span:
                span.end()

    async def _dispatch(
        self,
        message: AbstractIncomingMessage,
        event: DomainEvent,
        handler: HandlerAdapter,
        span: Any,
    ) -> None:
        log_extra = {
            "event_id": str(event.event_id),
            "event_type": event.event_type,
            "handler": handler.name,
            "redelivered": message.redelivered,
        }
        try:
            result = await handler.handle(event)
        except EntityNotFoundError as e:
            logger.warning(
                f"{handler.name} skipped {event.event_type}: {e}",
                extra={**log_extra, "error": str(e)},
            )
            await self._ack(message)
            return
        except Exception as e:
            self._stats.handler_errors += 1
            if span:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
            logger.error(
                f"{handler.name} failed on {event.event_type}, retrying: {e}",
                exc_info=True,
                extra={**log_extra, "error": str(e), "error_type": type(e).__name__},
            )
            await self._retry(message, event)
            return

        if not isinstance(result, Result) or result.is_success:
            if span:
                span.set_status(Status(StatusCode.OK))
            await self._ack(message)
            return

        kind = result.failure
        extra = {**log_extra, "failure": kind.value if kind else None, "error": result.error}
        if kind in _ACK_WITH_WARNING:
            logger.warning(
                f"{handler.name} rejected {event.event_type} ({kind.value}): {result.error}",
                extra=extra,
            )
            await self._ack(message)
        elif kind is FailureKind.VALIDATION_FAILED:
            logger.error(
                f"{event.event_type} failed validation; dead-lettering: {result.error}",
                extra=extra,
            )
            await self._dead_letter(message)
        else:
            self._stats.handler_errors += 1
            logger.error(
                f"{handler.name} could not process {event.event_type}, retrying: {result.error}",
                extra=extra,
            )
            await self._retry(message, event)

    def _decode(self, message: AbstractIncomingMessage) -> tuple[str, DomainEvent] | None:
        """Turn a delivery into a typed event, or log why it can't be."""
        headers = message.headers or {}
        event_type = _header_str(headers.get("event-type")) or message.type
        if not event_type and message.routing_key:
            event_class = self._registry.get_by_routing_key(message.routing_key)
            event_type = self._registry.event_type_of(event_class) if event_class else None

        log_extra = {
            "message_id": message.message_id,
            "routing_key": message.routing_key,
            "event_type": event_type,
            "queue": self._config.queue_name,
        }

        if not event_type or event_type not in self._handlers:
            logger.error(
                f"Unknown event type {event_type!r}; dead-lettering message",
                extra=log_extra,
            )
            return None

        event_class = self._registry.get(event_type)
        try:
            return event_type, event_class.model_validate_json(message.body)
        except (ValidationError, ValueError) as e:
            logger.error(
                f"Malformed {event_type} payload; dead-lettering message: {e}",
                extra={**log_extra, "error": str(e), "error_type": type(e).__name__},
            )
            return None

    @staticmethod
    def _attempt_count(message: AbstractIncomingMessage) -> int:
        """Failed attempts so far, from our retry header or the broker's delivery count."""
        headers = message.headers or {}
        counts = [0]
        for name in ("x-retry-count", "x-delivery-count"):
            try:
                counts.append(int(headers[name]))
            except (KeyError, TypeError, ValueError):
                continue
        return max(counts)

    async def _ack(self, message: AbstractIncomingMessage) -> None:
        await message.ack()
        self._stats.messages_acked += 1

    async def _retry(self, message: AbstractIncomingMessage, event: DomainEvent) -> None:
        """Send a failed delivery back for another attempt, or dead-letter it.

        The message is republished through the default exchange straight to
        this queue with ``x-retry-count`` incremented, then the original is
        acked. Without an open channel, or if the republish fails, it is
        nacked with requeue instead.
        """
        attempts = self._attempt_count(message) + 1
        log_extra = {
            "event_id": str(event.event_id),
            "event_type": event.event_type,
            "retry_count": attempts,
            "max_delivery_count": self._config.max_delivery_count,
        }
        if attempts >= self._config.max_delivery_count:
            logger.error(
                f"{event.event_type} failed {attempts} times; dead-lettering",
                extra=log_extra,
            )
            await self._dead_letter(message)
            return

        self._stats.messages_requeued += 1
        if self._channel is None or self._channel.is_closed:
            await message.nack(requeue=True)
            return
        try:
            await self._republish(self._channel, message, attempts)
        except Exception as e:
            logger.warning(
                f"Could not republish {event.event_type} for retry, requeueing: {e}",
                extra={**log_extra, "error": str(e), "error_type": type(e).__name__},
            )
            await message.nack(requeue=True)
            return
        await message.ack()
        logger.info(
            f"Republished {event.event_type} for retry "
            f"{attempts}/{self._config.max_delivery_count}",
            extra=log_extra,
        )

    async def _republish(
        self,
        channel: AbstractChannel,
        original: AbstractIncomingMessage,
        retry_count: int,
    ) -> None:
        headers = dict(original.headers or {})
        headers["x-retry-count"] = retry_count
        headers["x-last-retry-at"] = datetime.now(UTC).isoformat()
        retry_message = Message(
            body=original.body,
            content_type=original.content_type,
            content_encoding=original.content_encoding,
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=original.message_id,
            correlation_id=original.correlation_id,
            type=original.type,
            app_id=original.app_id,
            headers=headers,
        )
        await channel.default_exchange.publish(retry_message, routing_key=self._config.queue_name)

    async def _dead_letter(self, message: AbstractIncomingMessage) -> None:
        await message.nack(requeue=False)
        self._stats.messages_dead_lettered += 1

    def get_stats_dict(self) -> dict[str, Any]:
        stats = asdict(self._stats)
        if self._stats.last_message_at is not None:
            stats["last_message_at"] = self._stats.last_message_at.isoformat()
        return stats
