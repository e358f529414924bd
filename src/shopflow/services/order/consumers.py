"""Order service event consumers."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from shopflow.bus.interface import EventBus
from shopflow.results import FailureKind, Result
from shopflow.services.order.events import (
    InventoryReservedEvent,
    OrderReservedEvent,
    ReservedItemDto,
)
from shopflow.services.order.models import Order, OrderStatus
from shopflow.services.order.repository import OrderRepository

logger = logging.getLogger(__name__)


class InventoryReservedHandler:
    """
    Moves an order forward once the inventory service has answered.

    A successful reservation marks the order Reserved and publishes
    ``OrderReservedEvent``; a failed one marks it Failed. A redelivered
    event for an order that is already Reserved is a no-op.
    """

    def __init__(self, repository: OrderRepository, event_bus: EventBus) -> None:
        self._repository = repository
        self._event_bus = event_bus

    async def handle(self, event: InventoryReservedEvent) -> Result[Order]:
        order = await self._repository.get_by_id(event.order_id)
        if order is None:
            logger.warning(
                f"Order {event.order_id} not found for inventory reserved event",
                extra={"order_id": str(event.order_id), "event_id": str(event.event_id)},
            )
            return Result.fail(FailureKind.NOT_FOUND, f"Order {event.order_id} not found")

        if not event.success:
            outcome = order.mark_failed("Inventory reservation failed")
            if outcome.is_success:
                await self._repository.update(order)
                logger.warning(
                    f"Order {order.id} failed: inventory could not be reserved",
                    extra={"order_id": str(order.id)},
                )
                return Result.ok(order)
            if order.status is OrderStatus.FAILED:
                return Result.ok(order)
            return outcome.propagate()

        if order.status is OrderStatus.RESERVED:
            logger.info(
                f"Order {order.id} already reserved",
                extra={"order_id": str(order.id)},
            )
            return Result.ok(order)

        outcome = order.mark_reserved()
        if not outcome.is_success:
            return outcome.propagate()

        await self._repository.update(order)
        logger.info(f"Order {order.id} marked as reserved", extra={"order_id": str(order.id)})

        await self._event_bus.publish(
            OrderReservedEvent(
                order_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                user_email=order.user_email,
                reserved_at=datetime.now(UTC),
                reserved_items=[
                    ReservedItemDto(
                        product_id=item.product_id,
                        product_name=item.product_name,
                        reserved_quantity=item.quantity,
                    )
                    for item in order.items
                    if not event.reserved_products or item.product_id in event.reserved_products
                ],
                correlation_id=event.correlation_id,
            )
        )
        return Result.ok(order)
