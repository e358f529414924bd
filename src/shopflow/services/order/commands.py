"""Order command handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from shopflow.bus.interface import EventBus
from shopflow.results import FailureKind, Result
from shopflow.services.order.events import OrderCancelledEvent, OrderCreatedEvent, OrderItemDto
from shopflow.services.order.models import Order, OrderItem
from shopflow.services.order.repository import OrderRepository
from shopflow.validation import ValidationResult, Validator, is_blank, is_email

logger = logging.getLogger(__name__)

MAX_CANCEL_REASON_LENGTH = 500


@dataclass(frozen=True)
class OrderItemData:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class CreateOrderCommand:
    user_id: UUID | None
    user_email: str
    shipping_address: str
    items: list[OrderItemData] = field(default_factory=list)
    correlation_id: str | None = None


@dataclass(frozen=True)
class CancelOrderCommand:
    order_id: UUID | None
    reason: str


class CreateOrderValidator:
    def validate(self, command: CreateOrderCommand) -> ValidationResult:
        result = ValidationResult()
        result.require(command.user_id is not None, "UserId is required")
        result.require(is_email(command.user_email), "Valid email is required")
        result.require(not is_blank(command.shipping_address), "Shipping address is required")
        result.require(bool(command.items), "Order must have at least one item")
        for index, item in enumerate(command.items):
            prefix = f"Item {index + 1}"
            result.require(not is_blank(item.product_id), f"{prefix}: ProductId is required")
            result.require(not is_blank(item.product_name), f"{prefix}: product name is required")
            result.require(item.quantity > 0, f"{prefix}: quantity must be greater than zero")
            result.require(item.unit_price >= 0, f"{prefix}: unit price cannot be negative")
        return result


class CancelOrderValidator:
    def validate(self, command: CancelOrderCommand) -> ValidationResult:
        result = ValidationResult()
        result.require(command.order_id is not None, "OrderId is required")
        if is_blank(command.reason):
            result.add("Cancellation reason is required")
        elif len(command.reason) > MAX_CANCEL_REASON_LENGTH:
            result.add(f"Reason cannot exceed {MAX_CANCEL_REASON_LENGTH} characters")
        return result


class CreateOrderHandler:
    """Persists a Pending order, then publishes ``OrderCreatedEvent`` (``order.created``)."""

    def __init__(
        self,
        repository: OrderRepository,
        event_bus: EventBus,
        validator: Validator[CreateOrderCommand] | None = None,
    ) -> None:
        self._repository = repository
        self._event_bus = event_bus
        self._validator = validator or CreateOrderValidator()

    async def handle(self, command: CreateOrderCommand) -> Result[Order]:
        validation = self._validator.validate(command)
        if not validation.is_valid:
            logger.warning(
                f"Validation failed for CreateOrderCommand: {'; '.join(validation.errors)}",
                extra={"user_id": str(command.user_id), "errors": validation.errors},
            )
            return validation.to_result()

        if command.user_id is None:
            return Result.fail(FailureKind.VALIDATION_FAILED, "UserId is required")
        order = Order(
            user_id=command.user_id,
            user_email=command.user_email,
            shipping_address=command.shipping_address,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=Decimal(item.unit_price),
                )
                for item in command.items
            ],
        )
        await self._repository.add(order)
        logger.info(
            f"Order {order.order_number} created",
            extra={"order_id": str(order.id), "order_number": order.order_number},
        )

        await self._event_bus.publish(
            OrderCreatedEvent(
                order_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                user_email=order.user_email,
                total_amount=order.total_amount,
                shipping_address=order.shipping_address,
                items=[
                    OrderItemDto(
                        product_id=item.product_id,
                        product_name=item.product_name,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total_price=item.total_price,
                    )
                    for item in order.items
                ],
                correlation_id=command.correlation_id,
            )
        )
        return Result.ok(order)


class CancelOrderHandler:
    def __init__(
        self,
        repository: OrderRepository,
        event_bus: EventBus,
        validator: Validator[CancelOrderCommand] | None = None,
    ) -> None:
        self._repository = repository
        self._event_bus = event_bus
        self._validator = validator or CancelOrderValidator()

    async def handle(self, command: CancelOrderCommand) -> Result[Order]:
        validation = self._validator.validate(command)
        if not validation.is_valid:
            return validation.to_result()

        if command.order_id is None:
            return Result.fail(FailureKind.VALIDATION_FAILED, "OrderId is required")
        order = await self._repository.get_by_id(command.order_id)
        if order is None:
            logger.warning(
                f"Order {command.order_id} not found",
                extra={"order_id": str(command.order_id)},
            )
            return Result.fail(FailureKind.NOT_FOUND, f"Order {command.order_id} not found")

        outcome = order.cancel(command.reason)
        if not outcome.is_success:
            logger.warning(
                f"Order {order.order_number} cannot be cancelled: {outcome.error}",
                extra={"order_id": str(order.id), "status": order.status.value},
            )
            return outcome.propagate()

        await self._repository.update(order)
        logger.info(
            f"Order {order.id} cancelled. Reason: {command.reason}",
            extra={"order_id": str(order.id), "reason": command.reason},
        )

        await self._event_bus.publish(
            OrderCancelledEvent(
                order_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                reason=command.reason,
                cancelled_at=datetime.now(UTC),
            )
        )
        return Result.ok(order)
