"""Order entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from shopflow.results import FailureKind, Result


class OrderStatus(Enum):
    PENDING = "Pending"
    RESERVED = "Reserved"
    CONFIRMED = "Confirmed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"ORD-{now:%Y%m%d}-{uuid4().hex[:8].upper()}"


@dataclass
class OrderItem:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass
class Order:
    user_id: UUID
    user_email: str
    shipping_address: str
    items: list[OrderItem]
    id: UUID = field(default_factory=uuid4)
    order_number: str = field(default_factory=generate_order_number)
    status: OrderStatus = OrderStatus.PENDING
    order_date: datetime = field(default_factory=lambda: datetime.now(UTC))
    cancellation_reason: str | None = None
    failure_reason: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None

    @property
    def total_amount(self) -> Decimal:
        return sum((item.total_price for item in self.items), Decimal(0))

    def cancel(self, reason: str) -> Result[None]:
        """Cancel the order. Shipped orders conflict; delivered and cancelled ones are final."""
        if self.status in (OrderStatus.CANCELLED, OrderStatus.DELIVERED):
            return Result.fail(
                FailureKind.TERMINAL_STATE,
                f"Order {self.order_number} is {self.status.value} and cannot be cancelled",
            )
        if self.status is OrderStatus.SHIPPED:
            return Result.fail(
                FailureKind.CONFLICT,
                f"Order {self.order_number} has shipped and cannot be cancelled",
            )
        self.status = OrderStatus.CANCELLED
        self.cancellation_reason = reason
        self._touch()
        return Result.ok()

    def mark_reserved(self) -> Result[None]:
        if self.status is not OrderStatus.PENDING:
            kind = (
                FailureKind.TERMINAL_STATE
                if self.status in (OrderStatus.CANCELLED, OrderStatus.DELIVERED)
                else FailureKind.CONFLICT
            )
            return Result.fail(kind, f"Cannot reserve order in {self.status.value} status")
        self.status = OrderStatus.RESERVED
        self._touch()
        return Result.ok()

    def mark_failed(self, reason: str) -> Result[None]:
        if self.status is not OrderStatus.PENDING:
            return Result.fail(
                FailureKind.CONFLICT,
                f"Cannot fail order in {self.status.value} status",
            )
        self.status = OrderStatus.FAILED
        self.failure_reason = reason
        self._touch()
        return Result.ok()

    def _touch(self) -> None:
        self.updated_at = datetime.now(UTC)
