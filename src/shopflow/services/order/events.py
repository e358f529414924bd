"""Events consumed and published by the order service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from pydantic import Field

from shopflow.events import DomainEvent, WireModel, register_event


class OrderItemDto(WireModel):
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class ReservedItemDto(WireModel):
    product_id: str
    product_name: str
    reserved_quantity: int
    inventory_reservation_id: str = ""


@register_event
class OrderCreatedEvent(DomainEvent):
    source_service: ClassVar[str] = "order"
    routing_key: ClassVar[str | None] = "order.created"

    order_id: UUID
    order_number: str
    user_id: UUID
    user_email: str
    total_amount: Decimal
    items: list[OrderItemDto] = Field(default_factory=list)
    shipping_address: str = ""


@register_event
class OrderReservedEvent(DomainEvent):
    source_service: ClassVar[str] = "order"

    order_id: UUID
    order_number: str
    user_id: UUID
    user_email: str
    reserved_at: datetime
    reserved_items: list[ReservedItemDto] = Field(default_factory=list)


@register_event
class OrderCancelledEvent(DomainEvent):
    source_service: ClassVar[str] = "order"

    order_id: UUID
    order_number: str
    user_id: UUID
    reason: str
    cancelled_at: datetime


@register_event
class InventoryReservedEvent(DomainEvent):
    """Published by the inventory service once stock for an order is held."""

    source_service: ClassVar[str] = "inventory"
    routing_key: ClassVar[str | None] = "inventory.reserved"

    order_id: UUID
    success: bool
    reserved_products: list[str] = Field(default_factory=list)
