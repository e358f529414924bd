"""Events published by the product service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from shopflow.events import DomainEvent, register_event


@register_event
class ProductCreatedEvent(DomainEvent):
    source_service: ClassVar[str] = "product"

    product_id: UUID
    name: str
    sku: str
    price: Decimal
    stock_quantity: int
    category: str
    created_at: datetime


@register_event
class StockUpdatedEvent(DomainEvent):
    source_service: ClassVar[str] = "product"

    product_id: UUID
    sku: str
    previous_quantity: int
    new_quantity: int
    quantity_change: int
    reason: str
    updated_at: datetime


@register_event
class LowStockWarningEvent(DomainEvent):
    source_service: ClassVar[str] = "product"

    product_id: UUID
    sku: str
    product_name: str
    current_stock: int
    timestamp: datetime
