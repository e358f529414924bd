"""Order service: order lifecycle driven by commands and inventory events."""

from shopflow.services.order.commands import (
    CancelOrderCommand,
    CancelOrderHandler,
    CancelOrderValidator,
    CreateOrderCommand,
    CreateOrderHandler,
    CreateOrderValidator,
    OrderItemData,
)
from shopflow.services.order.consumers import InventoryReservedHandler
from shopflow.services.order.events import (
    InventoryReservedEvent,
    OrderCancelledEvent,
    OrderCreatedEvent,
    OrderItemDto,
    OrderReservedEvent,
    ReservedItemDto,
)
from shopflow.services.order.models import Order, OrderItem, OrderStatus
from shopflow.services.order.repository import InMemoryOrderRepository, OrderRepository

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderCreatedEvent",
    "OrderReservedEvent",
    "OrderCancelledEvent",
    "InventoryReservedEvent",
    "OrderItemDto",
    "ReservedItemDto",
    "OrderRepository",
    "InMemoryOrderRepository",
    "OrderItemData",
    "CreateOrderCommand",
    "CreateOrderValidator",
    "CreateOrderHandler",
    "CancelOrderCommand",
    "CancelOrderValidator",
    "CancelOrderHandler",
    "InventoryReservedHandler",
]
