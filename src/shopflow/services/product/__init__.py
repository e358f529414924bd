"""Product service: catalogue entries and stock levels."""

from shopflow.services.product.commands import (
    CreateProductCommand,
    CreateProductHandler,
    CreateProductValidator,
    UpdateStockCommand,
    UpdateStockHandler,
    UpdateStockResult,
    UpdateStockValidator,
)
from shopflow.services.product.events import (
    LowStockWarningEvent,
    ProductCreatedEvent,
    StockUpdatedEvent,
)
from shopflow.services.product.models import LOW_STOCK_THRESHOLD, Product
from shopflow.services.product.repository import InMemoryProductRepository, ProductRepository

__all__ = [
    "Product",
    "LOW_STOCK_THRESHOLD",
    "ProductCreatedEvent",
    "StockUpdatedEvent",
    "LowStockWarningEvent",
    "ProductRepository",
    "InMemoryProductRepository",
    "CreateProductCommand",
    "CreateProductValidator",
    "CreateProductHandler",
    "UpdateStockCommand",
    "UpdateStockResult",
    "UpdateStockValidator",
    "UpdateStockHandler",
]
