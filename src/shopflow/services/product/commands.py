"""Product command handlers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from shopflow.bus.interface import EventBus
from shopflow.exceptions import DuplicateEntityError
from shopflow.results import FailureKind, Result
from shopflow.services.product.events import (
    LowStockWarningEvent,
    ProductCreatedEvent,
    StockUpdatedEvent,
)
from shopflow.services.product.models import Product
from shopflow.services.product.repository import ProductRepository
from shopflow.validation import ValidationResult, Validator, is_blank

logger = logging.getLogger(__name__)

SKU_PATTERN = re.compile(r"^[a-zA-Z0-9\-]+$")
MAX_PRICE = Decimal(2_000_000)
MAX_QUANTITY = 1_000_000


@dataclass(frozen=True)
class CreateProductCommand:
    name: str
    sku: str
    price: Decimal
    stock_quantity: int
    created_by: str
    description: str = ""
    category: str = "General"


@dataclass(frozen=True)
class UpdateStockCommand:
    product_id: UUID | None
    quantity_change: int
    reason: str
    updated_by: str


@dataclass(frozen=True)
class UpdateStockResult:
    product_id: UUID
    previous_quantity: int
    new_quantity: int
    quantity_change: int


class CreateProductValidator:
    def validate(self, command: CreateProductCommand) -> ValidationResult:
        result = ValidationResult()
        if is_blank(command.name):
            result.add("Product name is required")
        elif len(command.name) > 200:
            result.add("Product name must not exceed 200 characters")
        if is_blank(command.sku):
            result.add("SKU is required")
        elif len(command.sku) > 50 or not SKU_PATTERN.match(command.sku):
            result.add("SKU must be at most 50 alphanumeric characters and hyphens")
        result.require(0 <= command.price < MAX_PRICE, "Price must be non-negative and below 2,000,000")
        result.require(
            0 <= command.stock_quantity < MAX_QUANTITY,
            "Stock quantity must be non-negative and below 1,000,000",
        )
        result.require(len(command.category or "") <= 100, "Category must not exceed 100 characters")
        result.require(not is_blank(command.created_by), "CreatedBy is required")
        return result


class UpdateStockValidator:
    def validate(self, command: UpdateStockCommand) -> ValidationResult:
        result = ValidationResult()
        result.require(command.product_id is not None, "Product ID is required")
        result.require(command.quantity_change != 0, "Quantity change cannot be zero")
        result.require(
            -MAX_QUANTITY < command.quantity_change < MAX_QUANTITY,
            "Quantity change is too large",
        )
        if is_blank(command.reason):
            result.add("Reason is required")
        elif len(command.reason) > 500:
            result.add("Reason must not exceed 500 characters")
        result.require(not is_blank(command.updated_by), "UpdatedBy is required")
        return result


class CreateProductHandler:
    def __init__(
        self,
        repository: ProductRepository,
        event_bus: EventBus,
        validator: Validator[CreateProductCommand] | None = None,
    ) -> None:
        self._repository = repository
        self._event_bus = event_bus
        self._validator = validator or CreateProductValidator()

    async def handle(self, command: CreateProductCommand) -> Result[Product]:
        validation = self._validator.validate(command)
        if not validation.is_valid:
            return validation.to_result()

        if await self._repository.get_by_sku(command.sku) is not None:
            logger.warning(
                f"Attempted to create product with duplicate SKU: {command.sku}",
                extra={"sku": command.sku},
            )
            return self._duplicate_sku(command.sku)

        product = Product(
            name=command.name,
            sku=command.sku,
            price=Decimal(command.price),
            stock_quantity=command.stock_quantity,
            created_by=command.created_by,
            description=command.description or "",
            category=command.category or "General",
        )
        try:
            await self._repository.add(product)
        except DuplicateEntityError:
            return self._duplicate_sku(command.sku)

        logger.info(
            f"Product created: {product.id}",
            extra={"product_id": str(product.id), "sku": product.sku},
        )
        await self._event_bus.publish(
            ProductCreatedEvent(
                product_id=product.id,
                name=product.name,
                sku=product.sku,
                price=product.price,
                stock_quantity=product.stock_quantity,
                category=product.category,
                created_at=product.created_at,
            )
        )
        return Result.ok(product)

    @staticmethod
    def _duplicate_sku(sku: str) -> Result[Product]:
        return Result.fail(FailureKind.CONFLICT, f"Product with SKU '{sku}' already exists")


class UpdateStockHandler:
    """
    Applies a stock delta, then publishes ``StockUpdatedEvent`` and, when
    the new quantity is below the low-stock threshold, ``LowStockWarningEvent``.
    """

    def __init__(
        self,
        repository: ProductRepository,
        event_bus: EventBus,
        validator: Validator[UpdateStockCommand] | None = None,
    ) -> None:
        self._repository = repository
        self._event_bus = event_bus
        self._validator = validator or UpdateStockValidator()

    async def handle(self, command: UpdateStockCommand) -> Result[UpdateStockResult]:
        validation = self._validator.validate(command)
        if not validation.is_valid:
            return validation.to_result()

        if command.product_id is None:
            return Result.fail(FailureKind.VALIDATION_FAILED, "Product ID is required")
        product = await self._repository.get_by_id(command.product_id)
        if product is None:
            logger.warning(
                f"Product not found for stock update: {command.product_id}",
                extra={"product_id": str(command.product_id)},
            )
            return Result.fail(
                FailureKind.NOT_FOUND,
                f"Product with ID '{command.product_id}' not found",
            )

        outcome = product.update_stock(command.quantity_change, command.updated_by)
        if not outcome.is_success:
            logger.warning(
                f"Stock update rejected for product {product.id}: {outcome.error}",
                extra={
                    "product_id": str(product.id),
                    "stock_quantity": product.stock_quantity,
                    "quantity_change": command.quantity_change,
                },
            )
            return outcome.propagate()

        previous = outcome.unwrap()
        await self._repository.update(product)
        logger.info(
            f"Stock updated for product {product.id}: {previous} -> {product.stock_quantity}",
            extra={
                "product_id": str(product.id),
                "previous_quantity": previous,
                "new_quantity": product.stock_quantity,
            },
        )

        now = datetime.now(UTC)
        await self._event_bus.publish(
            StockUpdatedEvent(
                product_id=product.id,
                sku=product.sku,
                previous_quantity=previous,
                new_quantity=product.stock_quantity,
                quantity_change=command.quantity_change,
                reason=command.reason,
                updated_at=now,
            )
        )
        if product.is_low_stock:
            await self._event_bus.publish(
                LowStockWarningEvent(
                    product_id=product.id,
                    sku=product.sku,
                    product_name=product.name,
                    current_stock=product.stock_quantity,
                    timestamp=now,
                )
            )

        return Result.ok(
            UpdateStockResult(
                product_id=product.id,
                previous_quantity=previous,
                new_quantity=product.stock_quantity,
                quantity_change=command.quantity_change,
            )
        )
