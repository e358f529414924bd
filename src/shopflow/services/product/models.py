"""Product entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from shopflow.results import FailureKind, Result

LOW_STOCK_THRESHOLD = 10


@dataclass
class Product:
    name: str
    sku: str
    price: Decimal
    stock_quantity: int
    created_by: str
    description: str = ""
    category: str = "General"
    is_active: bool = True
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None
    updated_by: str | None = None

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity < LOW_STOCK_THRESHOLD

    def update_stock(self, quantity_change: int, updated_by: str | None = None) -> Result[int]:
        """Apply a stock delta. Returns the previous quantity."""
        if not self.is_active:
            return Result.fail(
                FailureKind.CONFLICT,
                "Cannot update stock for inactive product",
            )
        if self.stock_quantity + quantity_change < 0:
            return Result.fail(
                FailureKind.CONFLICT,
                f"Insufficient stock: {self.stock_quantity} available, change {quantity_change}",
            )
        previous = self.stock_quantity
        self.stock_quantity += quantity_change
        self._touch(updated_by)
        return Result.ok(previous)

    def deactivate(self, updated_by: str) -> None:
        self.is_active = False
        self._touch(updated_by)

    def activate(self, updated_by: str) -> None:
        self.is_active = True
        self._touch(updated_by)

    def _touch(self, updated_by: str | None) -> None:
        self.updated_at = datetime.now(UTC)
        if updated_by:
            self.updated_by = updated_by
