"""Product persistence. SKUs are unique (case-insensitive)."""

from __future__ import annotations

import asyncio
import copy
from typing import Protocol, runtime_checkable
from uuid import UUID

from shopflow.exceptions import DuplicateEntityError
from shopflow.services.product.models import Product


@runtime_checkable
class ProductRepository(Protocol):
    async def get_by_id(self, product_id: UUID) -> Product | None: ...

    async def get_by_sku(self, sku: str) -> Product | None: ...

    async def add(self, product: Product) -> None:
        """
        Raises:
            DuplicateEntityError: If the SKU is taken
        """
        ...

    async def update(self, product: Product) -> None: ...


class InMemoryProductRepository:
    def __init__(self) -> None:
        self._products: dict[UUID, Product] = {}
        self._lock = asyncio.Lock()

    async def get_by_id(self, product_id: UUID) -> Product | None:
        async with self._lock:
            product = self._products.get(product_id)
            return copy.deepcopy(product) if product else None

    async def get_by_sku(self, sku: str) -> Product | None:
        async with self._lock:
            for product in self._products.values():
                if product.sku.lower() == sku.lower():
                    return copy.deepcopy(product)
            return None

    async def add(self, product: Product) -> None:
        async with self._lock:
            if any(p.sku.lower() == product.sku.lower() for p in self._products.values()):
                raise DuplicateEntityError("Product", product.sku)
            self._products[product.id] = copy.deepcopy(product)

    async def update(self, product: Product) -> None:
        async with self._lock:
            self._products[product.id] = copy.deepcopy(product)
