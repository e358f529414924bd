"""Order persistence."""

from __future__ import annotations

import asyncio
import copy
from typing import Protocol, runtime_checkable
from uuid import UUID

from shopflow.exceptions import DuplicateEntityError
from shopflow.services.order.models import Order


@runtime_checkable
class OrderRepository(Protocol):
    async def get_by_id(self, order_id: UUID) -> Order | None: ...

    async def get_by_user_id(self, user_id: UUID) -> list[Order]: ...

    async def add(self, order: Order) -> None: ...

    async def update(self, order: Order) -> None: ...


class InMemoryOrderRepository:
    def __init__(self) -> None:
        self._orders: dict[UUID, Order] = {}
        self._lock = asyncio.Lock()

    async def get_by_id(self, order_id: UUID) -> Order | None:
        async with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    async def get_by_user_id(self, user_id: UUID) -> list[Order]:
        async with self._lock:
            found = [o for o in self._orders.values() if o.user_id == user_id]
            found.sort(key=lambda o: o.order_date, reverse=True)
            return copy.deepcopy(found)

    async def add(self, order: Order) -> None:
        async with self._lock:
            if order.id in self._orders:
                raise DuplicateEntityError("Order", order.id)
            self._orders[order.id] = copy.deepcopy(order)

    async def update(self, order: Order) -> None:
        async with self._lock:
            self._orders[order.id] = copy.deepcopy(order)
