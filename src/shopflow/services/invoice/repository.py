"""
Invoice persistence.

``order_id`` is unique: adding a second invoice for an order raises
``DuplicateEntityError``. That is the backstop for two concurrent
deliveries of the same PaymentConfirmed event racing past the handler's
existence check.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from shopflow.exceptions import DuplicateEntityError
from shopflow.repositories._connection import connection_scope
from shopflow.serialization import json_dumps, json_loads
from shopflow.services.invoice.models import (
    Address,
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
)


@runtime_checkable
class InvoiceRepository(Protocol):
    async def get_by_id(self, invoice_id: UUID) -> Invoice | None: ...

    async def get_by_invoice_number(self, invoice_number: str) -> Invoice | None: ...

    async def get_by_order_id(self, order_id: UUID) -> Invoice | None: ...

    async def get_by_customer_id(self, customer_id: UUID) -> list[Invoice]: ...

    async def get_failed_for_retry(self, max_retry_count: int) -> list[Invoice]:
        """Failed invoices with ``retry_count`` below ``max_retry_count``."""
        ...

    async def exists_by_order_id(self, order_id: UUID) -> bool: ...

    async def add(self, invoice: Invoice) -> None:
        """
        Raises:
            DuplicateEntityError: If an invoice exists for the same order
        """
        ...

    async def update(self, invoice: Invoice) -> None: ...


class InMemoryInvoiceRepository:
    """Invoice store for tests. Hands out copies, so unsaved changes stay local."""

    def __init__(self) -> None:
        self._invoices: dict[UUID, Invoice] = {}
        self._lock = asyncio.Lock()

    async def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        async with self._lock:
            invoice = self._invoices.get(invoice_id)
            return copy.deepcopy(invoice) if invoice else None

    async def get_by_invoice_number(self, invoice_number: str) -> Invoice | None:
        return await self._find_one(lambda i: i.invoice_number == invoice_number)

    async def get_by_order_id(self, order_id: UUID) -> Invoice | None:
        return await self._find_one(lambda i: i.order_id == order_id)

    async def get_by_customer_id(self, customer_id: UUID) -> list[Invoice]:
        async with self._lock:
            found = [i for i in self._invoices.values() if i.customer_id == customer_id]
            found.sort(key=lambda i: i.invoice_date, reverse=True)
            return copy.deepcopy(found)

    async def get_failed_for_retry(self, max_retry_count: int) -> list[Invoice]:
        async with self._lock:
            found = [
                i
                for i in self._invoices.values()
                if i.status is InvoiceStatus.FAILED and i.retry_count < max_retry_count
            ]
            found.sort(key=lambda i: i.created_at)
            return copy.deepcopy(found)

    async def exists_by_order_id(self, order_id: UUID) -> bool:
        return await self.get_by_order_id(order_id) is not None

    async def add(self, invoice: Invoice) -> None:
        async with self._lock:
            if any(i.order_id == invoice.order_id for i in self._invoices.values()):
                raise DuplicateEntityError("Invoice", invoice.order_id)
            self._invoices[invoice.id] = copy.deepcopy(invoice)

    async def update(self, invoice: Invoice) -> None:
        async with self._lock:
            self._invoices[invoice.id] = copy.deepcopy(invoice)

    async def count(self) -> int:
        async with self._lock:
            return len(self._invoices)

    async def _find_one(self, predicate: Any) -> Invoice | None:
        async with self._lock:
            for invoice in self._invoices.values():
                if predicate(invoice):
                    return copy.deepcopy(invoice)
            return None


INVOICE_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    invoice_number TEXT NOT NULL,
    order_id TEXT NOT NULL,
    payment_id TEXT NOT NULL,
    customer_id TEXT NOT NULL,
    customer_name TEXT NOT NULL,
    customer_email TEXT NOT NULL,
    billing_address TEXT NOT NULL,
    shipping_address TEXT NOT NULL,
    line_items TEXT NOT NULL,
    payment_method TEXT NOT NULL,
    payment_transaction_id TEXT,
    currency TEXT NOT NULL,
    status TEXT NOT NULL,
    invoice_date TEXT NOT NULL,
    due_date TEXT,
    paid_date TEXT,
    subtotal TEXT NOT NULL,
    tax_amount TEXT NOT NULL,
    discount_amount TEXT NOT NULL,
    total_amount TEXT NOT NULL,
    notes TEXT,
    retry_count INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    CONSTRAINT uq_invoices_order_id UNIQUE (order_id)
)
"""

_COLUMNS = (
    "id, invoice_number, order_id, payment_id, customer_id, customer_name, "
    "customer_email, billing_address, shipping_address, line_items, payment_method, "
    "payment_transaction_id, currency, status, invoice_date, due_date, paid_date, "
    "subtotal, tax_amount, discount_amount, total_amount, notes, retry_count, "
    "error_message, created_at, updated_at"
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLAlchemyInvoiceRepository:
    """
    Invoice repository over SQLAlchemy Core with ``text()`` statements.

    Addresses and line items are stored as JSON text columns; amounts
    as decimal strings.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///invoice.db")
        >>> repository = SQLAlchemyInvoiceRepository(engine)
        >>> await repository.create_table()
    """

    def __init__(self, conn: AsyncConnection | AsyncEngine) -> None:
        self._conn = conn

    async def create_table(self) -> None:
        async with connection_scope(self._conn) as conn:
            await conn.execute(text(INVOICE_TABLE_DDL))

    async def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        return await self._select_one("id = :value", str(invoice_id))

    async def get_by_invoice_number(self, invoice_number: str) -> Invoice | None:
        return await self._select_one("invoice_number = :value", invoice_number)

    async def get_by_order_id(self, order_id: UUID) -> Invoice | None:
        return await self._select_one("order_id = :value", str(order_id))

    async def get_by_customer_id(self, customer_id: UUID) -> list[Invoice]:
        async with connection_scope(self._conn, write=False) as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM invoices "
                    "WHERE customer_id = :customer_id ORDER BY invoice_date DESC"
                ),
                {"customer_id": str(customer_id)},
            )
            return [self._row_to_invoice(row) for row in result.fetchall()]

    async def get_failed_for_retry(self, max_retry_count: int) -> list[Invoice]:
        async with connection_scope(self._conn, write=False) as conn:
            result = await conn.execute(
                text(
                    f"SELECT {_COLUMNS} FROM invoices "
                    "WHERE status = :status AND retry_count < :max_retry_count "
                    "ORDER BY created_at ASC"
                ),
                {"status": InvoiceStatus.FAILED.value, "max_retry_count": max_retry_count},
            )
            return [self._row_to_invoice(row) for row in result.fetchall()]

    async def exists_by_order_id(self, order_id: UUID) -> bool:
        async with connection_scope(self._conn, write=False) as conn:
            result = await conn.execute(
                text("SELECT 1 FROM invoices WHERE order_id = :order_id"),
                {"order_id": str(order_id)},
            )
            return result.fetchone() is not None

    async def add(self, invoice: Invoice) -> None:
        placeholders = ", ".join(f":{name.strip()}" for name in _COLUMNS.split(","))
        try:
            async with connection_scope(self._conn) as conn:
                await conn.execute(
                    text(f"INSERT INTO invoices ({_COLUMNS}) VALUES ({placeholders})"),
                    self._to_params(invoice),
                )
        except IntegrityError as e:
            if "order_id" in str(e).lower():
                raise DuplicateEntityError("Invoice", invoice.order_id) from e
            raise

    async def update(self, invoice: Invoice) -> None:
        params = self._to_params(invoice)
        assignments = ", ".join(f"{name} = :{name}" for name in params if name != "id")
        async with connection_scope(self._conn) as conn:
            await conn.execute(
                text(f"UPDATE invoices SET {assignments} WHERE id = :id"),
                params,
            )

    async def _select_one(self, where: str, value: str) -> Invoice | None:
        async with connection_scope(self._conn, write=False) as conn:
            result = await conn.execute(
                text(f"SELECT {_COLUMNS} FROM invoices WHERE {where}"),
                {"value": value},
            )
            row = result.fetchone()
            return self._row_to_invoice(row) if row else None

    @staticmethod
    def _to_params(invoice: Invoice) -> dict[str, Any]:
        line_items = [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "product_sku": item.product_sku,
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "tax_rate": item.tax_rate,
                "discount_percentage": item.discount_percentage,
            }
            for item in invoice.line_items
        ]
        return {
            "id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "order_id": str(invoice.order_id),
            "payment_id": str(invoice.payment_id),
            "customer_id": str(invoice.customer_id),
            "customer_name": invoice.customer_name,
            "customer_email": invoice.customer_email,
            "billing_address": json_dumps(asdict(invoice.billing_address)),
            "shipping_address": json_dumps(asdict(invoice.shipping_address)),
            "line_items": json_dumps(line_items),
            "payment_method": invoice.payment_method,
            "payment_transaction_id": invoice.payment_transaction_id,
            "currency": invoice.currency,
            "status": invoice.status.value,
            "invoice_date": _iso(invoice.invoice_date),
            "due_date": _iso(invoice.due_date),
            "paid_date": _iso(invoice.paid_date),
            "subtotal": str(invoice.subtotal),
            "tax_amount": str(invoice.tax_amount),
            "discount_amount": str(invoice.discount_amount),
            "total_amount": str(invoice.total_amount),
            "notes": invoice.notes,
            "retry_count": invoice.retry_count,
            "error_message": invoice.error_message,
            "created_at": _iso(invoice.created_at),
            "updated_at": _iso(invoice.updated_at),
        }

    @staticmethod
    def _row_to_invoice(row: Any) -> Invoice:
        line_items = [
            InvoiceLineItem(
                id=UUID(item["id"]),
                product_id=UUID(item["product_id"]),
                product_name=item["product_name"],
                product_sku=item["product_sku"],
                description=item["description"],
                quantity=item["quantity"],
                unit_price=Decimal(item["unit_price"]),
                tax_rate=Decimal(item["tax_rate"]),
                discount_percentage=Decimal(item["discount_percentage"]),
            )
            for item in json_loads(row[9])
        ]
        return Invoice(
            id=UUID(row[0]),
            invoice_number=row[1],
            order_id=UUID(row[2]),
            payment_id=UUID(row[3]),
            customer_id=UUID(row[4]),
            customer_name=row[5],
            customer_email=row[6],
            billing_address=Address(**json_loads(row[7])),
            shipping_address=Address(**json_loads(row[8])),
            line_items=line_items,
            payment_method=row[10],
            payment_transaction_id=row[11],
            currency=row[12],
            status=InvoiceStatus(row[13]),
            invoice_date=datetime.fromisoformat(row[14]),
            due_date=_from_iso(row[15]),
            paid_date=_from_iso(row[16]),
            subtotal=Decimal(row[17]),
            tax_amount=Decimal(row[18]),
            discount_amount=Decimal(row[19]),
            total_amount=Decimal(row[20]),
            notes=row[21],
            retry_count=row[22],
            error_message=row[23],
            created_at=datetime.fromisoformat(row[24]),
            updated_at=_from_iso(row[25]),
        )
