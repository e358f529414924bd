"""
Invoice entity and its value objects.

State transitions return ``Result`` instead of raising, so the command
handlers and the message consumer can settle a rejected transition by
its ``FailureKind``:

    Draft --issue--> Issued --pay--> Paid
      |                |
      +----cancel------+--cancel--> Cancelled
    Failed --issue--> Issued          (retry sweep)

Paid and Cancelled are terminal.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from shopflow.results import FailureKind, Result

PAYMENT_TERM_DAYS = 30
_HUNDRED = Decimal(100)


class InvoiceStatus(Enum):
    DRAFT = "Draft"
    ISSUED = "Issued"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)


def generate_invoice_number(now: datetime | None = None) -> str:
    """``INV-YYYYMMDD-NNNN`` with a random four-digit suffix."""
    now = now or datetime.now(UTC)
    return f"INV-{now:%Y%m%d}-{random.randint(1000, 9999)}"


@dataclass(frozen=True)
class Address:
    street: str
    city: str
    country: str
    state: str = ""
    zip_code: str = ""

    def __post_init__(self) -> None:
        if not self.street.strip():
            raise ValueError("Street is required")
        if not self.city.strip():
            raise ValueError("City is required")
        if not self.country.strip():
            raise ValueError("Country is required")

    def __str__(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip_code}, {self.country}"


@dataclass
class InvoiceLineItem:
    """
    One invoiced product line.

    Amounts are derived on construction:
        subtotal = quantity * unit_price
        discount_amount = subtotal * discount_percentage / 100
        tax_amount = (subtotal - discount_amount) * tax_rate / 100
        total_price = subtotal - discount_amount + tax_amount
    """

    product_id: UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal = Decimal(0)
    discount_percentage: Decimal = Decimal(0)
    product_sku: str | None = None
    description: str | None = None
    id: UUID = field(default_factory=uuid4)
    subtotal: Decimal = field(init=False)
    discount_amount: Decimal = field(init=False)
    tax_amount: Decimal = field(init=False)
    total_price: Decimal = field(init=False)

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Quantity must be greater than zero")
        if self.unit_price < 0:
            raise ValueError("Unit price cannot be negative")
        self.unit_price = Decimal(self.unit_price)
        self.tax_rate = Decimal(self.tax_rate)
        self.discount_percentage = Decimal(self.discount_percentage)
        self._calculate_amounts()

    def _calculate_amounts(self) -> None:
        self.subtotal = self.quantity * self.unit_price
        self.discount_amount = self.subtotal * self.discount_percentage / _HUNDRED
        after_discount = self.subtotal - self.discount_amount
        self.tax_amount = after_discount * self.tax_rate / _HUNDRED
        self.total_price = after_discount + self.tax_amount


@dataclass
class Invoice:
    """An invoice owned by the invoice service. ``order_id`` is its natural key."""

    order_id: UUID
    payment_id: UUID
    customer_id: UUID
    customer_name: str
    customer_email: str
    billing_address: Address
    shipping_address: Address
    line_items: list[InvoiceLineItem]
    payment_method: str
    payment_transaction_id: str | None = None
    currency: str = "USD"
    id: UUID = field(default_factory=uuid4)
    invoice_number: str = field(default_factory=generate_invoice_number)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    invoice_date: datetime = field(default_factory=lambda: datetime.now(UTC))
    due_date: datetime | None = None
    paid_date: datetime | None = None
    subtotal: Decimal = Decimal(0)
    tax_amount: Decimal = Decimal(0)
    discount_amount: Decimal = Decimal(0)
    total_amount: Decimal = Decimal(0)
    notes: str | None = None
    retry_count: int = 0
    error_message: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None

    @classmethod
    def create(
        cls,
        *,
        order_id: UUID,
        payment_id: UUID,
        customer_id: UUID,
        customer_name: str,
        customer_email: str,
        billing_address: Address,
        line_items: list[InvoiceLineItem],
        payment_method: str,
        shipping_address: Address | None = None,
        payment_transaction_id: str | None = None,
        currency: str = "USD",
    ) -> Invoice:
        """
        Build a Draft invoice due in 30 days.

        Raises:
            ValueError: If there are no line items
        """
        if not line_items:
            raise ValueError("Invoice must have at least one line item")
        now = datetime.now(UTC)
        invoice = cls(
            order_id=order_id,
            payment_id=payment_id,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            billing_address=billing_address,
            shipping_address=shipping_address or billing_address,
            line_items=list(line_items),
            payment_method=payment_method,
            payment_transaction_id=payment_transaction_id,
            currency=currency,
            invoice_number=generate_invoice_number(now),
            invoice_date=now,
            due_date=now + timedelta(days=PAYMENT_TERM_DAYS),
            created_at=now,
        )
        invoice.calculate_totals()
        return invoice

    def calculate_totals(self) -> None:
        self.subtotal = sum((item.subtotal for item in self.line_items), Decimal(0))
        self.discount_amount = sum((item.discount_amount for item in self.line_items), Decimal(0))
        self.tax_amount = sum((item.tax_amount for item in self.line_items), Decimal(0))
        self.total_amount = self.subtotal - self.discount_amount + self.tax_amount
        self._touch()

    # =========================================================================
    # Transitions
    # =========================================================================

    def issue(self) -> Result[None]:
        if self.status not in (InvoiceStatus.DRAFT, InvoiceStatus.FAILED):
            kind = FailureKind.TERMINAL_STATE if self.status.is_terminal else FailureKind.CONFLICT
            return Result.fail(kind, f"Cannot issue invoice in {self.status.value} status")
        self.status = InvoiceStatus.ISSUED
        self.error_message = None
        self._touch()
        return Result.ok()

    def pay(self) -> Result[None]:
        """Mark paid. Paying a paid invoice is a no-op."""
        if self.status is InvoiceStatus.PAID:
            return Result.ok()
        if self.status is InvoiceStatus.CANCELLED:
            return Result.fail(
                FailureKind.TERMINAL_STATE,
                f"Invoice '{self.invoice_number}' is cancelled and cannot be paid",
            )
        self.status = InvoiceStatus.PAID
        self.paid_date = datetime.now(UTC)
        self._touch()
        return Result.ok()

    def cancel(self, reason: str) -> Result[None]:
        if self.status is InvoiceStatus.PAID:
            return Result.fail(
                FailureKind.ALREADY_PAID,
                f"Invoice '{self.invoice_number}' has already been paid and cannot be cancelled",
            )
        if self.status is InvoiceStatus.CANCELLED:
            return Result.fail(
                FailureKind.TERMINAL_STATE,
                f"Invoice '{self.invoice_number}' is already cancelled",
            )
        self.status = InvoiceStatus.CANCELLED
        self.notes = reason
        self._touch()
        return Result.ok()

    def fail(self, error_message: str) -> None:
        self.status = InvoiceStatus.FAILED
        self.error_message = error_message
        self.retry_count += 1
        self._touch()

    def add_note(self, note: str) -> None:
        self.notes = note if not self.notes else f"{self.notes}\n{note}"
        self._touch()

    def _touch(self) -> None:
        self.updated_at = datetime.now(UTC)
