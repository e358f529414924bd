"""Events consumed and published by the invoice service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from pydantic import Field

from shopflow.events import DomainEvent, WireModel, register_event

# =============================================================================
# Incoming (payment service)
# =============================================================================


class PaymentAddress(WireModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class PaymentCustomerInfo(WireModel):
    name: str = ""
    email: str = ""
    billing_address: PaymentAddress | None = None
    shipping_address: PaymentAddress | None = None


class PaymentOrderItem(WireModel):
    product_id: UUID
    product_name: str = ""
    product_sku: str | None = None
    description: str | None = None
    quantity: int = 0
    unit_price: Decimal = Decimal(0)
    tax_rate: Decimal = Decimal(0)
    discount_percentage: Decimal = Decimal(0)


@register_event
class PaymentConfirmedEvent(DomainEvent):
    source_service: ClassVar[str] = "payment"

    payment_id: UUID
    order_id: UUID
    customer_id: UUID
    amount: Decimal
    currency: str = "USD"
    payment_method: str = ""
    transaction_id: str = ""
    payment_date: datetime | None = None
    customer_info: PaymentCustomerInfo = Field(default_factory=PaymentCustomerInfo)
    order_items: list[PaymentOrderItem] = Field(default_factory=list)


# =============================================================================
# Outgoing
# =============================================================================


@register_event
class InvoiceCreatedEvent(DomainEvent):
    source_service: ClassVar[str] = "invoice"

    invoice_id: UUID
    invoice_number: str
    order_id: UUID
    customer_id: UUID
    total_amount: Decimal
    currency: str = "USD"
    invoice_date: datetime
    customer_email: str


@register_event
class InvoiceIssuedEvent(DomainEvent):
    source_service: ClassVar[str] = "invoice"

    invoice_id: UUID
    invoice_number: str
    customer_id: UUID
    customer_email: str
    total_amount: Decimal
    issued_date: datetime


@register_event
class InvoiceFailedEvent(DomainEvent):
    source_service: ClassVar[str] = "invoice"

    payment_id: UUID
    order_id: UUID
    reason: str
    failed_date: datetime
    retry_count: int = 0
