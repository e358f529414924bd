"""Invoice service: creates paid invoices from confirmed payments."""

from shopflow.services.invoice.commands import (
    AddressData,
    CancelInvoiceCommand,
    CancelInvoiceHandler,
    CancelInvoiceValidator,
    CreateInvoiceCommand,
    CreateInvoiceHandler,
    CreateInvoiceResult,
    CreateInvoiceValidator,
    LineItemData,
)
from shopflow.services.invoice.consumers import PaymentConfirmedHandler, to_create_invoice_command
from shopflow.services.invoice.events import (
    InvoiceCreatedEvent,
    InvoiceFailedEvent,
    InvoiceIssuedEvent,
    PaymentAddress,
    PaymentConfirmedEvent,
    PaymentCustomerInfo,
    PaymentOrderItem,
)
from shopflow.services.invoice.models import Address, Invoice, InvoiceLineItem, InvoiceStatus
from shopflow.services.invoice.repository import (
    InMemoryInvoiceRepository,
    InvoiceRepository,
    SQLAlchemyInvoiceRepository,
)
from shopflow.services.invoice.retry import FailedInvoiceRetryService, RetrySweepResult

__all__ = [
    "Address",
    "Invoice",
    "InvoiceLineItem",
    "InvoiceStatus",
    "PaymentConfirmedEvent",
    "PaymentCustomerInfo",
    "PaymentAddress",
    "PaymentOrderItem",
    "InvoiceCreatedEvent",
    "InvoiceIssuedEvent",
    "InvoiceFailedEvent",
    "InvoiceRepository",
    "InMemoryInvoiceRepository",
    "SQLAlchemyInvoiceRepository",
    "AddressData",
    "LineItemData",
    "CreateInvoiceCommand",
    "CreateInvoiceResult",
    "CreateInvoiceValidator",
    "CreateInvoiceHandler",
    "CancelInvoiceCommand",
    "CancelInvoiceValidator",
    "CancelInvoiceHandler",
    "PaymentConfirmedHandler",
    "to_create_invoice_command",
    "FailedInvoiceRetryService",
    "RetrySweepResult",
]
