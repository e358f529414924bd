"""
Invoice command handlers.

``CreateInvoiceHandler`` is idempotent on ``order_id``: a second command
for the same order returns the existing invoice's identifiers with
``created=False`` instead of creating a duplicate. Events are published
only after the invoice has been persisted; a publish failure is the
event bus's concern and never fails the command.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from shopflow.bus.interface import EventBus
from shopflow.exceptions import DuplicateEntityError
from shopflow.results import FailureKind, Result
from shopflow.services.invoice.events import (
    InvoiceCreatedEvent,
    InvoiceFailedEvent,
    InvoiceIssuedEvent,
)
from shopflow.services.invoice.models import Address, Invoice, InvoiceLineItem
from shopflow.services.invoice.repository import InvoiceRepository
from shopflow.validation import ValidationResult, Validator, is_blank, is_email

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200
MAX_CANCEL_REASON_LENGTH = 1000


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True)
class AddressData:
    street: str
    city: str
    country: str
    state: str = ""
    zip_code: str = ""

    def to_address(self) -> Address:
        return Address(
            street=self.street,
            city=self.city,
            country=self.country,
            state=self.state,
            zip_code=self.zip_code,
        )


@dataclass(frozen=True)
class LineItemData:
    product_id: UUID | None
    product_name: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal = Decimal(0)
    discount_percentage: Decimal = Decimal(0)
    product_sku: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class CreateInvoiceCommand:
    order_id: UUID | None
    payment_id: UUID | None
    customer_id: UUID | None
    customer_name: str
    customer_email: str
    billing_address: AddressData | None
    payment_method: str
    order_items: list[LineItemData] = field(default_factory=list)
    shipping_address: AddressData | None = None
    payment_transaction_id: str | None = None
    currency: str = "USD"
    correlation_id: str | None = None


@dataclass(frozen=True)
class CreateInvoiceResult:
    invoice_id: UUID
    invoice_number: str
    created: bool = True


@dataclass(frozen=True)
class CancelInvoiceCommand:
    invoice_id: UUID | None
    reason: str


# =============================================================================
# Validators
# =============================================================================


class CreateInvoiceValidator:
    def validate(self, command: CreateInvoiceCommand) -> ValidationResult:
        result = ValidationResult()
        result.require(command.order_id is not None, "OrderId is required")
        result.require(command.payment_id is not None, "PaymentId is required")
        result.require(command.customer_id is not None, "CustomerId is required")
        result.require(
            not is_blank(command.customer_name) and len(command.customer_name) <= MAX_NAME_LENGTH,
            "Customer name is required",
        )
        result.require(is_email(command.customer_email), "Valid email is required")
        result.require(not is_blank(command.payment_method), "Payment method is required")
        result.require(len(command.currency or "") == 3, "Currency must be 3 characters")
        result.require(bool(command.order_items), "Order must have at least one item")

        address = command.billing_address
        if address is None:
            result.add("Billing address is required")
        else:
            result.require(not is_blank(address.street), "Billing street is required")
            result.require(not is_blank(address.city), "Billing city is required")
            result.require(not is_blank(address.country), "Billing country is required")

        for index, item in enumerate(command.order_items):
            prefix = f"Item {index + 1}"
            result.require(item.product_id is not None, f"{prefix}: ProductId is required")
            result.require(
                not is_blank(item.product_name) and len(item.product_name) <= MAX_NAME_LENGTH,
                f"{prefix}: product name is required",
            )
            result.require(item.quantity > 0, f"{prefix}: quantity must be greater than zero")
            result.require(item.unit_price >= 0, f"{prefix}: unit price cannot be negative")
        return result


class CancelInvoiceValidator:
    def validate(self, command: CancelInvoiceCommand) -> ValidationResult:
        result = ValidationResult()
        result.require(command.invoice_id is not None, "InvoiceId is required.")
        if is_blank(command.reason):
            result.add("A cancellation reason is required.")
        elif len(command.reason) > MAX_CANCEL_REASON_LENGTH:
            result.add(f"Reason must not exceed {MAX_CANCEL_REASON_LENGTH} characters.")
        return result


# =============================================================================
# Handlers
# =============================================================================


class CreateInvoiceHandler:
    """
    Creates the paid invoice for a confirmed payment.

    Flow: validate, check for an invoice with the same order id, build
    the invoice, issue and pay it, persist it, then publish
    ``InvoiceCreatedEvent`` and ``InvoiceIssuedEvent``.

    If persisting fails, the invoice is stored as Failed when possible
    (the retry sweep picks it up through ``complete()``),
    ``InvoiceFailedEvent`` is published, and the result is
    PROCESSING_FAILED so a consumer requeues the delivery.
    """

    def __init__(
        self,
        repository: InvoiceRepository,
        event_bus: EventBus,
        validator: Validator[CreateInvoiceCommand] | None = None,
    ) -> None:
        self._repository = repository
        self._event_bus = event_bus
        self._validator = validator or CreateInvoiceValidator()

    async def handle(self, command: CreateInvoiceCommand) -> Result[CreateInvoiceResult]:
        validation = self._validator.validate(command)
        if not validation.is_valid:
            logger.warning(
                f"Validation failed for CreateInvoiceCommand: {'; '.join(validation.errors)}",
                extra={"order_id": str(command.order_id), "errors": validation.errors},
            )
            return validation.to_result()

        if command.order_id is None:
            return Result.fail(FailureKind.VALIDATION_FAILED, "OrderId is required")
        existing = await self._repository.get_by_order_id(command.order_id)
        if existing is not None:
            logger.warning(
                f"Invoice already exists for OrderId: {command.order_id}",
                extra={"order_id": str(command.order_id), "invoice_number": existing.invoice_number},
            )
            return Result.ok(CreateInvoiceResult(existing.id, existing.invoice_number, created=False))

        try:
            invoice = self._build(command)
        except ValueError as e:
            return Result.fail(FailureKind.VALIDATION_FAILED, str(e))

        return await self.complete(invoice, is_new=True, correlation_id=command.correlation_id)

    async def complete(
        self,
        invoice: Invoice,
        *,
        is_new: bool = False,
        correlation_id: str | None = None,
    ) -> Result[CreateInvoiceResult]:
        """Issue, pay, persist and announce an invoice.

        Shared by new invoices and by the retry sweep for Failed ones
        (``is_new=False`` updates instead of inserting).
        """
        for transition in (invoice.issue, invoice.pay):
            outcome = transition()
            if not outcome.is_success:
                return outcome.propagate()

        try:
            if is_new:
                await self._repository.add(invoice)
            else:
                await self._repository.update(invoice)
        except DuplicateEntityError:
            return await self._existing_after_race(invoice)
        except Exception as e:
            logger.error(
                f"Error creating invoice for OrderId: {invoice.order_id}: {e}",
                exc_info=True,
                extra={
                    "order_id": str(invoice.order_id),
                    "invoice_number": invoice.invoice_number,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            await self._record_failure(invoice, str(e), is_new=is_new, correlation_id=correlation_id)
            return Result.fail(FailureKind.PROCESSING_FAILED, str(e))

        logger.info(
            f"Invoice {invoice.invoice_number} created for OrderId: {invoice.order_id}",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "order_id": str(invoice.order_id),
            },
        )
        await self._publish_created(invoice, correlation_id)
        return Result.ok(CreateInvoiceResult(invoice.id, invoice.invoice_number))

    def _build(self, command: CreateInvoiceCommand) -> Invoice:
        if command.billing_address is None:
            raise ValueError("Billing address is required")
        line_items = [
            InvoiceLineItem(
                product_id=item.product_id,  # type: ignore[arg-type]
                product_name=item.product_name,
                product_sku=item.product_sku,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_rate=item.tax_rate,
                discount_percentage=item.discount_percentage,
            )
            for item in command.order_items
        ]
        return Invoice.create(
            order_id=command.order_id,  # type: ignore[arg-type]
            payment_id=command.payment_id,  # type: ignore[arg-type]
            customer_id=command.customer_id,  # type: ignore[arg-type]
            customer_name=command.customer_name,
            customer_email=command.customer_email,
            billing_address=command.billing_address.to_address(),
            shipping_address=(
                command.shipping_address.to_address() if command.shipping_address else None
            ),
            line_items=line_items,
            payment_method=command.payment_method,
            payment_transaction_id=command.payment_transaction_id,
            currency=command.currency,
        )

    async def _existing_after_race(self, invoice: Invoice) -> Result[CreateInvoiceResult]:
        existing = await self._repository.get_by_order_id(invoice.order_id)
        if existing is None:
            return Result.fail(
                FailureKind.PROCESSING_FAILED,
                f"Invoice for order {invoice.order_id} reported as duplicate but not found",
            )
        logger.warning(
            f"Invoice for OrderId {invoice.order_id} was created concurrently",
            extra={"order_id": str(invoice.order_id), "invoice_number": existing.invoice_number},
        )
        return Result.ok(CreateInvoiceResult(existing.id, existing.invoice_number, created=False))

    async def _record_failure(
        self,
        invoice: Invoice,
        reason: str,
        *,
        is_new: bool,
        correlation_id: str | None,
    ) -> None:
        invoice.fail(reason)
        try:
            if is_new:
                await self._repository.add(invoice)
            else:
                await self._repository.update(invoice)
        except Exception as e:
            logger.error(
                f"Could not persist failed invoice for OrderId: {invoice.order_id}: {e}",
                extra={
                    "order_id": str(invoice.order_id),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

        event = InvoiceFailedEvent(
            payment_id=invoice.payment_id,
            order_id=invoice.order_id,
            reason=reason,
            failed_date=datetime.now(UTC),
            retry_count=invoice.retry_count,
            correlation_id=correlation_id,
        )
        await self._event_bus.publish(event)

    async def _publish_created(self, invoice: Invoice, correlation_id: str | None) -> None:
        await self._event_bus.publish(
            InvoiceCreatedEvent(
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                order_id=invoice.order_id,
                customer_id=invoice.customer_id,
                total_amount=invoice.total_amount,
                currency=invoice.currency,
                invoice_date=invoice.invoice_date,
                customer_email=invoice.customer_email,
                correlation_id=correlation_id,
            )
        )
        await self._event_bus.publish(
            InvoiceIssuedEvent(
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                customer_id=invoice.customer_id,
                customer_email=invoice.customer_email,
                total_amount=invoice.total_amount,
                issued_date=datetime.now(UTC),
                correlation_id=correlation_id,
            )
        )


class CancelInvoiceHandler:
    """Cancels an unpaid invoice. Paid and cancelled invoices are left unchanged."""

    def __init__(
        self,
        repository: InvoiceRepository,
        validator: Validator[CancelInvoiceCommand] | None = None,
    ) -> None:
        self._repository = repository
        self._validator = validator or CancelInvoiceValidator()

    async def handle(self, command: CancelInvoiceCommand) -> Result[Invoice]:
        validation = self._validator.validate(command)
        if not validation.is_valid:
            logger.warning(
                f"CancelInvoiceCommand validation failed: {'; '.join(validation.errors)}",
                extra={"invoice_id": str(command.invoice_id), "errors": validation.errors},
            )
            return validation.to_result()

        if command.invoice_id is None:
            return Result.fail(FailureKind.VALIDATION_FAILED, "InvoiceId is required.")
        invoice = await self._repository.get_by_id(command.invoice_id)
        if invoice is None:
            logger.warning(
                f"Invoice not found: {command.invoice_id}",
                extra={"invoice_id": str(command.invoice_id)},
            )
            return Result.fail(
                FailureKind.NOT_FOUND,
                f"No invoice exists with id '{command.invoice_id}'",
            )

        outcome = invoice.cancel(command.reason)
        if not outcome.is_success:
            logger.warning(
                f"Invoice {invoice.invoice_number} cannot be cancelled: {outcome.error}",
                extra={
                    "invoice_number": invoice.invoice_number,
                    "status": invoice.status.value,
                    "failure": outcome.failure.value if outcome.failure else None,
                },
            )
            return outcome.propagate()

        await self._repository.update(invoice)
        logger.info(
            f"Invoice {invoice.invoice_number} cancelled. Reason: {command.reason}",
            extra={"invoice_number": invoice.invoice_number, "reason": command.reason},
        )
        return Result.ok(invoice)
