"""Invoice service event consumers."""

from __future__ import annotations

import logging

from shopflow.results import Result
from shopflow.services.invoice.commands import (
    AddressData,
    CreateInvoiceCommand,
    CreateInvoiceHandler,
    CreateInvoiceResult,
    LineItemData,
)
from shopflow.services.invoice.events import PaymentAddress, PaymentConfirmedEvent

logger = logging.getLogger(__name__)


def _address(address: PaymentAddress | None) -> AddressData | None:
    if address is None:
        return None
    return AddressData(
        street=address.street,
        city=address.city,
        country=address.country,
        state=address.state,
        zip_code=address.zip_code,
    )


def to_create_invoice_command(event: PaymentConfirmedEvent) -> CreateInvoiceCommand:
    info = event.customer_info
    return CreateInvoiceCommand(
        order_id=event.order_id,
        payment_id=event.payment_id,
        customer_id=event.customer_id,
        customer_name=info.name,
        customer_email=info.email,
        billing_address=_address(info.billing_address),
        shipping_address=_address(info.shipping_address),
        payment_method=event.payment_method,
        payment_transaction_id=event.transaction_id or None,
        currency=event.currency,
        order_items=[
            LineItemData(
                product_id=item.product_id,
                product_name=item.product_name,
                product_sku=item.product_sku,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_rate=item.tax_rate,
                discount_percentage=item.discount_percentage,
            )
            for item in event.order_items
        ],
        correlation_id=event.correlation_id,
    )


class PaymentConfirmedHandler:
    """
    Creates the invoice for a confirmed payment.

    Returns the command's ``Result`` so the consumer settles the delivery
    by its failure kind. A redelivered event finds the existing invoice
    and is acked.
    """

    def __init__(self, create_invoice: CreateInvoiceHandler) -> None:
        self._create_invoice = create_invoice

    async def handle(self, event: PaymentConfirmedEvent) -> Result[CreateInvoiceResult]:
        logger.info(
            f"Received PaymentConfirmedEvent for OrderId: {event.order_id}",
            extra={
                "event_id": str(event.event_id),
                "order_id": str(event.order_id),
                "payment_id": str(event.payment_id),
            },
        )

        result = await self._create_invoice.handle(to_create_invoice_command(event))

        if result.is_success:
            value = result.unwrap()
            logger.info(
                f"Invoice {value.invoice_number} ready for OrderId: {event.order_id}",
                extra={
                    "order_id": str(event.order_id),
                    "invoice_number": value.invoice_number,
                    "invoice_created": value.created,
                },
            )
        return result
