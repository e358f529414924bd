"""Unit tests for the invoice entity and its line items."""

from __future__ import annotations

import re
from decimal import Decimal
from uuid import uuid4

import pytest

from shopflow.results import FailureKind
from shopflow.services.invoice import Address, Invoice, InvoiceLineItem, InvoiceStatus


def make_invoice(*items: InvoiceLineItem) -> Invoice:
    address = Address(street="1 Main St", city="Springfield", country="US")
    return Invoice.create(
        order_id=uuid4(),
        payment_id=uuid4(),
        customer_id=uuid4(),
        customer_name="Grace Hopper",
        customer_email="grace@example.com",
        billing_address=address,
        line_items=list(items)
        or [InvoiceLineItem(product_id=uuid4(), product_name="Widget", quantity=1, unit_price=Decimal("20.00"))],
        payment_method="CreditCard",
    )


class TestInvoiceLineItem:
    def test_amounts(self) -> None:
        item = InvoiceLineItem(
            product_id=uuid4(),
            product_name="Widget",
            quantity=4,
            unit_price=Decimal("25.00"),
            tax_rate=Decimal("20"),
            discount_percentage=Decimal("10"),
        )

        assert item.subtotal == Decimal("100.00")
        assert item.discount_amount == Decimal("10")
        assert item.tax_amount == Decimal("18")
        assert item.total_price == Decimal("108")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_non_positive_quantity(self, quantity: int) -> None:
        with pytest.raises(ValueError, match="Quantity"):
            InvoiceLineItem(product_id=uuid4(), product_name="x", quantity=quantity, unit_price=Decimal(1))

    def test_rejects_negative_price(self) -> None:
        with pytest.raises(ValueError, match="Unit price"):
            InvoiceLineItem(product_id=uuid4(), product_name="x", quantity=1, unit_price=Decimal(-1))


class TestAddress:
    def test_requires_street(self) -> None:
        with pytest.raises(ValueError, match="Street"):
            Address(street=" ", city="Springfield", country="US")

    def test_str(self) -> None:
        address = Address(street="1 Main St", city="Springfield", country="US", state="IL", zip_code="62701")
        assert str(address) == "1 Main St, Springfield, IL 62701, US"


class TestInvoiceCreate:
    def test_draft_with_totals(self) -> None:
        invoice = make_invoice(
            InvoiceLineItem(
                product_id=uuid4(),
                product_name="a",
                quantity=2,
                unit_price=Decimal("50.00"),
                tax_rate=Decimal("10"),
            ),
            InvoiceLineItem(product_id=uuid4(), product_name="b", quantity=1, unit_price=Decimal("5.00")),
        )

        assert invoice.status is InvoiceStatus.DRAFT
        assert invoice.subtotal == Decimal("105.00")
        assert invoice.tax_amount == Decimal("10")
        assert invoice.total_amount == Decimal("115.00")
        assert invoice.shipping_address == invoice.billing_address
        assert invoice.due_date is not None
        assert (invoice.due_date - invoice.invoice_date).days == 30

    def test_invoice_number_format(self) -> None:
        assert re.fullmatch(r"INV-\d{8}-\d{4}", make_invoice().invoice_number)

    def test_requires_line_items(self) -> None:
        with pytest.raises(ValueError, match="at least one line item"):
            Invoice.create(
                order_id=uuid4(),
                payment_id=uuid4(),
                customer_id=uuid4(),
                customer_name="Grace",
                customer_email="grace@example.com",
                billing_address=Address(street="1", city="c", country="US"),
                line_items=[],
                payment_method="Card",
            )


class TestInvoiceTransitions:
    def test_issue_then_pay(self) -> None:
        invoice = make_invoice()

        assert invoice.issue().is_success
        assert invoice.pay().is_success
        assert invoice.status is InvoiceStatus.PAID
        assert invoice.paid_date is not None

    def test_pay_is_idempotent(self) -> None:
        invoice = make_invoice()
        invoice.pay()
        paid_date = invoice.paid_date

        assert invoice.pay().is_success
        assert invoice.paid_date == paid_date

    def test_cancel_paid_invoice_is_rejected(self) -> None:
        invoice = make_invoice()
        invoice.issue()
        invoice.pay()

        result = invoice.cancel("customer request")

        assert result.failure is FailureKind.ALREADY_PAID
        assert "already been paid" in result.error
        assert invoice.status is InvoiceStatus.PAID

    def test_cancel_draft(self) -> None:
        invoice = make_invoice()

        assert invoice.cancel("duplicate order").is_success
        assert invoice.status is InvoiceStatus.CANCELLED
        assert invoice.notes == "duplicate order"

    def test_cancelled_invoice_is_terminal(self) -> None:
        invoice = make_invoice()
        invoice.cancel("duplicate order")

        assert invoice.cancel("again").failure is FailureKind.TERMINAL_STATE
        assert invoice.pay().failure is FailureKind.TERMINAL_STATE
        assert invoice.issue().failure is FailureKind.TERMINAL_STATE

    def test_issue_twice_conflicts(self) -> None:
        invoice = make_invoice()
        invoice.issue()

        assert invoice.issue().failure is FailureKind.CONFLICT

    def test_fail_then_reissue(self) -> None:
        invoice = make_invoice()
        invoice.fail("database unavailable")

        assert invoice.status is InvoiceStatus.FAILED
        assert invoice.retry_count == 1
        assert invoice.error_message == "database unavailable"

        assert invoice.issue().is_success
        assert invoice.error_message is None

    def test_add_note_appends(self) -> None:
        invoice = make_invoice()
        invoice.add_note("first")
        invoice.add_note("second")

        assert invoice.notes == "first\nsecond"
