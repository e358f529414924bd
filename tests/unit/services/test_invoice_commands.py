"""Unit tests for the invoice command handlers and the PaymentConfirmed consumer."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from shopflow.bus import InMemoryEventBus, RabbitMQConsumerConfig, RabbitMQEventConsumer
from shopflow.exceptions import DuplicateEntityError
from shopflow.results import FailureKind, to_http_status
from shopflow.services.invoice import (
    AddressData,
    CancelInvoiceCommand,
    CancelInvoiceHandler,
    CreateInvoiceCommand,
    CreateInvoiceHandler,
    InMemoryInvoiceRepository,
    Invoice,
    InvoiceCreatedEvent,
    InvoiceFailedEvent,
    InvoiceIssuedEvent,
    InvoiceStatus,
    PaymentConfirmedEvent,
    PaymentConfirmedHandler,
    to_create_invoice_command,
)
from shopflow.validation import ValidationResult
from tests.unit.bus.test_consumer import make_message


class AcceptAllValidator:
    def validate(self, command: Any) -> ValidationResult:
        return ValidationResult()


class FlakyInvoiceRepository(InMemoryInvoiceRepository):
    """Raises on the first ``failures`` calls to ``add``."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures

    async def add(self, invoice: Invoice) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("database unavailable")
        await super().add(invoice)


class RacingInvoiceRepository(InMemoryInvoiceRepository):
    """Simulates another delivery inserting the same order between check and insert."""

    def __init__(self, winner: Invoice) -> None:
        super().__init__()
        self.winner = winner

    async def add(self, invoice: Invoice) -> None:
        await super().add(self.winner)
        raise DuplicateEntityError("Invoice", invoice.order_id)


@pytest.fixture
def handler(
    invoice_repository: InMemoryInvoiceRepository,
    memory_bus: InMemoryEventBus,
) -> CreateInvoiceHandler:
    return CreateInvoiceHandler(invoice_repository, memory_bus)


class TestCreateInvoiceHandler:
    @pytest.mark.asyncio
    async def test_creates_paid_invoice(
        self,
        handler: CreateInvoiceHandler,
        invoice_repository: InMemoryInvoiceRepository,
        memory_bus: InMemoryEventBus,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
    ) -> None:
        command = make_invoice_command(correlation_id="corr-9")

        result = await handler.handle(command)

        assert result.is_success
        value = result.unwrap()
        assert value.created
        assert to_http_status(result.failure, created=value.created) == 201

        invoice = await invoice_repository.get_by_order_id(command.order_id)
        assert invoice is not None
        assert invoice.status is InvoiceStatus.PAID
        assert invoice.total_amount == Decimal("110.00")
        assert invoice.invoice_number == value.invoice_number

        [created] = memory_bus.get_events(InvoiceCreatedEvent)
        [issued] = memory_bus.get_events(InvoiceIssuedEvent)
        assert created.invoice_id == invoice.id
        assert created.total_amount == Decimal("110.00")
        assert created.correlation_id == "corr-9"
        assert issued.invoice_number == value.invoice_number

    @pytest.mark.asyncio
    async def test_second_command_returns_existing_invoice(
        self,
        handler: CreateInvoiceHandler,
        invoice_repository: InMemoryInvoiceRepository,
        memory_bus: InMemoryEventBus,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
    ) -> None:
        command = make_invoice_command()
        first = (await handler.handle(command)).unwrap()

        second = await handler.handle(command)

        assert second.is_success
        assert second.unwrap().invoice_number == first.invoice_number
        assert second.unwrap().invoice_id == first.invoice_id
        assert not second.unwrap().created
        assert to_http_status(second.failure, created=False) == 200
        assert await invoice_repository.count() == 1
        assert memory_bus.get_event_count(InvoiceCreatedEvent) == 1

    @pytest.mark.asyncio
    async def test_publishes_only_after_persisting(
        self,
        invoice_repository: InMemoryInvoiceRepository,
        memory_bus: InMemoryEventBus,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
    ) -> None:
        persisted_at_publish: list[bool] = []

        async def on_created(event: InvoiceCreatedEvent) -> None:
            persisted_at_publish.append(await invoice_repository.exists_by_order_id(event.order_id))

        memory_bus.subscribe(InvoiceCreatedEvent, on_created)

        await CreateInvoiceHandler(invoice_repository, memory_bus).handle(make_invoice_command())

        assert persisted_at_publish == [True]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"order_id": None}, "OrderId is required"),
            ({"customer_email": "not-an-email"}, "Valid email is required"),
            ({"currency": "EURO"}, "Currency must be 3 characters"),
            ({"order_items": []}, "Order must have at least one item"),
            ({"billing_address": None}, "Billing address is required"),
            (
                {"billing_address": AddressData(street="", city="London", country="UK")},
                "Billing street is required",
            ),
        ],
    )
    async def test_validation_failures(
        self,
        handler: CreateInvoiceHandler,
        invoice_repository: InMemoryInvoiceRepository,
        memory_bus: InMemoryEventBus,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
        overrides: dict[str, Any],
        message: str,
    ) -> None:
        result = await handler.handle(make_invoice_command(**overrides))

        assert result.failure is FailureKind.VALIDATION_FAILED
        assert message in result.errors
        assert await invoice_repository.count() == 0
        assert memory_bus.get_event_count() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"order_id": None}, "OrderId is required"),
            ({"billing_address": None}, "Billing address is required"),
        ],
    )
    async def test_missing_fields_fail_with_lenient_validator(
        self,
        invoice_repository: InMemoryInvoiceRepository,
        memory_bus: InMemoryEventBus,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
        overrides: dict[str, Any],
        message: str,
    ) -> None:
        handler = CreateInvoiceHandler(
            invoice_repository, memory_bus, validator=AcceptAllValidator()
        )

        result = await handler.handle(make_invoice_command(**overrides))

        assert result.failure is FailureKind.VALIDATION_FAILED
        assert result.errors == (message,)
        assert await invoice_repository.count() == 0

    @pytest.mark.asyncio
    async def test_concurrent_insert_returns_winner(
        self,
        memory_bus: InMemoryEventBus,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
    ) -> None:
        command = make_invoice_command()
        winner = CreateInvoiceHandler(InMemoryInvoiceRepository(), InMemoryEventBus())._build(command)
        repository = RacingInvoiceRepository(winner)

        result = await CreateInvoiceHandler(repository, memory_bus).handle(command)

        assert result.is_success
        assert result.unwrap().invoice_number == winner.invoice_number
        assert not result.unwrap().created
        assert memory_bus.get_event_count(InvoiceCreatedEvent) == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_records_failed_invoice(
        self,
        memory_bus: InMemoryEventBus,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
    ) -> None:
        repository = FlakyInvoiceRepository(failures=1)
        command = make_invoice_command(correlation_id="corr-7")

        result = await CreateInvoiceHandler(repository, memory_bus).handle(command)

        assert result.failure is FailureKind.PROCESSING_FAILED
        assert "database unavailable" in result.error

        stored = await repository.get_by_order_id(command.order_id)
        assert stored is not None
        assert stored.status is InvoiceStatus.FAILED
        assert stored.retry_count == 1

        [failed] = memory_bus.get_events(InvoiceFailedEvent)
        assert failed.order_id == command.order_id
        assert failed.retry_count == 1
        assert failed.correlation_id == "corr-7"
        assert memory_bus.get_event_count(InvoiceCreatedEvent) == 0

    @pytest.mark.asyncio
    async def test_failure_persisting_failed_invoice_still_publishes(
        self,
        memory_bus: InMemoryEventBus,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        repository = FlakyInvoiceRepository(failures=2)

        result = await CreateInvoiceHandler(repository, memory_bus).handle(make_invoice_command())

        assert result.failure is FailureKind.PROCESSING_FAILED
        assert await repository.count() == 0
        assert memory_bus.get_event_count(InvoiceFailedEvent) == 1
        assert "Could not persist failed invoice" in caplog.text


class TestCancelInvoiceHandler:
    @pytest.mark.asyncio
    async def test_paid_invoice_cannot_be_cancelled(
        self,
        handler: CreateInvoiceHandler,
        invoice_repository: InMemoryInvoiceRepository,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
    ) -> None:
        created = (await handler.handle(make_invoice_command())).unwrap()

        result = await CancelInvoiceHandler(invoice_repository).handle(
            CancelInvoiceCommand(invoice_id=created.invoice_id, reason="customer request")
        )

        assert result.failure is FailureKind.ALREADY_PAID
        assert to_http_status(result.failure) == 409
        invoice = await invoice_repository.get_by_id(created.invoice_id)
        assert invoice is not None
        assert invoice.status is InvoiceStatus.PAID

    @pytest.mark.asyncio
    async def test_cancel_unpaid_invoice(
        self,
        invoice_repository: InMemoryInvoiceRepository,
        make_invoice_command: Callable[..., CreateInvoiceCommand],
    ) -> None:
        invoice = CreateInvoiceHandler(invoice_repository, InMemoryEventBus())._build(make_invoice_command())
        await invoice_repository.add(invoice)

        result = await CancelInvoiceHandler(invoice_repository).handle(
            CancelInvoiceCommand(invoice_id=invoice.id, reason="duplicate order")
        )

        assert result.is_success
        stored = await invoice_repository.get_by_id(invoice.id)
        assert stored is not None
        assert stored.status is InvoiceStatus.CANCELLED
        assert stored.notes == "duplicate order"

    @pytest.mark.asyncio
    async def test_not_found(self, invoice_repository: InMemoryInvoiceRepository) -> None:
        result = await CancelInvoiceHandler(invoice_repository).handle(
            CancelInvoiceCommand(invoice_id=uuid4(), reason="gone")
        )

        assert result.failure is FailureKind.NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("command", "message"),
        [
            (CancelInvoiceCommand(invoice_id=None, reason="x"), "InvoiceId is required."),
            (CancelInvoiceCommand(invoice_id=uuid4(), reason=" "), "A cancellation reason is required."),
            (
                CancelInvoiceCommand(invoice_id=uuid4(), reason="x" * 1001),
                "Reason must not exceed 1000 characters.",
            ),
        ],
    )
    async def test_validation(
        self,
        invoice_repository: InMemoryInvoiceRepository,
        command: CancelInvoiceCommand,
        message: str,
    ) -> None:
        result = await CancelInvoiceHandler(invoice_repository).handle(command)

        assert result.failure is FailureKind.VALIDATION_FAILED
        assert result.errors == (message,)

    @pytest.mark.asyncio
    async def test_missing_id_fails_with_lenient_validator(
        self, invoice_repository: InMemoryInvoiceRepository
    ) -> None:
        handler = CancelInvoiceHandler(invoice_repository, validator=AcceptAllValidator())

        result = await handler.handle(CancelInvoiceCommand(invoice_id=None, reason="x"))

        assert result.failure is FailureKind.VALIDATION_FAILED
        assert result.errors == ("InvoiceId is required.",)


class TestPaymentConfirmedHandler:
    def test_maps_event_to_command(
        self, make_payment_confirmed: Callable[..., PaymentConfirmedEvent]
    ) -> None:
        event = make_payment_confirmed(correlation_id="corr-3")

        command = to_create_invoice_command(event)

        assert command.order_id == event.order_id
        assert command.customer_name == "Grace Hopper"
        assert command.billing_address == AddressData(
            street="1 Main St", city="Springfield", country="US"
        )
        assert command.shipping_address is None
        assert command.payment_transaction_id == "txn-456"
        assert command.correlation_id == "corr-3"
        assert command.order_items[0].product_name == "Compiler"

    @pytest.mark.asyncio
    async def test_payment_flow_ends_with_one_paid_invoice(
        self,
        handler: CreateInvoiceHandler,
        invoice_repository: InMemoryInvoiceRepository,
        memory_bus: InMemoryEventBus,
        make_payment_confirmed: Callable[..., PaymentConfirmedEvent],
    ) -> None:
        memory_bus.subscribe(PaymentConfirmedEvent, PaymentConfirmedHandler(handler))
        event = make_payment_confirmed()

        await memory_bus.publish(event)

        invoices = await invoice_repository.get_by_customer_id(event.customer_id)
        assert len(invoices) == 1
        assert invoices[0].status is InvoiceStatus.PAID
        assert invoices[0].total_amount == Decimal("100.00")
        assert memory_bus.get_event_count(InvoiceCreatedEvent) == 1
        assert memory_bus.get_event_count(InvoiceIssuedEvent) == 1

    @pytest.mark.asyncio
    async def test_redelivery_returns_original_invoice(
        self,
        handler: CreateInvoiceHandler,
        invoice_repository: InMemoryInvoiceRepository,
        make_payment_confirmed: Callable[..., PaymentConfirmedEvent],
    ) -> None:
        consumer_handler = PaymentConfirmedHandler(handler)
        event = make_payment_confirmed()

        first = await consumer_handler.handle(event)
        second = await consumer_handler.handle(event)

        assert first.unwrap().created
        assert not second.unwrap().created
        assert second.unwrap().invoice_number == first.unwrap().invoice_number
        assert await invoice_repository.count() == 1

    @pytest.mark.asyncio
    async def test_duplicate_delivery_through_consumer_is_acked_twice(
        self,
        handler: CreateInvoiceHandler,
        invoice_repository: InMemoryInvoiceRepository,
        mock_connection: MagicMock,
        make_payment_confirmed: Callable[..., PaymentConfirmedEvent],
    ) -> None:
        consumer = RabbitMQEventConsumer(
            mock_connection,
            RabbitMQConsumerConfig(
                queue_name="invoice.payment.events",
                exchange_name="payment-service-events",
                enable_tracing=False,
            ),
        )
        consumer.subscribe(PaymentConfirmedEvent, PaymentConfirmedHandler(handler))
        event = make_payment_confirmed()
        first = make_message(event, routing_key="payment.paymentconfirmed")
        redelivered = make_message(event, routing_key="payment.paymentconfirmed")
        redelivered.redelivered = True

        await consumer.process_message(first)
        await consumer.process_message(redelivered)

        first.ack.assert_awaited_once()
        redelivered.ack.assert_awaited_once()
        first.nack.assert_not_called()
        redelivered.nack.assert_not_called()
        assert await invoice_repository.count() == 1
        assert consumer.stats.messages_acked == 2
