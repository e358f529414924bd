"""Unit tests for EventRegistry and routing key derivation."""

from __future__ import annotations

from typing import ClassVar
from uuid import uuid4

import pytest

from shopflow.events import (
    DomainEvent,
    DuplicateEventTypeError,
    EventRegistry,
    EventTypeNotFoundError,
    default_registry,
    derive_routing_key,
    register_event,
)
from shopflow.exceptions import DuplicateRoutingKeyError
from shopflow.services.invoice import PaymentConfirmedEvent
from shopflow.services.order import InventoryReservedEvent, OrderCreatedEvent
from tests.conftest import OtherSampleEvent, SampleEvent


class UnownedEvent(DomainEvent):
    """Declares no source service."""

    value: int = 0


class TestDeriveRoutingKey:
    def test_strips_event_suffix_and_lowercases(self) -> None:
        assert derive_routing_key("auth", "PasswordResetRequestedEvent") == "auth.passwordresetrequested"

    def test_keeps_names_without_suffix(self) -> None:
        assert (
            derive_routing_key("notification", "EmailNotificationRequested")
            == "notification.emailnotificationrequested"
        )

    def test_bare_event_name_is_not_emptied(self) -> None:
        assert derive_routing_key("sample", "Event") == "sample.event"

    def test_service_is_lowercased(self) -> None:
        assert derive_routing_key("Payment", "PaymentConfirmedEvent") == "payment.paymentconfirmed"


class TestEventRegistry:
    def test_register_and_get(self) -> None:
        registry = EventRegistry()
        registry.register(SampleEvent)

        assert registry.get("SampleEvent") is SampleEvent
        assert registry.routing_key_for("SampleEvent") == "sample.sample"
        assert registry.routing_key_for(SampleEvent) == "sample.sample"
        assert registry.event_type_of(SampleEvent) == "SampleEvent"

    def test_register_same_class_twice_is_noop(self) -> None:
        registry = EventRegistry()
        registry.register(SampleEvent)
        registry.register(SampleEvent)

        assert len(registry) == 1

    def test_duplicate_type_name_rejected(self) -> None:
        registry = EventRegistry()
        registry.register(SampleEvent)

        with pytest.raises(DuplicateEventTypeError) as exc_info:
            registry.register(OtherSampleEvent, event_type="SampleEvent")

        assert exc_info.value.existing_class is SampleEvent
        assert exc_info.value.new_class is OtherSampleEvent

    def test_duplicate_routing_key_rejected(self) -> None:
        registry = EventRegistry()
        registry.register(SampleEvent)

        with pytest.raises(DuplicateRoutingKeyError) as exc_info:
            registry.register(OtherSampleEvent, routing_key="sample.sample")

        assert exc_info.value.existing_type == "SampleEvent"
        assert exc_info.value.new_type == "OtherSampleEvent"
        assert "OtherSampleEvent" not in registry

    def test_routing_key_requires_a_service(self) -> None:
        with pytest.raises(ValueError, match="source_service"):
            EventRegistry().register(UnownedEvent)

    def test_default_service_used_when_class_has_none(self) -> None:
        registry = EventRegistry(default_service="billing")
        registry.register(UnownedEvent)

        assert registry.routing_key_for(UnownedEvent) == "billing.unowned"

    def test_unknown_type_lists_available_types(self) -> None:
        registry = EventRegistry()
        registry.register(SampleEvent)

        with pytest.raises(EventTypeNotFoundError) as exc_info:
            registry.get("MissingEvent")

        assert exc_info.value.available_types == ["SampleEvent"]
        assert registry.get_or_none("MissingEvent") is None

    def test_unregistered_class_lookup_fails(self) -> None:
        with pytest.raises(EventTypeNotFoundError):
            EventRegistry().event_type_of(SampleEvent)

    def test_reverse_lookup_by_routing_key(self, registry: EventRegistry) -> None:
        assert registry.get_by_routing_key("sample.othersample") is OtherSampleEvent
        assert registry.get_by_routing_key("sample.unknown") is None

    def test_routing_table_and_listing(self, registry: EventRegistry) -> None:
        assert registry.list_types() == ["OtherSampleEvent", "SampleEvent"]
        assert registry.routing_table() == {
            "SampleEvent": "sample.sample",
            "OtherSampleEvent": "sample.othersample",
        }
        assert sorted(registry) == ["OtherSampleEvent", "SampleEvent"]

    def test_clear(self, registry: EventRegistry) -> None:
        registry.clear()

        assert len(registry) == 0
        assert registry.get_by_routing_key("sample.sample") is None
        assert registry

    def test_register_event_decorator_with_custom_registry(self) -> None:
        registry = EventRegistry()

        @register_event(registry=registry, routing_key="audit.recorded")
        class AuditRecorded(DomainEvent):
            source_service: ClassVar[str] = "audit"

        assert registry.get("AuditRecorded") is AuditRecorded
        assert registry.routing_key_for("AuditRecorded") == "audit.recorded"
        assert "AuditRecorded" not in default_registry


class TestServiceRoutingTable:
    """The routing keys services publish and bind with."""

    @pytest.mark.parametrize(
        ("event_class", "routing_key"),
        [
            (OrderCreatedEvent, "order.created"),
            (InventoryReservedEvent, "inventory.reserved"),
            (PaymentConfirmedEvent, "payment.paymentconfirmed"),
        ],
    )
    def test_registered_keys(self, event_class: type[DomainEvent], routing_key: str) -> None:
        assert default_registry.routing_key_for(event_class) == routing_key
        assert default_registry.get_by_routing_key(routing_key) is event_class

    def test_invoice_events_derive_from_service(self) -> None:
        assert default_registry.routing_key_for("InvoiceCreatedEvent") == "invoice.invoicecreated"
        assert default_registry.routing_key_for("InvoiceFailedEvent") == "invoice.invoicefailed"

    def test_each_key_maps_to_one_type(self) -> None:
        table = default_registry.routing_table()
        assert len(set(table.values())) == len(table)

    def test_event_instances_carry_their_type(self) -> None:
        event = InventoryReservedEvent(order_id=uuid4(), success=True)
        assert event.event_type == "InventoryReservedEvent"
