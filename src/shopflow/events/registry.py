"""
Event type registry and routing table.

Every registered event class gets one type name (the ``event-type``
header) and one routing key. The key is fixed when the class is
registered, from its explicit ``routing_key`` or from ``source_service``
plus the type name, so the publisher and the consumer read the same
table instead of reflecting on class names per message.

Usage:
    @register_event
    class PaymentConfirmedEvent(DomainEvent):
        source_service: ClassVar[str] = "payment"
        ...

    default_registry.routing_key_for("PaymentConfirmedEvent")  # "payment.paymentconfirmed"
    default_registry.get_by_routing_key("payment.paymentconfirmed")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar, overload

from shopflow.exceptions import DuplicateRoutingKeyError

if TYPE_CHECKING:
    from shopflow.events.base import DomainEvent

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent", bound="DomainEvent")

_EVENT_SUFFIX = "event"


def derive_routing_key(service: str, event_type: str) -> str:
    """
    ``<service>.<event type lowercased, trailing "event" removed>``.

    Example:
        >>> derive_routing_key("auth", "PasswordResetRequestedEvent")
        'auth.passwordresetrequested'
    """
    name = event_type.lower()
    if name.endswith(_EVENT_SUFFIX) and len(name) > len(_EVENT_SUFFIX):
        name = name[: -len(_EVENT_SUFFIX)]
    return f"{service.lower()}.{name}"


class EventTypeNotFoundError(KeyError):
    """No event class is registered under the requested type name."""

    def __init__(self, event_type: str, available_types: list[str]) -> None:
        self.event_type = event_type
        self.available_types = sorted(available_types)
        known = ", ".join(self.available_types) or "none"
        super().__init__(f"Event type '{event_type}' is not registered (known types: {known})")


class DuplicateEventTypeError(ValueError):
    def __init__(
        self,
        event_type: str,
        existing_class: type[DomainEvent],
        new_class: type[DomainEvent],
    ) -> None:
        self.event_type = event_type
        self.existing_class = existing_class
        self.new_class = new_class
        super().__init__(
            f"{new_class.__name__} cannot use event type '{event_type}': "
            f"it belongs to {existing_class.__name__}"
        )


@dataclass(frozen=True)
class _Registration:
    event_class: type[DomainEvent]
    routing_key: str


class EventRegistry:
    """
    Event type name -> (class, routing key), with reverse lookups by
    class and by routing key.

    The module-level ``default_registry`` is filled by ``@register_event``
    when service event modules are imported. Tests build their own.
    Lookups and registration share one ``RLock``.
    """

    def __init__(self, default_service: str | None = None) -> None:
        """
        Args:
            default_service: Routing-key prefix for classes that declare no
                ``source_service``
        """
        self._default_service = default_service
        self._entries: dict[str, _Registration] = {}
        self._type_by_key: dict[str, str] = {}
        self._type_by_class: dict[type[DomainEvent], str] = {}
        self._lock = threading.RLock()

    def register(
        self,
        event_class: type[TEvent],
        event_type: str | None = None,
        routing_key: str | None = None,
    ) -> type[TEvent]:
        """
        Add ``event_class`` to the table. Registering the same class again is a no-op.

        Raises:
            DuplicateEventTypeError: The type name belongs to another class
            DuplicateRoutingKeyError: The routing key belongs to another type
            ValueError: No routing key given and no service to derive one from
        """
        name = event_type or self._type_name(event_class)
        key = routing_key or event_class.routing_key or self._derived_key(event_class, name)

        with self._lock:
            current = self._entries.get(name)
            if current is not None:
                if current.event_class is not event_class:
                    raise DuplicateEventTypeError(name, current.event_class, event_class)
                return event_class

            if key in self._type_by_key:
                raise DuplicateRoutingKeyError(key, self._type_by_key[key], name)

            self._entries[name] = _Registration(event_class, key)
            self._type_by_key[key] = name
            self._type_by_class[event_class] = name

        logger.debug(
            f"Registered {name} with routing key {key}",
            extra={"event_type": name, "event_class": event_class.__name__, "routing_key": key},
        )
        return event_class

    @staticmethod
    def _type_name(event_class: type[DomainEvent]) -> str:
        field_info = event_class.model_fields.get("event_type")
        default = field_info.default if field_info else None
        return default if isinstance(default, str) and default else event_class.__name__

    def _derived_key(self, event_class: type[DomainEvent], event_type: str) -> str:
        service = event_class.source_service or self._default_service
        if not service:
            raise ValueError(
                f"{event_class.__name__} has no source_service and no routing_key; "
                f"one of them is needed to route it"
            )
        return derive_routing_key(service, event_type)

    def _entry(self, event_type: str) -> _Registration:
        entry = self._entries.get(event_type)
        if entry is None:
            raise EventTypeNotFoundError(event_type, list(self._entries))
        return entry

    def get(self, event_type: str) -> type[DomainEvent]:
        """
        Raises:
            EventTypeNotFoundError: If ``event_type`` is not registered
        """
        with self._lock:
            return self._entry(event_type).event_class

    def get_or_none(self, event_type: str) -> type[DomainEvent] | None:
        with self._lock:
            entry = self._entries.get(event_type)
            return entry.event_class if entry else None

    def routing_key_for(self, event_type: str | type[DomainEvent]) -> str:
        """
        Routing key of a registered type, given its name or its class.

        Raises:
            EventTypeNotFoundError: If the type is not registered
        """
        with self._lock:
            name = event_type if isinstance(event_type, str) else self.event_type_of(event_type)
            return self._entry(name).routing_key

    def event_type_of(self, event_class: type[DomainEvent]) -> str:
        with self._lock:
            name = self._type_by_class.get(event_class)
            if name is None:
                raise EventTypeNotFoundError(event_class.__name__, list(self._entries))
            return name

    def get_by_routing_key(self, routing_key: str) -> type[DomainEvent] | None:
        with self._lock:
            name = self._type_by_key.get(routing_key)
            return self._entries[name].event_class if name else None

    def contains(self, event_type: str) -> bool:
        with self._lock:
            return event_type in self._entries

    def list_types(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def routing_table(self) -> dict[str, str]:
        """Event type -> routing key, as a copy."""
        with self._lock:
            return {name: entry.routing_key for name, entry in self._entries.items()}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._type_by_key.clear()
            self._type_by_class.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __bool__(self) -> bool:
        # an empty registry is still a registry
        return True

    def __contains__(self, event_type: str) -> bool:
        return self.contains(event_type)

    def __iter__(self) -> Iterator[str]:
        return iter(self.list_types())


default_registry = EventRegistry()


@overload
def register_event(event_class: type[TEvent]) -> type[TEvent]: ...


@overload
def register_event(
    event_class: None = None,
    *,
    event_type: str | None = None,
    routing_key: str | None = None,
    registry: EventRegistry | None = None,
) -> Callable[[type[TEvent]], type[TEvent]]: ...


def register_event(
    event_class: type[TEvent] | None = None,
    *,
    event_type: str | None = None,
    routing_key: str | None = None,
    registry: EventRegistry | None = None,
) -> type[TEvent] | Callable[[type[TEvent]], type[TEvent]]:
    """
    Class decorator adding an event to ``default_registry`` (or ``registry``).

    Works bare (``@register_event``) or with options
    (``@register_event(routing_key="order.created")``).
    """
    target = registry or default_registry

    def decorator(cls: type[TEvent]) -> type[TEvent]:
        return target.register(cls, event_type, routing_key)

    return decorator if event_class is None else decorator(event_class)
