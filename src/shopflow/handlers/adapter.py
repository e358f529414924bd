"""
Uniform async calling convention for event handlers.

The consumer and the in-memory bus accept any of:

- an object with ``handle(event)``, sync or async
  (``PaymentConfirmedHandler``, ``InventoryReservedHandler``)
- a plain function or lambda, sync or async

``HandlerAdapter`` wraps each of these behind one awaitable ``handle``
and returns whatever the handler returned, which is how a ``Result``
reaches the consumer's settlement logic.
"""

import inspect
from collections.abc import Callable
from typing import Any

from shopflow.events.base import DomainEvent


def get_handler_name(handler: Any) -> str:
    """Name used in logs and span attributes: the function name, or the class name for handler objects."""
    if inspect.isfunction(handler) or inspect.ismethod(handler):
        return str(handler.__name__)
    return type(handler).__name__


def _entry_point(handler: Any) -> Callable[[DomainEvent], Any]:
    method = getattr(handler, "handle", None)
    if method is not None:
        return method  # type: ignore[no-any-return]
    if callable(handler):
        return handler  # type: ignore[no-any-return]
    raise TypeError(f"{type(handler).__name__} is not an event handler: expected handle() or a callable")


class HandlerAdapter:
    """
    Awaitable wrapper around one event handler.

    Two adapters compare equal when they wrap the same handler object,
    which lets a bus refuse or find a subscription by the handler itself.

    Example:
        >>> adapter = HandlerAdapter(PaymentConfirmedHandler(create_invoice))
        >>> result = await adapter.handle(event)
    """

    def __init__(self, handler: Any) -> None:
        """
        Raises:
            TypeError: If ``handler`` has no ``handle()`` and is not callable
        """
        self._original = handler
        self._name = get_handler_name(handler)
        self._target = _entry_point(handler)
        self._is_coroutine = inspect.iscoroutinefunction(self._target)

    @property
    def original(self) -> Any:
        return self._original

    @property
    def name(self) -> str:
        return self._name

    async def handle(self, event: DomainEvent) -> Any:
        if self._is_coroutine:
            return await self._target(event)
        outcome = self._target(event)
        # a sync callable may still return an awaitable
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    def __eq__(self, other: object) -> bool:
        wrapped = other._original if isinstance(other, HandlerAdapter) else other
        return wrapped is self._original

    def __hash__(self) -> int:
        return id(self._original)

    def __repr__(self) -> str:
        return f"HandlerAdapter({self._name})"
