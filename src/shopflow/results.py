"""
Structured outcomes for command and event handlers.

Business-rule violations are returned, not raised. A handler returns a
``Result`` carrying either a value or a ``FailureKind`` so that the HTTP
layer and the message consumer can each decide what to do with it
(status code, ack, requeue, dead-letter) without re-querying state.

Example:
    >>> result = await handler.handle(command)
    >>> if not result.is_success:
    ...     return Response(status=to_http_status(result.failure))
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class FailureKind(Enum):
    """
    Categories of handler failure.

    Values:
        VALIDATION_FAILED: Client input was rejected; never retried
        NOT_FOUND: A referenced entity does not exist
        CONFLICT: A business rule was violated (duplicate key, insufficient stock)
        ALREADY_PAID: The entity is paid and cannot be changed
        TERMINAL_STATE: The entity is in a terminal state and rejects the transition
        PROCESSING_FAILED: An infrastructure error interrupted the handler
    """

    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    ALREADY_PAID = "already_paid"
    TERMINAL_STATE = "terminal_state"
    PROCESSING_FAILED = "processing_failed"


_HTTP_STATUS: dict[FailureKind, int] = {
    FailureKind.VALIDATION_FAILED: 400,
    FailureKind.NOT_FOUND: 404,
    FailureKind.CONFLICT: 409,
    FailureKind.ALREADY_PAID: 409,
    FailureKind.TERMINAL_STATE: 409,
    FailureKind.PROCESSING_FAILED: 500,
}


def to_http_status(failure: FailureKind | None, *, created: bool = False) -> int:
    """
    Map a failure kind to an HTTP status code.

    Args:
        failure: The failure kind, or None for success
        created: Whether a successful call created a resource

    Returns:
        The status code the HTTP boundary should answer with
    """
    if failure is None:
        return 201 if created else 200
    return _HTTP_STATUS[failure]


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a handler call.

    Attributes:
        value: The produced value on success
        failure: The failure kind, None on success
        errors: Human-readable messages describing the failure
    """

    value: T | None = None
    failure: FailureKind | None = None
    errors: tuple[str, ...] = ()

    @classmethod
    def ok(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, failure: FailureKind, *errors: str) -> Result[T]:
        return cls(failure=failure, errors=tuple(errors))

    @property
    def is_success(self) -> bool:
        return self.failure is None

    @property
    def error(self) -> str | None:
        """All error messages joined, or None on success."""
        if not self.errors:
            return None
        return "; ".join(self.errors)

    def unwrap(self) -> T:
        """
        Return the value of a successful result.

        Raises:
            ValueError: If the result is a failure
        """
        if self.failure is not None:
            raise ValueError(f"Cannot unwrap failed result ({self.failure.value}): {self.error}")
        return self.value  # type: ignore[return-value]

    def propagate(self) -> Result[U]:
        """
        Re-type a failed result so a caller can return it as its own.

        Raises:
            ValueError: If the result is a success
        """
        if self.failure is None:
            raise ValueError("Cannot propagate a successful result")
        return Result(failure=self.failure, errors=self.errors)
