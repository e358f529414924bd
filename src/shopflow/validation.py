"""
Command validation primitives.

Validators are synchronous and side-effect free. Handlers call
``validate`` first and turn a non-empty ``ValidationResult`` into a
``FailureKind.VALIDATION_FAILED`` result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Generic, Protocol, TypeVar

from shopflow.results import FailureKind, Result

TCommand = TypeVar("TCommand", contravariant=True)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class ValidationResult:
    """Collected validation errors for one command."""

    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add(self, message: str) -> None:
        self.errors.append(message)

    def require(self, condition: bool, message: str) -> None:
        """Record ``message`` unless ``condition`` holds."""
        if not condition:
            self.errors.append(message)

    def to_result(self) -> Result[Any]:
        return Result.fail(FailureKind.VALIDATION_FAILED, *self.errors)


class Validator(Protocol, Generic[TCommand]):
    """Validates a command before its handler mutates state."""

    def validate(self, command: TCommand) -> ValidationResult: ...


def is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def is_email(value: str | None) -> bool:
    return value is not None and bool(EMAIL_PATTERN.match(value))


def is_non_negative(value: Decimal | int | float) -> bool:
    return value >= 0
