"""Events published by the auth service."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar
from uuid import UUID

from shopflow.events import DomainEvent, register_event


class AuthEvent(DomainEvent):
    source_service: ClassVar[str] = "auth"

    user_id: UUID
    email: str


@register_event
class UserRegisteredEvent(AuthEvent):
    user_name: str
    first_name: str
    last_name: str
    registered_at: datetime


@register_event
class EmailConfirmedEvent(AuthEvent):
    confirmed_at: datetime


@register_event
class UserLoggedInEvent(AuthEvent):
    logged_in_at: datetime
    remember_me: bool = False


@register_event
class UserLoggedOutEvent(AuthEvent):
    logged_out_at: datetime


@register_event
class PasswordResetRequestedEvent(AuthEvent):
    requested_at: datetime


@register_event
class PasswordResetCompletedEvent(AuthEvent):
    reset_at: datetime
