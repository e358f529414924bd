"""Auth service event catalogue."""

from shopflow.services.auth.events import (
    AuthEvent,
    EmailConfirmedEvent,
    PasswordResetCompletedEvent,
    PasswordResetRequestedEvent,
    UserLoggedInEvent,
    UserLoggedOutEvent,
    UserRegisteredEvent,
)

__all__ = [
    "AuthEvent",
    "UserRegisteredEvent",
    "EmailConfirmedEvent",
    "UserLoggedInEvent",
    "UserLoggedOutEvent",
    "PasswordResetRequestedEvent",
    "PasswordResetCompletedEvent",
]
