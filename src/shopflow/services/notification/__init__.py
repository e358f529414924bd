"""Notification service: records email requests for delivery."""

from shopflow.services.notification.consumers import EmailNotificationRequestedHandler
from shopflow.services.notification.events import (
    EmailNotificationFailed,
    EmailNotificationRequested,
    EmailNotificationSent,
)
from shopflow.services.notification.models import (
    EmailNotification,
    NotificationPriority,
    NotificationStatus,
)
from shopflow.services.notification.repository import (
    InMemoryNotificationRepository,
    NotificationRepository,
)

__all__ = [
    "EmailNotification",
    "NotificationStatus",
    "NotificationPriority",
    "EmailNotificationRequested",
    "EmailNotificationSent",
    "EmailNotificationFailed",
    "NotificationRepository",
    "InMemoryNotificationRepository",
    "EmailNotificationRequestedHandler",
]
