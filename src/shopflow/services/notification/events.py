"""Events consumed and published by the notification service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

from pydantic import Field

from shopflow.events import DomainEvent, register_event
from shopflow.services.notification.models import NotificationPriority


@register_event
class EmailNotificationRequested(DomainEvent):
    """Asks the notification service to send one email."""

    source_service: ClassVar[str] = "notification"

    notification_id: UUID
    to: str
    subject: str
    body: str
    is_html: bool = False
    template_id: str | None = None
    template_data: dict[str, Any] | None = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    scheduled_for: datetime | None = None


@register_event
class EmailNotificationSent(DomainEvent):
    source_service: ClassVar[str] = "notification"

    notification_id: UUID
    to: str
    sent_at: datetime


@register_event
class EmailNotificationFailed(DomainEvent):
    source_service: ClassVar[str] = "notification"

    notification_id: UUID
    to: str
    error_message: str
    retry_count: int = Field(ge=0)
    will_retry: bool
