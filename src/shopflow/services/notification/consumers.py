"""Notification service event consumers."""

from __future__ import annotations

import logging

from shopflow.exceptions import DuplicateEntityError
from shopflow.results import FailureKind, Result
from shopflow.services.notification.events import EmailNotificationRequested
from shopflow.services.notification.models import EmailNotification
from shopflow.services.notification.repository import NotificationRepository
from shopflow.validation import is_blank, is_email

logger = logging.getLogger(__name__)


class EmailNotificationRequestedHandler:
    """
    Records a requested email as a Pending notification.

    The notification id doubles as the idempotency key: a redelivered
    request returns the record already stored.
    """

    def __init__(self, repository: NotificationRepository) -> None:
        self._repository = repository

    async def handle(self, event: EmailNotificationRequested) -> Result[EmailNotification]:
        existing = await self._repository.get_by_id(event.notification_id)
        if existing is not None:
            logger.info(
                f"Notification {event.notification_id} already recorded",
                extra={"notification_id": str(event.notification_id)},
            )
            return Result.ok(existing)

        errors = []
        if not is_email(event.to):
            errors.append("Valid recipient email is required")
        if is_blank(event.subject):
            errors.append("Subject is required")
        if errors:
            logger.warning(
                f"Rejected notification {event.notification_id}: {'; '.join(errors)}",
                extra={"notification_id": str(event.notification_id), "errors": errors},
            )
            return Result.fail(FailureKind.VALIDATION_FAILED, *errors)

        notification = EmailNotification(
            id=event.notification_id,
            to=event.to,
            subject=event.subject,
            body=event.body,
            is_html=event.is_html,
            template_id=event.template_id,
            template_data=event.template_data,
            priority=event.priority,
            scheduled_for=event.scheduled_for,
            correlation_id=event.correlation_id,
        )
        try:
            await self._repository.add(notification)
        except DuplicateEntityError:
            stored = await self._repository.get_by_id(notification.id)
            if stored is None:
                return Result.fail(
                    FailureKind.PROCESSING_FAILED,
                    f"Notification {notification.id} conflicted on insert but was not found",
                )
            return Result.ok(stored)

        logger.info(
            f"Email notification {notification.id} queued for {notification.to}",
            extra={
                "notification_id": str(notification.id),
                "priority": notification.priority.name,
            },
        )
        return Result.ok(notification)
