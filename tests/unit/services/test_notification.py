"""Unit tests for the notification service."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from shopflow.events import default_registry
from shopflow.exceptions import DuplicateEntityError
from shopflow.results import FailureKind
from shopflow.services.notification import (
    EmailNotification,
    EmailNotificationFailed,
    EmailNotificationRequested,
    EmailNotificationRequestedHandler,
    InMemoryNotificationRepository,
    NotificationPriority,
    NotificationStatus,
)


def make_request(**overrides: object) -> EmailNotificationRequested:
    values: dict[str, object] = {
        "notification_id": uuid4(),
        "to": "grace@example.com",
        "subject": "Your invoice",
        "body": "Thanks for your order.",
    }
    values.update(overrides)
    return EmailNotificationRequested(**values)  # type: ignore[arg-type]


class ConflictingNotificationRepository(InMemoryNotificationRepository):
    """Reports a duplicate on insert without ever storing the record."""

    async def add(self, notification: EmailNotification) -> None:
        raise DuplicateEntityError("EmailNotification", notification.id)


@pytest.fixture
def repository() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


class TestEmailNotification:
    def test_retry_rules(self) -> None:
        notification = EmailNotification(to="a@example.com", subject="s", body="b")
        assert not notification.can_retry

        notification.mark_failed("smtp down")
        assert notification.can_retry
        assert notification.retry_count == 1

        notification.mark_failed("smtp down")
        notification.mark_failed("smtp down")
        assert not notification.can_retry

    def test_mark_sent_clears_error(self) -> None:
        notification = EmailNotification(to="a@example.com", subject="s", body="b")
        notification.mark_failed("smtp down")

        notification.mark_sent()

        assert notification.status is NotificationStatus.SENT
        assert notification.sent_at is not None
        assert notification.error_message is None


class TestEmailNotificationRequestedHandler:
    @pytest.mark.asyncio
    async def test_records_pending_notification(self, repository: InMemoryNotificationRepository) -> None:
        event = make_request(priority=NotificationPriority.HIGH, correlation_id="corr-2")

        result = await EmailNotificationRequestedHandler(repository).handle(event)

        notification = result.unwrap()
        assert notification.id == event.notification_id
        assert notification.status is NotificationStatus.PENDING
        assert notification.priority is NotificationPriority.HIGH
        assert notification.correlation_id == "corr-2"
        assert repository.count() == 1

    @pytest.mark.asyncio
    async def test_redelivery_returns_stored_record(self, repository: InMemoryNotificationRepository) -> None:
        handler = EmailNotificationRequestedHandler(repository)
        event = make_request()

        first = await handler.handle(event)
        second = await handler.handle(event)

        assert second.is_success
        assert second.unwrap().created_at == first.unwrap().created_at
        assert repository.count() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("overrides", "errors"),
        [
            ({"to": "not-an-email"}, ("Valid recipient email is required",)),
            ({"subject": " "}, ("Subject is required",)),
            ({"to": "", "subject": ""}, ("Valid recipient email is required", "Subject is required")),
        ],
    )
    async def test_validation(
        self,
        repository: InMemoryNotificationRepository,
        overrides: dict[str, object],
        errors: tuple[str, ...],
    ) -> None:
        result = await EmailNotificationRequestedHandler(repository).handle(make_request(**overrides))

        assert result.failure is FailureKind.VALIDATION_FAILED
        assert result.errors == errors
        assert repository.count() == 0

    @pytest.mark.asyncio
    async def test_conflict_without_stored_record_is_retryable(self) -> None:
        handler = EmailNotificationRequestedHandler(ConflictingNotificationRepository())

        result = await handler.handle(make_request())

        assert result.failure is FailureKind.PROCESSING_FAILED
        assert "was not found" in (result.error or "")


class TestInMemoryNotificationRepository:
    @pytest.mark.asyncio
    async def test_duplicate_id(self, repository: InMemoryNotificationRepository) -> None:
        notification = EmailNotification(to="a@example.com", subject="s", body="b")
        await repository.add(notification)

        with pytest.raises(DuplicateEntityError):
            await repository.add(notification)

    @pytest.mark.asyncio
    async def test_get_by_status_orders_by_priority_then_age(
        self, repository: InMemoryNotificationRepository
    ) -> None:
        now = datetime.now(UTC)
        old_normal = EmailNotification(to="a@example.com", subject="1", body="b", created_at=now - timedelta(minutes=5))
        new_normal = EmailNotification(to="a@example.com", subject="2", body="b", created_at=now)
        critical = EmailNotification(
            to="a@example.com", subject="3", body="b", priority=NotificationPriority.CRITICAL, created_at=now
        )
        sent = EmailNotification(to="a@example.com", subject="4", body="b")
        sent.mark_sent()
        for notification in (new_normal, sent, critical, old_normal):
            await repository.add(notification)

        pending = await repository.get_by_status(NotificationStatus.PENDING)

        assert [n.subject for n in pending] == ["3", "1", "2"]

    @pytest.mark.asyncio
    async def test_update_returns_copies(self, repository: InMemoryNotificationRepository) -> None:
        notification = EmailNotification(to="a@example.com", subject="s", body="b")
        await repository.add(notification)
        notification.mark_sent()

        stored = await repository.get_by_id(notification.id)
        assert stored is not None
        assert stored.status is NotificationStatus.PENDING

        await repository.update(notification)
        stored = await repository.get_by_id(notification.id)
        assert stored is not None
        assert stored.status is NotificationStatus.SENT


class TestNotificationEvents:
    def test_routing_keys(self) -> None:
        assert (
            default_registry.routing_key_for(EmailNotificationRequested)
            == "notification.emailnotificationrequested"
        )

    def test_request_round_trip(self) -> None:
        event = make_request(template_data={"orderNumber": "ORD-1"}, priority=NotificationPriority.CRITICAL)

        restored = EmailNotificationRequested.from_json(event.to_json())

        assert restored == event
        assert '"notificationId"' in event.to_json()

    def test_failed_retry_count_is_non_negative(self) -> None:
        with pytest.raises(ValueError):
            EmailNotificationFailed(
                notification_id=uuid4(),
                to="a@example.com",
                error_message="smtp down",
                retry_count=-1,
                will_retry=False,
            )
