"""Email notification record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any
from uuid import UUID, uuid4

DEFAULT_MAX_RETRIES = 3


class NotificationStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SENT = "Sent"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class NotificationPriority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


@dataclass
class EmailNotification:
    to: str
    subject: str
    body: str
    is_html: bool = False
    id: UUID = field(default_factory=uuid4)
    cc: str | None = None
    bcc: str | None = None
    status: NotificationStatus = NotificationStatus.PENDING
    priority: NotificationPriority = NotificationPriority.NORMAL
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    error_message: str | None = None
    template_id: str | None = None
    template_data: dict[str, Any] | None = None
    metadata: dict[str, str] | None = None
    correlation_id: str | None = None
    scheduled_for: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    sent_at: datetime | None = None

    @property
    def can_retry(self) -> bool:
        return self.status is NotificationStatus.FAILED and self.retry_count < self.max_retries

    def mark_sent(self) -> None:
        self.status = NotificationStatus.SENT
        self.sent_at = datetime.now(UTC)
        self.error_message = None

    def mark_failed(self, error: str) -> None:
        self.status = NotificationStatus.FAILED
        self.error_message = error
        self.retry_count += 1

    def mark_pending(self) -> None:
        self.status = NotificationStatus.PENDING
