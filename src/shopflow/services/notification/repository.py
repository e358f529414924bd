"""Notification persistence."""

from __future__ import annotations

import asyncio
import copy
from typing import Protocol, runtime_checkable
from uuid import UUID

from shopflow.exceptions import DuplicateEntityError
from shopflow.services.notification.models import EmailNotification, NotificationStatus


@runtime_checkable
class NotificationRepository(Protocol):
    async def get_by_id(self, notification_id: UUID) -> EmailNotification | None: ...

    async def get_by_status(self, status: NotificationStatus) -> list[EmailNotification]: ...

    async def add(self, notification: EmailNotification) -> None: ...

    async def update(self, notification: EmailNotification) -> None: ...


class InMemoryNotificationRepository:
    def __init__(self) -> None:
        self._notifications: dict[UUID, EmailNotification] = {}
        self._lock = asyncio.Lock()

    async def get_by_id(self, notification_id: UUID) -> EmailNotification | None:
        async with self._lock:
            found = self._notifications.get(notification_id)
            return copy.deepcopy(found) if found else None

    async def get_by_status(self, status: NotificationStatus) -> list[EmailNotification]:
        async with self._lock:
            found = [n for n in self._notifications.values() if n.status is status]
            found.sort(key=lambda n: (-n.priority, n.created_at))
            return copy.deepcopy(found)

    async def add(self, notification: EmailNotification) -> None:
        async with self._lock:
            if notification.id in self._notifications:
                raise DuplicateEntityError("EmailNotification", notification.id)
            self._notifications[notification.id] = copy.deepcopy(notification)

    async def update(self, notification: EmailNotification) -> None:
        async with self._lock:
            self._notifications[notification.id] = copy.deepcopy(notification)

    def count(self) -> int:
        return len(self._notifications)
