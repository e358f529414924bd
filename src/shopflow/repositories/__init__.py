"""
Infrastructure repositories.

- **Outbox**: recovery log for events the broker did not accept
"""

from shopflow.repositories.outbox import (
    OUTBOX_TABLE_DDL,
    InMemoryOutboxRepository,
    OutboxEntry,
    OutboxRepository,
    OutboxStats,
    SQLAlchemyOutboxRepository,
)

__all__ = [
    "OutboxEntry",
    "OutboxStats",
    "OutboxRepository",
    "InMemoryOutboxRepository",
    "SQLAlchemyOutboxRepository",
    "OUTBOX_TABLE_DDL",
]
