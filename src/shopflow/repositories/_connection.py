"""
Engine-or-connection handling for the SQLAlchemy repositories.

A repository built on an ``AsyncEngine`` borrows a connection per call.
One built on an ``AsyncConnection`` joins the caller's transaction, so a
service can write its entity and an outbox row atomically.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def connection_scope(
    bind: AsyncConnection | AsyncEngine,
    *,
    write: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Borrow a connection from ``bind``.

    With an engine, writes run inside ``begin()`` and commit on exit;
    reads use a plain ``connect()``. A connection is yielded unchanged and
    its owner decides when to commit.

    Example:
        >>> async with connection_scope(self._conn) as conn:
        ...     await conn.execute(statement, params)
    """
    if not isinstance(bind, AsyncEngine):
        yield bind
        return
    opener = bind.begin if write else bind.connect
    async with opener() as connection:
        yield connection
