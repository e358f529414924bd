"""
RabbitMQ transport adapter.

``RabbitMQConnection`` owns the single broker connection of a service,
its confirm-mode publishing channel and the declared exchange. Opening
or replacing the connection always happens under one asyncio lock, so
the robust-reconnect callback and foreground publishes can't race each
other into opening two connections.

Connection failures are non-fatal. ``connect()`` retries with
exponential backoff and then gives up, leaving ``ConnectionState``
disconnected; the service keeps serving requests and publishes are
recorded as failures until the broker comes back.
"""

from __future__ import annotations

import asyncio
import logging
import re

import aio_pika
from aio_pika import ExchangeType
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractRobustConnection,
)

from shopflow.bus.config import RabbitMQEventBusConfig
from shopflow.bus.status import ConnectionState
from shopflow.exceptions import BrokerUnavailableError

logger = logging.getLogger(__name__)


def sanitize_url(url: str) -> str:
    """Remove credentials from a broker URL for logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://***:***@", url)


class RabbitMQConnection:
    """Single owned broker connection with lock-guarded (re)connection.

    Example:
        >>> connection = RabbitMQConnection(RabbitMQEventBusConfig(service_name="order"))
        >>> if not await connection.connect():
        ...     logger.warning("Starting without broker")
        >>> exchange = await connection.get_exchange()
    """

    def __init__(
        self,
        config: RabbitMQEventBusConfig,
        state: ConnectionState | None = None,
    ) -> None:
        self._config = config
        self._state = state or ConnectionState("RabbitMQ")
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._lock = asyncio.Lock()
        self._closing = False

    @property
    def config(self) -> RabbitMQEventBusConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """True when both the connection and the publishing channel are open."""
        return (
            self._connection is not None
            and not self._connection.is_closed
            and self._channel is not None
            and not self._channel.is_closed
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """Open the connection, retrying with exponential backoff.

        Makes one attempt plus ``connect_retries`` retries; retry n waits
        ``retry_backoff_base ** n`` seconds. The lock is only held for each
        attempt, never across the backoff sleep, so publishes made while
        startup is retrying fail fast instead of waiting behind it.

        Returns:
            True if connected, False once every attempt has failed
        """
        attempts = self._config.connect_retries + 1
        for attempt in range(attempts):
            if attempt:
                delay = self._config.backoff_delay(attempt)
                logger.info(
                    f"Retrying RabbitMQ connection in {delay:.0f}s "
                    f"(attempt {attempt + 1}/{attempts})",
                    extra={"attempt": attempt + 1, "delay": delay},
                )
                await asyncio.sleep(delay)

            async with self._lock:
                if self.is_open:
                    return True
                try:
                    await self._open()
                    return True
                except Exception as e:
                    self._state.mark_disconnected(str(e))
                    logger.warning(
                        f"RabbitMQ connection attempt {attempt + 1}/{attempts} failed: {e}",
                        extra={
                            "rabbitmq_url": sanitize_url(self._config.rabbitmq_url),
                            "attempt": attempt + 1,
                            "error": str(e),
                            "error_type": type(e).__name__,
                        },
                    )

        logger.critical(
            "Could not connect to RabbitMQ; events will be logged but not "
            "published until the broker is reachable",
            extra={
                "rabbitmq_url": sanitize_url(self._config.rabbitmq_url),
                "exchange": self._config.exchange_name,
                "attempts": attempts,
            },
        )
        return False

    async def ensure_connected(self) -> bool:
        """Make a single connection attempt if the connection isn't open.

        Used on the publish path. Returns False straight away when another
        attempt is already in progress, and a single attempt is bounded by
        ``connect_timeout``.
        """
        if self.is_open:
            return True
        if self._lock.locked():
            logger.debug("RabbitMQ connection attempt already in progress")
            return False
        async with self._lock:
            if self.is_open:
                return True
            try:
                await self._open()
                return True
            except Exception as e:
                self._state.mark_disconnected(str(e))
                logger.warning(
                    f"RabbitMQ is unavailable: {e}",
                    extra={
                        "rabbitmq_url": sanitize_url(self._config.rabbitmq_url),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                return False

    async def _open(self) -> None:
        """Replace the connection in place. Caller holds the lock."""
        await self._discard()

        connection = await aio_pika.connect_robust(
            self._config.rabbitmq_url,
            heartbeat=self._config.heartbeat,
            timeout=self._config.connect_timeout,
            client_properties={"connection_name": self._config.service_name},
        )
        connection.reconnect_callbacks.add(self._on_reconnect)  # type: ignore[arg-type]
        connection.close_callbacks.add(self._on_connection_close)  # type: ignore[arg-type]
        self._connection = connection

        await self._setup_channel(connection)
        self._state.mark_connected()

        logger.info(
            "Connected to RabbitMQ",
            extra={
                "rabbitmq_url": sanitize_url(self._config.rabbitmq_url),
                "exchange": self._config.exchange_name,
                "service": self._config.service_name,
            },
        )

    async def _setup_channel(self, connection: AbstractRobustConnection) -> None:
        channel = await connection.channel(publisher_confirms=True)
        channel.close_callbacks.add(self._on_channel_close)  # type: ignore[arg-type]
        self._channel = channel
        self._exchange = await self.declare_exchange(channel)

    def _drop_channel(self, channel: AbstractChannel | None) -> None:
        """Detach a replaced channel so its close can't mark the state disconnected."""
        if channel is not None:
            channel.close_callbacks.discard(self._on_channel_close)  # type: ignore[arg-type]
        self._channel = None
        self._exchange = None

    async def _discard(self) -> None:
        """Close a stale connection left over from a previous attempt."""
        stale = self._connection
        self._connection = None
        self._channel = None
        self._exchange = None
        if stale is None or stale.is_closed:
            return
        try:
            await stale.close()
        except Exception as e:
            logger.debug(
                f"Error closing stale RabbitMQ connection: {e}",
                extra={"error": str(e), "error_type": type(e).__name__},
            )

    async def close(self) -> None:
        """Close the channel and connection."""
        async with self._lock:
            self._closing = True
            try:
                if self._channel is not None and not self._channel.is_closed:
                    await self._channel.close()
                if self._connection is not None and not self._connection.is_closed:
                    await self._connection.close()
            finally:
                self._channel = None
                self._connection = None
                self._exchange = None
                self._closing = False
                self._state.mark_disconnected()

        logger.info(
            "Disconnected from RabbitMQ",
            extra={"exchange": self._config.exchange_name},
        )

    # =========================================================================
    # Channels and topology
    # =========================================================================

    async def declare_exchange(
        self,
        channel: AbstractChannel,
        name: str | None = None,
        exchange_type: str | None = None,
    ) -> AbstractExchange:
        """Declare a durable exchange (the service's own by default)."""
        exchange_name = name or self._config.exchange_name
        exchange = await channel.declare_exchange(
            exchange_name,
            type=ExchangeType(exchange_type or self._config.exchange_type),
            durable=self._config.durable,
            auto_delete=self._config.auto_delete,
        )
        logger.debug(
            f"Declared exchange: {exchange_name}",
            extra={"exchange": exchange_name},
        )
        return exchange

    async def get_exchange(self) -> AbstractExchange:
        """The service exchange on the confirm-mode channel.

        Raises:
            BrokerUnavailableError: If no connection can be made
        """
        if not await self.ensure_connected() or self._exchange is None:
            raise BrokerUnavailableError("RabbitMQ connection is not available")
        return self._exchange

    async def open_channel(
        self,
        *,
        publisher_confirms: bool = True,
        prefetch_count: int | None = None,
    ) -> AbstractChannel:
        """Open an additional channel on the shared connection.

        Batch publishing uses a channel without confirms (AMQP transactions
        and confirm mode can't be mixed); consumers pass a prefetch count.

        Raises:
            BrokerUnavailableError: If no connection can be made
        """
        if not await self.ensure_connected() or self._connection is None:
            raise BrokerUnavailableError("RabbitMQ connection is not available")
        channel = await self._connection.channel(publisher_confirms=publisher_confirms)
        if prefetch_count is not None:
            await channel.set_qos(prefetch_count=prefetch_count)
        return channel

    # =========================================================================
    # Callbacks
    # =========================================================================

    async def _on_reconnect(self, connection: AbstractRobustConnection) -> None:
        """Restore the publishing channel after aio-pika reconnects.

        The robust channel is reopened by aio-pika itself, so it is kept and
        only the exchange is redeclared. A new channel is opened only when
        the old one is gone for good.
        """
        async with self._lock:
            try:
                channel = self._channel
                if channel is not None and not channel.is_closed:
                    self._exchange = await self.declare_exchange(channel)
                else:
                    self._drop_channel(channel)
                    await self._setup_channel(connection)
            except Exception as e:
                self._state.mark_disconnected(str(e))
                logger.error(
                    f"Failed to restore RabbitMQ channel after reconnection: {e}",
                    exc_info=True,
                    extra={"error": str(e), "error_type": type(e).__name__},
                )
                return
            self._state.mark_connected()
        logger.info(
            "RabbitMQ connection restored",
            extra={"exchange": self._config.exchange_name},
        )

    def _on_connection_close(
        self,
        connection: AbstractRobustConnection | None,
        exception: BaseException | None,
    ) -> None:
        if self._closing:
            return
        self._state.mark_disconnected(str(exception) if exception else "connection closed")
        if exception:
            logger.warning(
                f"RabbitMQ connection lost: {exception}",
                extra={
                    "error": str(exception),
                    "error_type": type(exception).__name__,
                },
            )
        else:
            logger.info("RabbitMQ connection closed")

    def _on_channel_close(
        self,
        channel: AbstractChannel | None,
        exception: BaseException | None,
    ) -> None:
        if self._closing or exception is None:
            return
        if channel is not None and channel is not self._channel:
            return
        self._state.mark_disconnected(str(exception))
        logger.warning(
            f"RabbitMQ channel closed: {exception}",
            extra={
                "error": str(exception),
                "error_type": type(exception).__name__,
                "exchange": self._config.exchange_name,
            },
        )

