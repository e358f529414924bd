"""Unit tests for EventBusHealthCheck."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from shopflow.bus import InMemoryEventBus, RabbitMQEventBus, RabbitMQEventBusConfig
from shopflow.bus.status import ConnectionState
from shopflow.health import EventBusHealthCheck, HealthStatus
from tests.conftest import SampleEvent


class TestEventBusHealthCheck:
    def test_in_memory_bus_is_healthy(self, memory_bus: InMemoryEventBus) -> None:
        result = EventBusHealthCheck(memory_bus).check()

        assert result.status is HealthStatus.HEALTHY
        assert result.description == "Event bus (InMemory) is healthy"
        assert result.data["is_connected"] is True

    def test_connected_rabbitmq_bus(
        self, bus_config: RabbitMQEventBusConfig, mock_connection: MagicMock
    ) -> None:
        bus = RabbitMQEventBus(bus_config, connection=mock_connection)

        result = EventBusHealthCheck(bus).check()

        assert result.status is HealthStatus.HEALTHY
        assert result.data["connection_type"] == "RabbitMQ"

    @pytest.mark.asyncio
    async def test_broker_outage_is_degraded(
        self,
        bus_config: RabbitMQEventBusConfig,
        mock_connection: MagicMock,
        mock_exchange: MagicMock,
    ) -> None:
        bus = RabbitMQEventBus(bus_config, connection=mock_connection)
        mock_exchange.publish.side_effect = ConnectionResetError("connection reset")
        await bus.publish(SampleEvent(order_id=uuid4()))
        mock_connection.is_open = False

        result = EventBusHealthCheck(bus).check()

        assert result.status is HealthStatus.DEGRADED
        assert result.description == (
            "Event bus (RabbitMQ) is not connected but application is operational"
        )
        assert result.data["is_connected"] is False
        assert result.data["publish_failures"] == 1
        assert result.data["last_error"] == "connection reset"
        assert "last_failure_at" in result.data

    def test_never_connected(self, bus_config: RabbitMQEventBusConfig) -> None:
        bus = RabbitMQEventBus(bus_config)

        result = EventBusHealthCheck(bus).check()

        assert result.status is HealthStatus.DEGRADED
        assert result.data == {
            "connection_type": "RabbitMQ",
            "is_connected": False,
            "events_published": 0,
            "publish_failures": 0,
        }

    def test_check_error_is_degraded(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = MagicMock()
        bus.is_healthy.side_effect = RuntimeError("status unavailable")

        with caplog.at_level(logging.ERROR, logger="shopflow.health"):
            result = EventBusHealthCheck(bus).check()

        assert result.status is HealthStatus.DEGRADED
        assert result.description == "Event bus health check failed"
        assert result.data == {"error": "status unavailable"}
        assert "Event bus health check failed" in caplog.text

    def test_to_dict(self) -> None:
        state = ConnectionState("InMemory")
        state.mark_connected()
        bus = MagicMock()
        bus.is_healthy.return_value = True
        bus.get_status.return_value = state.snapshot()

        data = EventBusHealthCheck(bus).check().to_dict()

        assert data["status"] == "healthy"
        assert data["data"]["connection_type"] == "InMemory"

    def test_registration_metadata(self) -> None:
        assert EventBusHealthCheck.name == "eventbus"
        assert "messaging" in EventBusHealthCheck.tags
