"""
Event bus health reporting.

A broker outage leaves the service able to serve requests, so it is
reported as DEGRADED. This check never reports UNHEALTHY.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from shopflow.bus.interface import EventBus

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of a health check, with data for the health endpoint."""

    status: HealthStatus
    description: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "description": self.description,
            "data": dict(self.data),
        }


class EventBusHealthCheck:
    """
    Health check over an event bus's connection status.

    Example:
        >>> result = EventBusHealthCheck(bus).check()
        >>> result.status
        <HealthStatus.DEGRADED: 'degraded'>
        >>> result.data["publish_failures"]
        1
    """

    name = "eventbus"
    tags = ("eventbus", "messaging")

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    def check(self) -> HealthCheckResult:
        try:
            is_healthy = self._bus.is_healthy()
            status = self._bus.get_status()
        except Exception as e:
            logger.error(
                "Event bus health check failed",
                exc_info=True,
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return HealthCheckResult(
                HealthStatus.DEGRADED,
                "Event bus health check failed",
                {"error": str(e)},
            )

        data = status.to_dict()
        if is_healthy:
            return HealthCheckResult(
                HealthStatus.HEALTHY,
                f"Event bus ({status.connection_type}) is healthy",
                data,
            )
        return HealthCheckResult(
            HealthStatus.DEGRADED,
            f"Event bus ({status.connection_type}) is not connected but application is operational",
            data,
        )
