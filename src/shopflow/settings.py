"""Process configuration loaded from the environment."""

from __future__ import annotations

from urllib.parse import quote

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shopflow.bus.config import RabbitMQConsumerConfig, RabbitMQEventBusConfig


class EventBusSettings(BaseSettings):
    """Event bus settings read from ``SHOPFLOW_*`` variables and `.env` files.

    Example:
        SHOPFLOW_SERVICE_NAME=invoice
        SHOPFLOW_RABBITMQ_HOST=rabbitmq
        SHOPFLOW_RABBITMQ_PASSWORD=secret
    """

    model_config = SettingsConfigDict(
        env_prefix="SHOPFLOW_", env_file=".env", extra="ignore"
    )

    service_name: str = Field(default="shopflow", description="Owning service name")
    use_in_memory_event_bus: bool = Field(
        default=False, description="Record events in-process instead of using RabbitMQ"
    )
    rabbitmq_host: str = Field(default="localhost", description="Broker host")
    rabbitmq_port: int = Field(default=5672, description="Broker AMQP port", ge=1, le=65535)
    rabbitmq_username: str = Field(default="guest", description="Broker user")
    rabbitmq_password: SecretStr = Field(default=SecretStr("guest"), description="Broker password")
    rabbitmq_virtual_host: str = Field(default="/", description="Broker virtual host")
    exchange_name: str | None = Field(
        default=None, description="Exchange name (defaults to <service>-service-events)"
    )
    prefetch_count: int = Field(default=16, description="Unacked deliveries per consumer", ge=1)
    confirm_timeout: float = Field(
        default=5.0, description="Seconds to wait for a publisher confirm", gt=0
    )
    connect_timeout: float = Field(
        default=5.0, description="Seconds a single connection attempt may take", gt=0
    )
    connect_retries: int = Field(default=5, description="Connection retries at startup", ge=0)
    enable_tracing: bool = Field(default=False, description="Toggle OpenTelemetry tracing")

    @field_validator("service_name")
    @classmethod
    def _validate_service_name(cls, value: str) -> str:
        value = value.strip().lower()
        if not value or "." in value:
            msg = f"Invalid service name '{value}': must be non-empty and contain no dots."
            raise ValueError(msg)
        return value

    @property
    def rabbitmq_url(self) -> str:
        """AMQP URL assembled from the host, credentials and virtual host."""
        user = quote(self.rabbitmq_username, safe="")
        password = quote(self.rabbitmq_password.get_secret_value(), safe="")
        vhost = "" if self.rabbitmq_virtual_host == "/" else quote(self.rabbitmq_virtual_host, safe="")
        return f"amqp://{user}:{password}@{self.rabbitmq_host}:{self.rabbitmq_port}/{vhost}"

    def to_bus_config(self) -> RabbitMQEventBusConfig:
        return RabbitMQEventBusConfig(
            service_name=self.service_name,
            rabbitmq_url=self.rabbitmq_url,
            exchange_name=self.exchange_name,
            confirm_timeout=self.confirm_timeout,
            connect_timeout=self.connect_timeout,
            connect_retries=self.connect_retries,
            enable_tracing=self.enable_tracing,
        )

    def to_consumer_config(self, queue_name: str, exchange_name: str) -> RabbitMQConsumerConfig:
        """Consumer config for a queue bound to another service's exchange."""
        return RabbitMQConsumerConfig(
            queue_name=queue_name,
            exchange_name=exchange_name,
            prefetch_count=self.prefetch_count,
            enable_tracing=self.enable_tracing,
        )
