"""
Core Settings

Environment-driven settings for the relay, broker, consumers and gateway.
Storage settings live in core.database.adapter.DatabaseConfig.
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_set(name: str, default: str) -> FrozenSet[str]:
    raw = os.getenv(name, default)
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class CoreSettings:
    """Settings shared by every service of the marketplace core."""

    service_name: str = "auction-core"

    # Outbox relay
    outbox_poll_interval: float = 10.0
    outbox_batch_size: int = 100
    outbox_processor_enabled: bool = True
    relay_lease_seconds: int = 30

    # Broker redelivery
    broker_retry_limit: int = 5
    broker_retry_interval: float = 5.0
    consumer_prefetch: int = 16

    # Bid validation
    gateway_timeout: float = 5.0
    auction_service_url: str = "http://localhost:7001"

    # Fault correction
    prohibited_models: FrozenSet[str] = field(default_factory=lambda: frozenset({"Foo"}))
    safe_model_name: str = "FooBar"
    max_corrections: int = 1

    # Logging
    log_level: str = "INFO"
    log_structured: bool = True
    otlp_endpoint: str = ""

    @classmethod
    def from_env(cls) -> "CoreSettings":
        return cls(
            service_name=os.getenv("SERVICE_NAME", "auction-core"),
            outbox_poll_interval=float(os.getenv("OUTBOX_POLL_INTERVAL", "10.0")),
            outbox_batch_size=int(os.getenv("OUTBOX_BATCH_SIZE", "100")),
            outbox_processor_enabled=_env_bool("OUTBOX_PROCESSOR_ENABLED", "true"),
            relay_lease_seconds=int(os.getenv("RELAY_LEASE_SECONDS", "30")),
            broker_retry_limit=int(os.getenv("BROKER_RETRY_LIMIT", "5")),
            broker_retry_interval=float(os.getenv("BROKER_RETRY_INTERVAL", "5.0")),
            consumer_prefetch=int(os.getenv("CONSUMER_PREFETCH", "16")),
            gateway_timeout=float(os.getenv("GATEWAY_TIMEOUT", "5.0")),
            auction_service_url=os.getenv("AUCTION_SERVICE_URL", "http://localhost:7001"),
            prohibited_models=_env_set("PROHIBITED_MODELS", "Foo"),
            safe_model_name=os.getenv("SAFE_MODEL_NAME", "FooBar"),
            max_corrections=int(os.getenv("MAX_CORRECTIONS", "1")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_structured=_env_bool("LOG_STRUCTURED", "true"),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", ""),
        )


_settings: Optional[CoreSettings] = None


def get_settings() -> CoreSettings:
    """Get the process-wide settings, loading them from the environment once."""
    global _settings
    if _settings is None:
        _settings = CoreSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings (for testing)."""
    global _settings
    _settings = None
