"""
Observability bootstrap shared by the service apps and the worker.
"""

import os
from typing import Optional

from ..config import CoreSettings, get_settings
from .logging import configure_logging
from .metrics import init_metrics
from .tracing import init_tracing


def init_observability(service_name: str, settings: Optional[CoreSettings] = None):
    """Configure logging first, then tracing and metrics when an OTLP endpoint is set."""
    settings = settings or get_settings()

    configure_logging(
        level=settings.log_level,
        structured=settings.log_structured,
        service_name=service_name
    )

    console_export = os.getenv("OTEL_CONSOLE_EXPORT", "false").lower() == "true"
    if settings.otlp_endpoint or console_export:
        init_tracing(
            service_name=service_name,
            service_version=os.getenv("APP_VERSION", "0.1.0"),
            otlp_endpoint=settings.otlp_endpoint or None,
            console_export=console_export
        )
        init_metrics(
            service_name=service_name,
            otlp_endpoint=settings.otlp_endpoint or None,
            console_export=console_export
        )
