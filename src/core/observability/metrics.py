"""
OpenTelemetry Metrics

Counters and histograms for the outbox relay, broker deliveries,
consumers, fault compensation and the bid validation gateway.
"""

import logging
from typing import Optional, Dict, Any

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME

logger = logging.getLogger(__name__)

# Global meter
_meter: Optional[metrics.Meter] = None

# Metric instruments
_counters: Dict[str, metrics.Counter] = {}
_histograms: Dict[str, metrics.Histogram] = {}

COUNTERS = {
    "outbox_appended_total": "Outbox records appended",
    "outbox_published_total": "Outbox records published to the broker",
    "outbox_publish_failures_total": "Outbox publishes deferred to the next tick",
    "messages_consumed_total": "Messages acknowledged by a consumer",
    "messages_redelivered_total": "Message redelivery attempts",
    "messages_dead_lettered_total": "Messages moved to a dead-letter topic",
    "inbox_duplicates_total": "Redelivered messages skipped by the inbox",
    "stale_events_discarded_total": "Events discarded by the last-writer guard",
    "faults_republished_total": "Dead-lettered messages corrected and republished",
    "faults_escalated_total": "Dead-lettered messages escalated for manual handling",
    "http_requests_total": "HTTP requests served",
}

HISTOGRAMS = {
    "outbox_relay_duration_seconds": "Outbox relay batch duration",
    "consumer_handle_duration_seconds": "Consumer handler duration",
    "gateway_query_duration_seconds": "Bid validation point-query duration",
    "http_request_duration_seconds": "HTTP request duration",
}


def init_metrics(
    service_name: str = "auction-core",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
    export_interval_ms: int = 60000
) -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Args:
        service_name: Name of the service
        otlp_endpoint: OTLP exporter endpoint
        console_export: Enable console export for debugging
        export_interval_ms: Export interval in milliseconds

    Returns:
        Configured meter
    """
    global _meter

    readers = []

    if otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=otlp_endpoint, insecure=True)
        readers.append(PeriodicExportingMetricReader(
            otlp_exporter,
            export_interval_millis=export_interval_ms
        ))
        logger.info(f"OTel metrics: OTLP exporter configured -> {otlp_endpoint}")

    if console_export:
        readers.append(PeriodicExportingMetricReader(
            ConsoleMetricExporter(),
            export_interval_millis=export_interval_ms
        ))
        logger.info("OTel metrics: Console exporter enabled")

    resource = Resource.create({SERVICE_NAME: service_name})

    provider = MeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(provider)

    _meter = metrics.get_meter(service_name)
    _counters.clear()
    _histograms.clear()

    logger.info(f"OTel metrics initialized: {service_name}")

    return _meter


def _ensure_instruments():
    """Create the standard instruments on first use."""
    if _counters:
        return

    meter = get_meter()

    for name, description in COUNTERS.items():
        _counters[name] = meter.create_counter(name, description=description, unit="1")

    for name, description in HISTOGRAMS.items():
        _histograms[name] = meter.create_histogram(name, description=description, unit="s")


def get_meter() -> metrics.Meter:
    """Get the global meter."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter("auction-core")
    return _meter


def record_counter(
    name: str,
    value: int = 1,
    attributes: Dict[str, Any] = None
):
    """Record a counter metric."""
    _ensure_instruments()
    if name in _counters:
        _counters[name].add(value, attributes or {})


def record_histogram(
    name: str,
    value: float,
    attributes: Dict[str, Any] = None
):
    """Record a histogram metric."""
    _ensure_instruments()
    if name in _histograms:
        _histograms[name].record(value, attributes or {})
