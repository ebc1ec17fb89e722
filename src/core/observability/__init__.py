"""
Observability Module

Tracing, metrics and structured logging for the relay, broker
consumers and HTTP services.
"""

from .tracing import (
    init_tracing,
    get_tracer,
    get_current_span,
    get_trace_id,
    create_span,
    stamp_trace_headers,
    context_from_headers,
    consumer_span,
    traced,
    tag_auction,
)
from .metrics import (
    init_metrics,
    get_meter,
    record_counter,
    record_histogram,
)
from .logging import configure_logging
from .setup import init_observability

__all__ = [
    # Tracing
    "init_tracing",
    "get_tracer",
    "get_current_span",
    "get_trace_id",
    "create_span",
    "stamp_trace_headers",
    "context_from_headers",
    "consumer_span",
    "traced",
    "tag_auction",
    # Metrics
    "init_metrics",
    "get_meter",
    "record_counter",
    "record_histogram",
    # Logging
    "configure_logging",
    "init_observability",
]
