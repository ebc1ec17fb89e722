"""
OpenTelemetry Tracing

Spans around relay batches, message handling and gateway queries. The
W3C trace context rides in envelope headers, stamped when a record is
appended to the outbox and picked up again when a queue delivers the
message, so one trace follows an event from the HTTP request that caused
it to every consumer.
"""

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagate import extract, inject, set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

TRACER_NAME = "auction-core"
TRACE_HEADERS = ("traceparent", "tracestate")

_tracer: Optional[trace.Tracer] = None


def init_tracing(
    service_name: str = TRACER_NAME,
    service_version: str = "0.1.0",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False
) -> trace.Tracer:
    """
    Install a tracer provider exporting to OTLP and/or the console.

    Args:
        service_name: Name of the service
        service_version: Version of the service
        otlp_endpoint: OTLP gRPC endpoint, e.g. "http://localhost:4317"
        console_export: Print finished spans, for local debugging
    """
    global _tracer

    provider = TracerProvider(resource=Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
    }))
    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
        logger.info(f"OTel tracing: OTLP exporter configured -> {otlp_endpoint}")
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    set_global_textmap(TraceContextTextMapPropagator())

    _tracer = trace.get_tracer(service_name, service_version)
    logger.info(f"OTel tracing initialized: {service_name} v{service_version}")
    return _tracer


def get_tracer() -> trace.Tracer:
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


def get_current_span() -> Span:
    return trace.get_current_span()


def get_trace_id() -> Optional[str]:
    """Current trace id as 32 hex chars, or None outside a recorded span."""
    ctx = get_current_span().get_span_context()
    return format(ctx.trace_id, "032x") if ctx.is_valid else None


@contextmanager
def create_span(
    name: str,
    attributes: Optional[Dict[str, Any]] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    context: Optional[Context] = None
) -> Iterator[Span]:
    """
    Usage:
        with create_span("outbox.relay_batch") as span:
            span.set_attribute("outbox.published", published)
    """
    with get_tracer().start_as_current_span(
        name, context=context, kind=kind, attributes=attributes or {}
    ) as span:
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def traced(name: str) -> Callable:
    """Run a coroutine function inside a span named `name`."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            with create_span(name, {"code.function": func.__qualname__}):
                return await func(*args, **kwargs)
        return wrapper
    return decorator


def stamp_trace_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add the current trace context to outgoing envelope headers.

    Headers that already carry a traceparent keep it, so a republished
    message stays on the trace of its first publish.
    """
    if not any(key in headers for key in TRACE_HEADERS):
        inject(headers)
    return headers


def context_from_headers(headers: Mapping[str, Any]) -> Context:
    """Trace context carried by envelope or HTTP headers; non-string values are ignored."""
    return extract({k.lower(): v for k, v in headers.items() if isinstance(v, str)})


@contextmanager
def consumer_span(queue: str, headers: Mapping[str, Any], **attributes: Any) -> Iterator[Span]:
    """Span for one delivery on `queue`, parented on the publisher's trace."""
    attributes["messaging.destination"] = queue
    with create_span(
        "broker.deliver", attributes, kind=trace.SpanKind.CONSUMER, context=context_from_headers(headers)
    ) as span:
        yield span


def tag_auction(span: Span, auction_id: str) -> None:
    span.set_attribute("auction.id", auction_id)
