"""
OpenTelemetry Tracing Middleware

FastAPI middleware for request tracing with OpenTelemetry.
"""

import time
import logging
from typing import Callable, Optional
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from opentelemetry import trace

from ....core.observability.tracing import context_from_headers, get_tracer, get_trace_id, tag_auction
from ....core.observability.metrics import record_counter, record_histogram

logger = logging.getLogger(__name__)

UNTRACED_PATHS = {"/health", "/health/live", "/health/ready"}


def _auction_id_from_path(path: str) -> Optional[str]:
    """/api/auctions/<id>[/...] -> <id>"""
    parts = [p for p in path.split("/") if p]
    if len(parts) >= 3 and parts[0] == "api" and parts[1] in ("auctions", "search", "bids"):
        return parts[2]
    return None


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that creates OpenTelemetry spans for HTTP requests.

    Features:
    - Extracts trace context from incoming headers
    - Creates a server span per request
    - Tags the span with the auction id when the path names one
    - Records request metrics
    - Propagates trace_id to the response
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in UNTRACED_PATHS:
            return await call_next(request)

        context = context_from_headers(request.headers)

        trace_id = request.headers.get("X-Trace-ID") or uuid4().hex
        user = request.headers.get("X-User-Name")

        tracer = get_tracer()
        start_time = time.time()

        with tracer.start_as_current_span(
            f"{request.method} {request.url.path}",
            context=context,
            kind=trace.SpanKind.SERVER,
            attributes={
                "http.method": request.method,
                "http.url": str(request.url),
                "http.route": request.url.path,
                "http.scheme": request.url.scheme,
                "http.host": request.url.hostname or "",
                "trace_id": trace_id,
            }
        ) as span:
            auction_id = _auction_id_from_path(request.url.path)
            if auction_id:
                tag_auction(span, auction_id)
            if user:
                span.set_attribute("enduser.id", user)

            request.state.trace_id = trace_id

            try:
                response = await call_next(request)

                span.set_attribute("http.status_code", response.status_code)

                record_counter("http_requests_total", 1, {
                    "method": request.method,
                    "path": request.url.path,
                    "status": str(response.status_code)
                })
                record_histogram("http_request_duration_seconds", time.time() - start_time, {
                    "method": request.method,
                    "path": request.url.path
                })

                response.headers["X-Trace-ID"] = get_trace_id() or trace_id
                return response

            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                span.record_exception(e)

                record_counter("http_requests_total", 1, {
                    "method": request.method,
                    "path": request.url.path,
                    "status": "500"
                })

                raise
