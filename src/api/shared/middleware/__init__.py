"""
Shared API Middleware

Cross-cutting concerns for every service endpoint:
- Error handling with standardized responses
- OpenTelemetry request tracing
- Caller identity from the forwarded user header
"""

from .error_handler import register_error_handlers
from .tracing import TracingMiddleware
from .identity import (
    USER_HEADER,
    get_current_user,
    require_user,
)

__all__ = [
    # Error handling
    "register_error_handlers",
    # OpenTelemetry Tracing
    "TracingMiddleware",
    # Identity
    "USER_HEADER",
    "get_current_user",
    "require_user",
]
