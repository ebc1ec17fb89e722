"""
Shared API Utilities

Common responses, errors and middleware for the marketplace services.
"""

from .responses import (
    ErrorDetail,
    ErrorBody,
    ErrorResponse,
)

from .error_codes import (
    ErrorCode,
    get_status_code,
)

from .exceptions import (
    APIException,
    ValidationError,
    NotFoundError,
    ConflictError,
    UnauthorizedError,
    ForbiddenError,
    GatewayTimeoutError,
    ServiceUnavailableError,
    from_core_error,
)

from .middleware import (
    register_error_handlers,
    TracingMiddleware,
    USER_HEADER,
    get_current_user,
    require_user,
)

__all__ = [
    # Responses
    "ErrorDetail",
    "ErrorBody",
    "ErrorResponse",
    # Error codes
    "ErrorCode",
    "get_status_code",
    # Exceptions
    "APIException",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "UnauthorizedError",
    "ForbiddenError",
    "GatewayTimeoutError",
    "ServiceUnavailableError",
    "from_core_error",
    # Middleware
    "register_error_handlers",
    "TracingMiddleware",
    "USER_HEADER",
    "get_current_user",
    "require_user",
]
