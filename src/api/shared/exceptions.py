"""
API Exception Classes

Custom exceptions that map to standard error responses, and the mapping
from core errors raised by the services beneath the routers.
"""

from typing import Optional, List

from ...core import errors as core_errors
from .error_codes import ErrorCode, get_status_code
from .responses import ErrorDetail


class APIException(Exception):
    """
    Base exception for API errors.

    The error handler middleware catches these and returns standardized
    error responses.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[List[ErrorDetail]] = None,
        trace_id: Optional[str] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        self.trace_id = trace_id
        self.status_code = get_status_code(code)
        super().__init__(message)


class ValidationError(APIException):
    """HTTP Status: 400"""

    def __init__(
        self,
        message: str,
        details: Optional[List[ErrorDetail]] = None,
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
            trace_id=trace_id
        )


class NotFoundError(APIException):
    """
    Resource not found error.

    HTTP Status: 404
    """

    def __init__(
        self,
        resource: str,
        resource_id: Optional[str] = None,
        trace_id: Optional[str] = None
    ):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' not found"

        code_map = {
            "Auction": ErrorCode.AUCTION_NOT_FOUND,
            "Item": ErrorCode.ITEM_NOT_FOUND,
            "Fault": ErrorCode.FAULT_NOT_FOUND,
        }
        code = code_map.get(resource, ErrorCode.NOT_FOUND)

        super().__init__(code=code, message=message, trace_id=trace_id)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(APIException):
    """
    Conflict error (e.g. lost a concurrent modification race).

    HTTP Status: 409
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFLICT,
        trace_id: Optional[str] = None
    ):
        super().__init__(code=code, message=message, trace_id=trace_id)


class UnauthorizedError(APIException):
    """HTTP Status: 401"""

    def __init__(
        self,
        message: str = "Authentication required",
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.UNAUTHORIZED,
            message=message,
            trace_id=trace_id
        )


class ForbiddenError(APIException):
    """HTTP Status: 403"""

    def __init__(
        self,
        message: str = "Permission denied",
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.FORBIDDEN,
            message=message,
            trace_id=trace_id
        )


class GatewayTimeoutError(APIException):
    """HTTP Status: 504"""

    def __init__(
        self,
        message: str = "Upstream lookup timed out",
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.GATEWAY_TIMEOUT,
            message=message,
            trace_id=trace_id
        )


class ServiceUnavailableError(APIException):
    """HTTP Status: 503"""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        trace_id: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.SERVICE_UNAVAILABLE,
            message=message,
            trace_id=trace_id
        )


def from_core_error(exc: core_errors.CoreError) -> APIException:
    """Translate a core error into the API exception it surfaces as."""
    if isinstance(exc, core_errors.AuctionNotFoundError):
        return NotFoundError("Auction", exc.auction_id)
    if isinstance(exc, core_errors.AuctionForbiddenError):
        return ForbiddenError(exc.message)
    if isinstance(exc, core_errors.GatewayTimeoutError):
        return GatewayTimeoutError(exc.message)
    if isinstance(exc, core_errors.ConcurrencyConflictError):
        return ConflictError(exc.message, code=ErrorCode.CONCURRENT_MODIFICATION)
    if isinstance(exc, core_errors.BrokerUnavailableError):
        return ServiceUnavailableError(exc.message)
    if isinstance(exc, core_errors.BidRejectedError):
        return APIException(ErrorCode.BID_REJECTED, exc.message)
    if isinstance(exc, core_errors.BusinessRuleError):
        return ValidationError(exc.message)
    return APIException(ErrorCode.INTERNAL_ERROR, "An internal error occurred")
