"""
Global Error Handler Middleware

Catches exceptions and returns standardized error responses.
"""

import logging
import traceback
from uuid import uuid4

from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from ....core.errors import CoreError
from ..exceptions import APIException, from_core_error
from ..responses import ErrorBody, ErrorDetail, ErrorResponse
from ..error_codes import ErrorCode

logger = logging.getLogger(__name__)


def _error_response(exc: APIException, trace_id: str) -> JSONResponse:
    error_body = ErrorBody(
        code=exc.code.value if isinstance(exc.code, ErrorCode) else str(exc.code),
        message=exc.message,
        details=exc.details,
        trace_id=trace_id
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=error_body).model_dump(mode="json")
    )


def register_error_handlers(app: FastAPI):
    """
    Register all error handlers on the FastAPI app.

    This function sets up exception handlers for:
    - APIException (custom API errors)
    - CoreError (domain errors raised by the services)
    - RequestValidationError (FastAPI validation)
    - Generic Exception (catch-all for unexpected errors)
    """

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException):
        """Handle custom API exceptions."""
        trace_id = exc.trace_id or str(uuid4())

        logger.warning(
            f"API Error: {exc.code} - {exc.message}",
            extra={
                "trace_id": trace_id,
                "error_code": str(exc.code),
                "path": request.url.path
            }
        )

        return _error_response(exc, trace_id)

    @app.exception_handler(CoreError)
    async def core_error_handler(request: Request, exc: CoreError):
        """Handle domain errors escaping a router."""
        trace_id = str(uuid4())
        api_exc = from_core_error(exc)

        log = logger.error if api_exc.status_code >= 500 else logger.warning
        log(
            f"Core Error: {type(exc).__name__} - {exc.message}",
            extra={
                "trace_id": trace_id,
                "error_code": api_exc.code.value,
                "path": request.url.path,
                "category": exc.category.value
            }
        )

        return _error_response(api_exc, trace_id)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI validation errors."""
        trace_id = str(uuid4())

        details = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            details.append(ErrorDetail(
                field=field,
                message=error["msg"],
                code=error["type"]
            ))

        logger.warning(
            f"Validation Error: {len(details)} field(s)",
            extra={
                "trace_id": trace_id,
                "path": request.url.path,
                "errors": [d.model_dump() for d in details]
            }
        )

        error_body = ErrorBody(
            code=ErrorCode.VALIDATION_ERROR.value,
            message="Request validation failed",
            details=details,
            trace_id=trace_id
        )

        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=error_body).model_dump(mode="json")
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        trace_id = str(uuid4())

        logger.error(
            f"Unhandled Exception: {type(exc).__name__}: {exc}",
            extra={
                "trace_id": trace_id,
                "path": request.url.path,
                "traceback": traceback.format_exc()
            }
        )

        # Don't expose internal details in production
        error_body = ErrorBody(
            code=ErrorCode.INTERNAL_ERROR.value,
            message="An internal error occurred",
            trace_id=trace_id
        )

        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error=error_body).model_dump(mode="json")
        )
