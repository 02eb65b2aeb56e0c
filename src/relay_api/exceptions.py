"""FastAPI exception handlers for converting relay errors to HTTP responses.

Every error body has the ErrorResponse shape ``{error, error_code, details}``.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: invalid input, bad webhook signature, Stripe API errors
- 404 Not Found: unknown route, no matching customer
- 405 Method Not Allowed: wrong method on a known route
- 500 Internal Server Error: missing server configuration

Usage:
    from relay_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from relay.config import ConfigurationError
from relay.models.errors import ErrorCode, RelayError
from relay.services.stripe_service import CustomerNotFoundError, StripeServiceError
from relay_api.models.common import format_validation_errors

logger = logging.getLogger(__name__)

ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.CUSTOMER_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.METHOD_NOT_ALLOWED: HTTP_405_METHOD_NOT_ALLOWED,
    ErrorCode.CONFIGURATION_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
}

HTTP_STATUS_TO_ERROR_CODE: dict[int, ErrorCode] = {
    HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED: ErrorCode.METHOD_NOT_ALLOWED,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode, defaulting to 400."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


def relay_error_from_stripe(exc: StripeServiceError) -> RelayError:
    """Map a Stripe service failure to the error returned to API callers."""
    if isinstance(exc, CustomerNotFoundError):
        return RelayError(ErrorCode.CUSTOMER_NOT_FOUND)
    details = exc.details or {"message": str(exc)}
    if exc.stripe_error_code and "code" not in details:
        details = {**details, "code": exc.stripe_error_code}
    return RelayError(ErrorCode.STRIPE_API_ERROR, details=details)


def _error_json(error: RelayError) -> JSONResponse:
    return JSONResponse(
        status_code=get_http_status_for_error(error.code),
        content=error.to_response().model_dump(mode="json"),
    )


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Convert a RelayError to its JSON error response."""
    return _error_json(exc)


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """Missing secrets are a server fault; the setting name is logged, not returned."""
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return _error_json(RelayError(ErrorCode.CONFIGURATION_ERROR))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render routing errors (404, 405) in the standard error shape."""
    code = HTTP_STATUS_TO_ERROR_CODE.get(exc.status_code)
    if code is not None:
        error = RelayError(code)
    else:
        error = RelayError(ErrorCode.VALIDATION_FAILED, message=str(exc.detail))

    return JSONResponse(
        status_code=exc.status_code,
        content=error.to_response().model_dump(mode="json"),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request validation failures are 400s; an unparseable body is "Invalid JSON"."""
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        return _error_json(RelayError(ErrorCode.INVALID_JSON))

    return _error_json(
        RelayError(ErrorCode.VALIDATION_FAILED, details=format_validation_errors(errors))
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(RelayError, relay_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ConfigurationError, configuration_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
