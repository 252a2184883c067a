import logging

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from authgate.core.stores import StoreError
from authgate.errors import (
    AccessDeniedError,
    AuthenticationError,
    NotFoundError,
    RateLimitedError,
    ServiceUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def create_json_error_response(
    status_code: int, message: str, error_type: str | None = None, headers: dict[str, str] | None = None
) -> JSONResponse:
    """Create JSON error response with optional type for machine parsing."""
    content = {"message": message}
    if error_type:
        content["type"] = error_type
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def user_error_handler(_: Request, exc: Exception) -> Response:
    """Handle all UserError subclasses with appropriate status codes."""
    headers = None
    if isinstance(exc, AuthenticationError):
        status_code = 401
        error_type = "authentication_error"
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, AccessDeniedError):
        status_code = 403
        error_type = "access_denied"
    elif isinstance(exc, NotFoundError):
        status_code = 404
        error_type = "not_found"
    elif isinstance(exc, ValidationError):
        status_code = 400
        error_type = "validation_error"
    elif isinstance(exc, RateLimitedError):
        status_code = 429
        error_type = "rate_limited"
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    elif isinstance(exc, ServiceUnavailableError):
        status_code = 503
        error_type = "service_unavailable"
    else:
        # Default for any other UserError subclass
        status_code = 400
        error_type = "bad_request"

    return create_json_error_response(status_code=status_code, message=str(exc), error_type=error_type, headers=headers)


async def store_error_handler(_: Request, exc: Exception) -> Response:
    """Store failures outside the gate (admin operations) are reported as 503."""
    logger.error("Store failure: %s", exc)
    return create_json_error_response(
        status_code=503, message="Service temporarily unavailable", error_type="service_unavailable"
    )


async def general_exception_handler(_: Request, exc: Exception) -> Response:
    """Handle unexpected errors (500)."""
    logger.exception("Unexpected error: %s", exc)
    return create_json_error_response(
        status_code=500, message="An unexpected error occurred.", error_type="internal_server_error"
    )
