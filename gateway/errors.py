"""Translation of domain errors into JSON HTTP responses.

Every error body has the same shape::

    {"timestamp": ..., "path": ..., "code": ..., "message": ..., "details": [...]}

The mapping from error class to status code is fixed so that each domain
error translates to exactly one HTTP status.
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from apps.orders.exceptions import (
    Conflict,
    KeyGenerationFailed,
    NotFound,
    OrderError,
    RateLimitExceeded,
    ServiceUnavailable,
    ValidationError,
)

from .middleware import RequestIdMiddleware

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"

STATUS_BY_ERROR = {
    ValidationError: 400,
    NotFound: 404,
    Conflict: 409,
    RateLimitExceeded: 429,
    KeyGenerationFailed: 500,
    ServiceUnavailable: 503,
}


def api_error(request: Request, status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
        "code": code,
        "message": message,
        "details": details or [],
    }
    return JSONResponse(body, status_code=status_code)


async def handle_order_error(request: Request, exc: OrderError) -> JSONResponse:
    status_code = STATUS_BY_ERROR.get(type(exc), 500)
    return api_error(request, status_code, exc.code, exc.message, exc.details)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        details.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return api_error(request, 400, "VALIDATION_ERROR", "Validation failed", details)


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    """Answer 500 with a fixed message; the exception only goes to the log.

    This handler runs outside ``RequestIdMiddleware``, so the request id is
    read back from ``request.state`` and set on the response here.
    """
    rid = getattr(request.state, "request_id", None)
    logger.exception("Unhandled error on %s", request.url.path, extra={"request_id": rid or "-"})
    response = api_error(request, 500, "INTERNAL_SERVER_ERROR", INTERNAL_ERROR_MESSAGE)
    if rid:
        response.headers[RequestIdMiddleware.RESPONSE_HEADER] = rid
    return response


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderError, handle_order_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
