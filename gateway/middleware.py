"""Middleware that assigns and propagates a request identifier.

``RequestIdMiddleware`` gives every incoming HTTP request an identifier.
The id is read from the incoming ``X-Request-ID`` header when the client
provides one, or generated server-side (UUIDv4) otherwise. It is stored on
``request.state`` and in a context variable so code running downstream
(log filters in particular) can reach it without passing it explicitly, and
it is echoed back in the ``X-Request-ID`` response header.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body
is larger than the configured limit.
"""

import contextvars
import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

logger = logging.getLogger("gateway.access")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Set and return a per-request identifier, and log each request.

    Attributes:
        HEADER (str): Incoming header that may carry a client-provided id.
        RESPONSE_HEADER (str): Header returned on responses.
    """

    HEADER = "x-request-id"
    RESPONSE_HEADER = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(self.HEADER) or str(uuid.uuid4())
        request.state.request_id = rid
        token = REQUEST_ID_CTX.set(rid)
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            logger.info(
                "request handled",
                extra={"path": request.url.path, "method": request.method, "status": status_code},
            )
            REQUEST_ID_CTX.reset(token)
        response.headers[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject oversized API payloads with 413 before they reach a route."""

    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/api/"):
            clen = request.headers.get("content-length")
            if clen and clen.isdigit() and int(clen) > self.max_bytes:
                return JSONResponse({"detail": "PAYLOAD_TOO_LARGE"}, status_code=413)
        return await call_next(request)
