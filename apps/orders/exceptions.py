"""Error taxonomy for the orders domain.

Every error carries a stable ``code`` (used by the HTTP layer to build the
response body) and a human-readable message naming the violated rule. The
lifecycle manager raises these and never reinterprets them; translation to
protocol status codes happens in ``gateway.errors``.
"""


class OrderError(Exception):
    """Base class for errors raised by the orders domain.

    Attributes:
        code: Stable machine-readable error code.
        message: Human-readable reason.
    """

    code = "ORDER_ERROR"

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(OrderError):
    """Malformed creation input (no lines, bad quantity or price)."""

    code = "VALIDATION_ERROR"


class NotFound(OrderError):
    """The referenced order does not exist."""

    code = "ORDER_NOT_FOUND"


class Conflict(OrderError):
    """A lifecycle rule was violated for the order's current state."""

    code = "CONFLICT"


class KeyGenerationFailed(OrderError):
    """The idempotency key for a creation request could not be derived."""

    code = "IDEMPOTENCY_KEY_ERROR"


class ServiceUnavailable(OrderError):
    """Raised by the circuit breaker decorator while the circuit is open."""

    code = "SERVICE_UNAVAILABLE"


class RateLimitExceeded(OrderError):
    """Raised by the rate limiter decorator when no permit is available."""

    code = "RATE_LIMITED"


class DuplicateIdempotencyKey(Exception):
    """Raised by the ledger store when an insert hits the unique key.

    This is a store-level signal consumed by the lifecycle manager, not a
    caller-facing error.
    """

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key
