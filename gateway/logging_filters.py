"""Logging filters for enriching log records with request context.

Adding ``RequestIdFilter`` to a handler enables per-request correlation in
logs without modifying individual log statements.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    The value comes from ``REQUEST_ID_CTX`` set by ``RequestIdMiddleware``.
    Outside a request (for example on the scheduler thread) a hyphen is
    used so formatters can always reference ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
