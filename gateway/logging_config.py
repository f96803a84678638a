"""JSON logging setup shared by the API process and the scheduler thread."""

import logging

from pythonjsonlogger import jsonlogger

from .logging_filters import RequestIdFilter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"

_CONFIGURED_LOGGERS = ("apps", "gateway")


def configure_logging(level: str = "INFO") -> None:
    """Attach a JSON handler to the project loggers.

    Idempotent: loggers that already have handlers are only re-levelled.
    """
    for name in _CONFIGURED_LOGGERS:
        logger = logging.getLogger(name)
        if not logger.handlers:
            h = logging.StreamHandler()
            h.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
            h.addFilter(RequestIdFilter())
            logger.addHandler(h)
        logger.setLevel(level)
