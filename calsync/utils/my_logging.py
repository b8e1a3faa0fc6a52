# calsync/utils/my_logging.py
"""Logging configuration with per-request correlation ids"""
import logging
import sys
from contextvars import ContextVar
from typing import Optional

from calsync.config.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

# Set by the correlation id middleware for the duration of a request
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

NOISY_LOGGERS = [
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "msal",
    "urllib3",
    "celery",
    "uvicorn.access",
]


class CorrelationIdFilter(logging.Filter):
    """Stamp records with the current correlation id, or '-' outside a request"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = correlation_id_var.get() or "-"
        return True


def setup_logging(verbose=True):
    """Configure application logging"""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL) if verbose else logging.WARNING

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler])

    if not verbose:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.ERROR)
