"""Shared logging utilities for FastAPI applications."""

import logging
import os

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


class HealthCheckFilter(logging.Filter):
    """Filter out health check requests from uvicorn access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Return False to suppress health check log entries."""
        return '/health' not in record.getMessage()


def configure_logging(app_logger: str | None = None) -> None:
    """Suppress health check access lines and set up the application logger.

    The application logger level comes from LOG_LEVEL (default INFO). A stream
    handler is attached only when the logger has none yet, so repeated calls
    do not duplicate output.
    """
    logging.getLogger('uvicorn.access').addFilter(HealthCheckFilter())
    if app_logger is None:
        return

    logger = logging.getLogger(app_logger)
    level_name = os.environ.get('LOG_LEVEL', 'INFO').upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
