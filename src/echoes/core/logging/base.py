"""Base logging functionality shared by the logging modules."""

import structlog
from structlog.typing import FilteringBoundLogger


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Get a structlog logger.

    Before ``setup_logging`` runs, structlog falls back to its default
    configuration, so module-level loggers are safe to create at import time.
    """
    return structlog.get_logger(name)
