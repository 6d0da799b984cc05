"""
Error logging utilities for Sensei.
"""

import logging
from typing import Optional

from .exceptions import SenseiError


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Args:
        logger: Logger instance to use
        error: The exception to log
        context: Optional context string to prefix the message
        include_traceback: Whether to include the full stack trace

    Example:
        >>> log_error(logger, err, context="data_query")
        # Logs: "[data_query] EXTERNAL_DATA_SERVICE_FAILED: Data service returned 503"
    """
    if isinstance(error, SenseiError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
