"""
Standard error response builders for Sensei.

Provides consistent response envelopes for the HTTP layer.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import (
    SenseiError,
    ValidationError,
    ResolutionError,
    NotFoundError,
    AccessDeniedError,
    LLMError,
    ExternalServiceError,
)


def error_response(error: SenseiError | Exception, source: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        source: Optional component name for context (e.g. "chat", "query")
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> from errors import ValidationError, error_response
        >>> err = ValidationError("Prompt must not be blank", parameter="prompt")
        >>> error_response(err, source="chat")
        {
            "success": False,
            "error": {
                "code": "VALIDATION_MISSING_PARAM",
                "message": "Prompt must not be blank",
                "details": None,
                "source": "chat",
                "recoverable": True,
                "context": {"parameter": "prompt"}
            }
        }
    """
    if isinstance(error, SenseiError):
        return {
            "success": False,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "source": source,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    # Fallback for non-Sensei exceptions
    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "source": source,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Example:
        >>> success_response(messageId=42)
        {"success": True, "messageId": 42}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response


def http_status_for(error: Exception) -> int:
    """Map an exception to the HTTP status the API answers with."""
    if isinstance(error, (ValidationError, ResolutionError)):
        return 400
    if isinstance(error, AccessDeniedError):
        return 403
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (LLMError, ExternalServiceError)):
        return 502
    return 500
