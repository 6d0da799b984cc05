"""
Sensei Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the application.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        SenseiError,
        ValidationError,
        NotFoundError,
        AccessDeniedError,
        ResolutionError,
        ClassifierError,
        FormatterError,
        LLMError,
        ExternalServiceError,

        # Response builders
        error_response,
        success_response,
        http_status_for,

        # Logging
        log_error,
    )

Example:
    from errors import NotFoundError, AccessDeniedError

    def delete_user_message(owner, message_id):
        message = store.get_message(message_id)
        if message is None:
            raise NotFoundError(
                "Message not found",
                resource_type="message",
                resource_id=str(message_id),
            )
        if message.role != Role.USER:
            raise AccessDeniedError(
                "Only user messages can be deleted",
                reason="role",
            )
"""

from .codes import ErrorCode
from .exceptions import (
    TRANSACTION_ID_HINT,
    SenseiError,
    ValidationError,
    NotFoundError,
    AccessDeniedError,
    ResolutionError,
    ClassifierError,
    FormatterError,
    LLMError,
    ExternalServiceError,
)
from .response import (
    error_response,
    success_response,
    http_status_for,
)
from .handlers import log_error

__all__ = [
    # Error codes
    "ErrorCode",
    "TRANSACTION_ID_HINT",
    # Exceptions
    "SenseiError",
    "ValidationError",
    "NotFoundError",
    "AccessDeniedError",
    "ResolutionError",
    "ClassifierError",
    "FormatterError",
    "LLMError",
    "ExternalServiceError",
    # Response builders
    "error_response",
    "success_response",
    "http_status_for",
    # Logging
    "log_error",
]
