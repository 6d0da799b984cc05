"""
Custom exception hierarchy for Sensei.

All exceptions inherit from SenseiError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the user can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


# Shown to the user when no transaction id can be derived from chat or text
TRANSACTION_ID_HINT = (
    "Error: Could not extract transaction ID from the query or existing chat context. "
    "Please include a transaction ID in the format TX######### (e.g., TX651750504)"
)


class SenseiError(Exception):
    """Base exception for all Sensei errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by user action
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        # Allow overriding class defaults
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ValidationError(SenseiError):
    """Error during input validation."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if expected:
            ctx["expected"] = expected
        if received:
            ctx["received"] = received
        super().__init__(message, details, **ctx)


class NotFoundError(SenseiError):
    """A conversation or message does not exist for the resolving owner."""

    code = ErrorCode.NOT_FOUND_CONVERSATION
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        if resource_type == "message":
            code = ErrorCode.NOT_FOUND_MESSAGE
        else:
            code = ErrorCode.NOT_FOUND_CONVERSATION

        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message, details, code=code, **ctx)


class AccessDeniedError(SenseiError):
    """The caller may not perform this operation on the resource."""

    code = ErrorCode.ACCESS_DENIED
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        reason: Optional[str] = None,
        **context: Any,
    ):
        code = ErrorCode.ACCESS_ROLE_NOT_DELETABLE if reason == "role" else ErrorCode.ACCESS_DENIED
        super().__init__(message, details, code=code, **context)


class ResolutionError(SenseiError):
    """No transaction id could be derived from chat history or prompt text."""

    code = ErrorCode.RESOLUTION_TRANSACTION_ID
    recoverable = True

    def __init__(self, message: str = TRANSACTION_ID_HINT, details: Optional[str] = None, **context: Any):
        super().__init__(message, details, **context)


class ClassifierError(SenseiError):
    """Routing classifier failed or returned an unusable decision."""

    code = ErrorCode.CLASSIFIER_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        target: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        code = ErrorCode.CLASSIFIER_FAILED
        if target:
            ctx["target"] = target
            code = ErrorCode.CLASSIFIER_UNKNOWN_TARGET
        super().__init__(message, details, code=code, **ctx)


class FormatterError(SenseiError):
    """Markup formatting through the LLM failed."""

    code = ErrorCode.FORMATTER_FAILED
    recoverable = True


class LLMError(SenseiError):
    """Error during LLM interactions."""

    code = ErrorCode.LLM_UNAVAILABLE
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        # Set appropriate code based on error type
        if error_type == "timeout":
            code = ErrorCode.LLM_TIMEOUT
        elif error_type == "parse":
            code = ErrorCode.LLM_PARSE_FAILED
        elif error_type == "invalid":
            code = ErrorCode.LLM_RESPONSE_INVALID
        elif error_type == "circuit_open":
            code = ErrorCode.LLM_CIRCUIT_OPEN
        else:
            code = ErrorCode.LLM_UNAVAILABLE

        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, code=code, **ctx)


class ExternalServiceError(SenseiError):
    """Error with external services (evidence store, data agent, LLM endpoint)."""

    code = ErrorCode.EXTERNAL_NETWORK_ERROR
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        # Set appropriate code based on service
        if service == "evidence":
            code = ErrorCode.EXTERNAL_EVIDENCE_FAILED
        elif service == "data":
            code = ErrorCode.EXTERNAL_DATA_SERVICE_FAILED
        elif service == "llm":
            code = ErrorCode.EXTERNAL_LLM_FAILED
        else:
            code = ErrorCode.EXTERNAL_NETWORK_ERROR

        ctx = {**context}
        if service:
            ctx["service"] = service
        if status_code:
            ctx["status_code"] = status_code
        super().__init__(message, details, code=code, **ctx)
