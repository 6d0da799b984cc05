"""
Error codes for Sensei.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for Sensei.

    Categories:
    - VALIDATION_*: Input validation errors
    - NOT_FOUND_*: Resource not found (or not owned by the caller)
    - ACCESS_*: Operation refused for the caller
    - RESOLUTION_*: Could not work out what a prompt refers to
    - CLASSIFIER_*: Routing classifier errors (recovered locally)
    - FORMATTER_*: Markup formatter errors (recovered locally)
    - LLM_*: Language model errors
    - EXTERNAL_*: External service errors
    - INTERNAL_*: Internal/unexpected errors
    """

    # Validation errors (input checking)
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_TYPE = "VALIDATION_INVALID_TYPE"
    VALIDATION_OUT_OF_RANGE = "VALIDATION_OUT_OF_RANGE"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"

    # Not found errors (missing or foreign resources)
    NOT_FOUND_CONVERSATION = "NOT_FOUND_CONVERSATION"
    NOT_FOUND_MESSAGE = "NOT_FOUND_MESSAGE"

    # Access errors
    ACCESS_DENIED = "ACCESS_DENIED"
    ACCESS_ROLE_NOT_DELETABLE = "ACCESS_ROLE_NOT_DELETABLE"

    # Resolution errors
    RESOLUTION_TRANSACTION_ID = "RESOLUTION_TRANSACTION_ID"

    # Classifier / formatter errors
    CLASSIFIER_FAILED = "CLASSIFIER_FAILED"
    CLASSIFIER_UNKNOWN_TARGET = "CLASSIFIER_UNKNOWN_TARGET"
    FORMATTER_FAILED = "FORMATTER_FAILED"

    # LLM errors (model interactions)
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_PARSE_FAILED = "LLM_PARSE_FAILED"
    LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"
    LLM_CIRCUIT_OPEN = "LLM_CIRCUIT_OPEN"

    # External service errors
    EXTERNAL_EVIDENCE_FAILED = "EXTERNAL_EVIDENCE_FAILED"
    EXTERNAL_DATA_SERVICE_FAILED = "EXTERNAL_DATA_SERVICE_FAILED"
    EXTERNAL_LLM_FAILED = "EXTERNAL_LLM_FAILED"
    EXTERNAL_NETWORK_ERROR = "EXTERNAL_NETWORK_ERROR"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
    INTERNAL_CONFIG_ERROR = "INTERNAL_CONFIG_ERROR"
    INTERNAL_STATE_ERROR = "INTERNAL_STATE_ERROR"
