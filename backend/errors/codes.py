"""
Error codes for Nyx application.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for Nyx.

    Categories:
    - VALIDATION_*: Inbound event / input validation errors
    - NOT_FOUND_*: Resource not found errors
    - TOOL_*: Tool dispatch and execution errors
    - LLM_*: Language model (upstream) errors
    - PERSISTENCE_*: Data store errors
    - INTERNAL_*: Internal/unexpected errors
    """

    # Validation errors (input checking)
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_TYPE = "VALIDATION_INVALID_TYPE"
    VALIDATION_OUT_OF_RANGE = "VALIDATION_OUT_OF_RANGE"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"

    # Not found errors (missing resources)
    NOT_FOUND_RECORD = "NOT_FOUND_RECORD"
    NOT_FOUND_PART = "NOT_FOUND_PART"
    NOT_FOUND_QUOTE = "NOT_FOUND_QUOTE"

    # Tool errors
    TOOL_UNKNOWN = "TOOL_UNKNOWN"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    TOOL_REGISTRATION_INVALID = "TOOL_REGISTRATION_INVALID"

    # LLM errors (model interactions)
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_STREAM_FAILED = "LLM_STREAM_FAILED"
    LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"

    # Persistence errors
    PERSISTENCE_WRITE_FAILED = "PERSISTENCE_WRITE_FAILED"
    PERSISTENCE_READ_FAILED = "PERSISTENCE_READ_FAILED"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
