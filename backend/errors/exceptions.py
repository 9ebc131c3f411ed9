"""
Custom exception hierarchy for Nyx.

All exceptions inherit from NyxError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the user can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


class NyxError(Exception):
    """Base exception for all Nyx errors.

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


class ValidationError(NyxError):
    """Malformed inbound event or invalid input.

    The code defaults to VALIDATION_INVALID_TYPE when ``expected`` is given
    and VALIDATION_MISSING_PARAM otherwise; pass ``code`` for range and
    format errors.
    """

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if expected:
            ctx["expected"] = expected
        if received:
            ctx["received"] = received
        if code is None and expected:
            code = ErrorCode.VALIDATION_INVALID_TYPE
        super().__init__(message, details, code=code, **ctx)


class NotFoundError(NyxError):
    """A required record is not in the store."""

    code = ErrorCode.NOT_FOUND_RECORD
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        if resource_type == "part":
            code = ErrorCode.NOT_FOUND_PART
        elif resource_type == "quote":
            code = ErrorCode.NOT_FOUND_QUOTE
        else:
            code = ErrorCode.NOT_FOUND_RECORD

        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message, details, code=code, **ctx)


class UnknownToolError(NyxError):
    """The model asked for a tool that is not registered."""

    code = ErrorCode.TOOL_UNKNOWN
    recoverable = False

    def __init__(self, tool_name: str, details: Optional[str] = None, **context: Any):
        self.tool_name = tool_name
        super().__init__(
            f'The assistant tried to use a tool named "{tool_name}" that does not exist.',
            details,
            tool=tool_name,
            **context,
        )


class ToolExecutionError(NyxError):
    """A tool ran but could not complete its work."""

    code = ErrorCode.TOOL_EXECUTION_FAILED
    recoverable = True

    def __init__(self, message: str, details: Optional[str] = None, tool: Optional[str] = None, **context: Any):
        ctx = {**context}
        if tool:
            ctx["tool"] = tool
        super().__init__(message, details, **ctx)


class ToolRegistrationError(NyxError):
    """A tool definition is inconsistent with the registry."""

    code = ErrorCode.TOOL_REGISTRATION_INVALID
    recoverable = False


class UpstreamModelError(NyxError):
    """Error while streaming from the language model."""

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
        if error_type == "timeout":
            code = ErrorCode.LLM_TIMEOUT
        elif error_type == "stream":
            code = ErrorCode.LLM_STREAM_FAILED
        elif error_type == "invalid":
            code = ErrorCode.LLM_RESPONSE_INVALID
        else:
            code = ErrorCode.LLM_UNAVAILABLE

        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, code=code, **ctx)


class PersistenceError(NyxError):
    """A data store read or write failed."""

    code = ErrorCode.PERSISTENCE_WRITE_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        scope: Optional[str] = None,
        operation: Optional[str] = None,
        **context: Any,
    ):
        code = ErrorCode.PERSISTENCE_READ_FAILED if operation in ("query", "get") else ErrorCode.PERSISTENCE_WRITE_FAILED
        ctx = {**context}
        if scope:
            ctx["scope"] = scope
        if operation:
            ctx["operation"] = operation
        super().__init__(message, details, code=code, **ctx)
