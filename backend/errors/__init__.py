"""
Nyx Error Handling Module

Provides standardized error codes, exceptions, and outcome builders
for consistent error handling across the application.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        NyxError,
        ValidationError,
        NotFoundError,
        UnknownToolError,
        ToolExecutionError,
        ToolRegistrationError,
        UpstreamModelError,
        PersistenceError,

        # Outcome builders
        error_response,
        success_response,
        format_error_for_client,

        # Decorators
        handle_async_tool_errors,
        log_error,
    )

Example:
    from errors import handle_async_tool_errors, success_response, ValidationError

    @handle_async_tool_errors("create_expense")
    async def execute_create_expense(category, amount, session_identity, store):
        if amount <= 0:
            raise ValidationError(
                "Invalid amount",
                details="Amount must be positive",
                parameter="amount",
                received=str(amount),
            )
        ...
        return success_response(f"Expense of ${amount} for {category} logged.")
"""

from .codes import ErrorCode
from .exceptions import (
    NyxError,
    ValidationError,
    NotFoundError,
    UnknownToolError,
    ToolExecutionError,
    ToolRegistrationError,
    UpstreamModelError,
    PersistenceError,
)
from .response import (
    error_response,
    success_response,
    format_error_for_client,
)
from .handlers import (
    handle_async_tool_errors,
    log_error,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "NyxError",
    "ValidationError",
    "NotFoundError",
    "UnknownToolError",
    "ToolExecutionError",
    "ToolRegistrationError",
    "UpstreamModelError",
    "PersistenceError",
    # Outcome builders
    "error_response",
    "success_response",
    "format_error_for_client",
    # Decorators
    "handle_async_tool_errors",
    "log_error",
]
