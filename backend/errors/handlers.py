"""
Error handling decorators and utilities for Nyx.

Provides decorators for consistent error handling across tool functions.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .exceptions import NyxError
from .response import error_response

# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., Any])


def handle_async_tool_errors(tool_name: str, logger: Optional[logging.Logger] = None):
    """Decorator that catches exceptions and returns standard failed outcomes.

    Wraps an async tool executor to catch all exceptions, log them with stack
    traces, and return a standardized outcome dictionary. A failing tool is
    never fatal to the chat turn.

    Args:
        tool_name: Name of the tool for error response context
        logger: Optional logger instance (defaults to tool-specific logger)

    Returns:
        Decorated coroutine function that returns error_response on exception

    Example:
        >>> @handle_async_tool_errors("generate_quote")
        ... async def execute_generate_quote(...):
        ...     if not part:
        ...         raise NotFoundError("Part not found", resource_type="part")
        ...     return success_response("Quote generated.", quote_id=quote_id)
    """

    def decorator(func: F) -> F:
        log = logger or logging.getLogger(f"nyx.{tool_name}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> dict:
            try:
                return await func(*args, **kwargs)
            except NyxError as e:
                log.error(f"[{tool_name}] {e.code.value}: {e.message}", exc_info=True)
                return error_response(e, tool=tool_name)
            except Exception as e:
                log.error(f"[{tool_name}] Unexpected error: {e}", exc_info=True)
                return error_response(e, tool=tool_name)

        return wrapper  # type: ignore

    return decorator


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
        >>> log_error(logger, err, context="persist-turn")
        # Logs: "[persist-turn] PERSISTENCE_WRITE_FAILED: Could not append record"
    """
    if isinstance(error, NyxError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
