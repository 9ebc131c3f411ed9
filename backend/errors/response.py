"""
Standard tool outcome builders for Nyx.

Every tool returns a plain dict outcome. These helpers keep the success and
failure shapes consistent so the Result Router can rely on ``success`` and
``message`` always being present.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import NyxError


def error_response(error: NyxError | Exception, tool: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard failed outcome dictionary.

    Args:
        error: The exception to convert to an outcome
        tool: Optional tool name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard outcome dict with success=False

    Example:
        >>> from errors import ValidationError, error_response
        >>> err = ValidationError("Missing parameter", parameter="part_name")
        >>> error_response(err, tool="generate_quote")
        {
            "success": False,
            "message": "Missing parameter",
            "error": {
                "code": "VALIDATION_MISSING_PARAM",
                "message": "Missing parameter",
                "details": None,
                "tool": "generate_quote",
                "recoverable": True,
                "context": {"parameter": "part_name"}
            }
        }
    """
    if isinstance(error, NyxError):
        return {
            "success": False,
            "message": error.message,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "tool": tool,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    # Non-Nyx exceptions carry internal detail; it stays in the server log
    message = f"{tool} could not complete." if tool else "Unexpected error."
    return {
        "success": False,
        "message": message,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": message,
            "details": None,
            "tool": tool,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(message: str, data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard successful outcome dictionary.

    Args:
        message: Human-readable summary of what the tool did
        data: Optional data dict to include in the outcome under "data"
        **kwargs: Additional key-value pairs to include at top level

    Returns:
        Standard outcome dict with success=True

    Example:
        >>> success_response("Task created.", task_id="3")
        {"success": True, "message": "Task created.", "task_id": "3"}
    """
    response = {"success": True, "message": message}

    if data is not None:
        response["data"] = data
    if kwargs:
        response.update(kwargs)

    return response


def format_error_for_client(error: NyxError | Exception) -> str:
    """Format an error as the human-readable text sent in an ``error`` event.

    Internal details (stack, context) are never included.
    """
    if isinstance(error, NyxError):
        if error.recoverable and error.details:
            return f"{error.message} ({error.details})"
        return error.message

    return "Something went wrong on the server. Please try again."
