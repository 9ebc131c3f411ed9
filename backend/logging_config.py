"""
Nyx Logging Configuration

Console logging for the chat backend. Levels are colored when stdout is a
terminal (and NO_COLOR is unset); each line carries the short module name so
turn, tool and model events from one connection can be followed.

Usage:
    from logging_config import setup_logging, log_turn_start
    setup_logging("INFO")
    logger = logging.getLogger(__name__)
    log_turn_start(logger, "u1", "tienen faros led?")
"""

import logging
import os
import sys
from typing import Iterable, Optional, Union

RESET = "\033[0m"
DIM = "\033[2m"

LEVEL_COLORS = {
    logging.DEBUG: "\033[90m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[91m",
    logging.CRITICAL: "\033[1;91m",
}

# Event markers written by the helpers below, e.g. ">>> tool"
EVENT_COLORS = {
    "turn": "\033[96m",
    "tool": "\033[93m",
    "model": "\033[94m",
}

PREVIEW_CHARS = 80


class NyxFormatter(logging.Formatter):
    """``HH:MM:SS LEVL module: message``, optionally colored."""

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]
        module = record.name.rsplit(".", 1)[-1]
        message = record.getMessage()

        if self.color:
            level_color = LEVEL_COLORS.get(record.levelno)
            if level_color:
                level = f"{level_color}{level}{RESET}"
            line = f"{DIM}{timestamp}{RESET} {level} {DIM}{module}:{RESET} {_color_marker(message)}"
        else:
            line = f"{timestamp} {level} {module}: {message}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _color_marker(message: str) -> str:
    if message[:4] not in (">>> ", "<<< "):
        return message
    marker, _, rest = message.partition(" ")[2].partition(" ")
    color = EVENT_COLORS.get(marker)
    if color is None:
        return message
    return f"{color}{message[:4]}{marker}{RESET} {rest}"


def _use_color() -> bool:
    return sys.stdout.isatty() and not os.environ.get("NO_COLOR")


def setup_logging(level: Union[int, str] = logging.INFO, color: Optional[bool] = None) -> None:
    """Install the Nyx console handler on the root logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(NyxFormatter(_use_color() if color is None else color))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for noisy in ("httpx", "httpcore", "openai", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# =============================================================================
# EVENT HELPERS
# =============================================================================


def _preview(text: str) -> str:
    text = " ".join(text.split())
    return text[:PREVIEW_CHARS] + "..." if len(text) > PREVIEW_CHARS else text


def log_turn_start(logger: logging.Logger, session: str, message: str, image: bool = False) -> None:
    """A user message entered the turn loop."""
    suffix = " +image" if image else ""
    logger.info(f">>> turn session={session}{suffix} \"{_preview(message)}\"")


def log_turn_end(logger: logging.Logger, session: str, tools_used: Iterable[str] = (), turns: int = 0) -> None:
    tools = ", ".join(tools_used) or "none"
    logger.info(f"<<< turn session={session} tools=[{tools}] persisted={turns}")


def log_tool_call(logger: logging.Logger, tool: str, session: str) -> None:
    logger.info(f">>> tool {tool} session={session}")


def log_tool_result(
    logger: logging.Logger, tool: str, session: str, success: bool, duration: float, message: str = ""
) -> None:
    """Tool finished. Failed outcomes log at WARNING with the outcome message."""
    status = "ok" if success else "failed"
    line = f"<<< tool {tool} session={session} {status} in {duration:.2f}s"
    if success:
        logger.info(line)
    else:
        logger.warning(f"{line}: {_preview(message)}")


def log_model_call(logger: logging.Logger, model: str, purpose: str, duration: Optional[float] = None) -> None:
    """Model request started (no duration) or finished."""
    if duration is None:
        logger.info(f">>> model {model} ({purpose})")
    else:
        logger.info(f"<<< model {model} ({purpose}) {duration:.1f}s")
