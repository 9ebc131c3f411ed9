"""
Nyx Tool Executor - runs one detected tool call and audits it

Handles:
- Merging model arguments with the session identity (identity always wins)
- Dispatch through the ToolRegistry, with executor context (store, image, vision)
- Persisting an immutable ToolInvocationRecord before the outcome moves on
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from errors import PersistenceError, UnknownToolError, error_response, log_error
from logging_config import log_tool_call, log_tool_result
from services.store import TOOL_INVOCATIONS, DataStore, session_scope, utc_now
from tools.registry import ToolRegistry

from .fragments import ToolCallFragment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolInvocationRecord:
    name: str
    arguments: Dict[str, Any]
    result: Dict[str, Any]
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "arguments": self.arguments,
            "result": self.result,
            "timestamp": self.timestamp,
        }


def merge_arguments(arguments: Dict[str, Any], session_identity: str) -> Dict[str, Any]:
    """Model arguments plus session identity. A model-supplied identity is overwritten."""
    return {**arguments, "session_identity": session_identity}


class ToolExecutor:
    """Executes tool calls for one connection.

    Args:
        registry: Tool registry to dispatch through
        store: Data store, passed to executors and used for the audit log
        context: Extra executor context shared by every call (e.g. vision client)
    """

    def __init__(self, registry: ToolRegistry, store: DataStore, context: Optional[Dict[str, Any]] = None):
        self.registry = registry
        self.store = store
        self.context = context or {}

    async def execute(
        self, call: ToolCallFragment, session_identity: str, **context
    ) -> Tuple[Dict[str, Any], ToolInvocationRecord]:
        """Run a tool call.

        Returns:
            (outcome, invocation record). The record is persisted first.

        Raises:
            UnknownToolError: the tool is not registered (the attempt is still audited)
        """
        args = merge_arguments(call.arguments, session_identity)

        if call.name not in self.registry:
            error = UnknownToolError(call.name)
            logger.warning(f"Model requested unknown tool: {call.name}")
            await self._persist(session_identity, ToolInvocationRecord(call.name, args, error_response(error)))
            raise error

        log_tool_call(logger, call.name, session_identity)
        started = time.time()
        outcome = await self.registry.execute(
            call.name, args, **{**self.context, **context, "store": self.store}
        )
        log_tool_result(
            logger,
            call.name,
            session_identity,
            bool(outcome.get("success")),
            time.time() - started,
            outcome.get("message", ""),
        )

        record = ToolInvocationRecord(call.name, args, outcome)
        await self._persist(session_identity, record)
        return outcome, record

    async def _persist(self, session_identity: str, record: ToolInvocationRecord) -> None:
        try:
            await self.store.append(session_scope(TOOL_INVOCATIONS, session_identity), record.to_dict())
        except PersistenceError as e:
            log_error(logger, e, context=f"audit {record.name}")
