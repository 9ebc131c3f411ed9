"""
Nyx Chat Orchestration - the tool-invocation loop behind /ws/chat

Components:
- Fragments/Turn: streamed units and the conversation log built from them
- ChatSession: per-connection state, TurnState, truncate_history()
- StreamConsumer: relays text, captures the first tool call, always closes the stream
- ToolExecutor: identity-merged dispatch through the registry plus audit records
- ResultRouter: tool outcome -> side-channel event + model-facing payload
- TurnOrchestrator: the turn state machine tying the above together

Single hop only: the second model stream is consumed with tool-call
detection off, so one user message runs at most one tool.
"""

from .fragments import (
    Fragment,
    TextFragment,
    ToolCallFragment,
    ToolResultFragment,
    Turn,
    turns_from_payload,
)
from .session import ChatSession, TurnState, truncate_history
from .stream_consumer import StreamConsumer, StreamResult
from .tool_dispatch import ToolExecutor, ToolInvocationRecord
from .result_router import ResultRouter, RoutedResult
from .orchestrator import TurnOrchestrator, TurnRequest, TurnOutcome, load_history

__all__ = [
    "Fragment",
    "TextFragment",
    "ToolCallFragment",
    "ToolResultFragment",
    "Turn",
    "turns_from_payload",
    "ChatSession",
    "TurnState",
    "truncate_history",
    "StreamConsumer",
    "StreamResult",
    "ToolExecutor",
    "ToolInvocationRecord",
    "ResultRouter",
    "RoutedResult",
    "TurnOrchestrator",
    "TurnRequest",
    "TurnOutcome",
    "load_history",
]
