"""
Nyx Chat Session - per-connection conversation state

Dataclass holding the state one WebSocket connection owns: the turn state,
and the composed instructions cached per session identity.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .fragments import ROLE_MODEL, Turn


class TurnState(str, Enum):
    IDLE = "idle"
    STREAMING_1 = "streaming_1"
    TOOL_PENDING = "tool_pending"
    EXECUTING = "executing"
    STREAMING_2 = "streaming_2"


def truncate_history(history: List[Turn], limit: int) -> List[Turn]:
    """Keep the newest ``limit`` turns, starting on a user turn.

    Returns a new list; the input is never modified.
    """
    if limit <= 0:
        return []
    window = list(history[-limit:])
    while window and window[0].role == ROLE_MODEL:
        window.pop(0)
    return window


@dataclass
class ChatSession:
    """Holds conversation state for a single WebSocket connection.

    Attributes:
        connection_id: Unique identifier for this connection
        state: Current TurnState
        turns_completed: Turns that reached IDLE, successfully or not
        last_tools_used: Tools used in the last turn
    """

    connection_id: str
    state: TurnState = TurnState.IDLE
    turns_completed: int = 0
    last_tools_used: List[str] = field(default_factory=list)
    _instructions: Dict[str, str] = field(default_factory=dict, repr=False)

    def cached_instructions(self, session_identity: str) -> Optional[str]:
        return self._instructions.get(session_identity)

    def cache_instructions(self, session_identity: str, instructions: str) -> None:
        self._instructions[session_identity] = instructions

    def invalidate_instructions(self, session_identity: Optional[str] = None) -> None:
        """Drop cached instructions so the next turn recomposes them."""
        if session_identity is None:
            self._instructions.clear()
        else:
            self._instructions.pop(session_identity, None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "state": self.state.value,
            "turns_completed": self.turns_completed,
            "last_tools_used": self.last_tools_used,
            "cached_identities": sorted(self._instructions),
        }
