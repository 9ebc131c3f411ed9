"""
Nyx Fragments - units of a streamed model response and the turns built from them.

A fragment is one of:
- TextFragment: a chunk of reply text
- ToolCallFragment: the model asking for a tool
- ToolResultFragment: the outcome fed back to the model

Serialized form (history payloads and the turn log):
    {"type": "text", "text": "..."}
    {"type": "tool_call", "name": "...", "arguments": {...}, "call_id": "..."}
    {"type": "tool_result", "name": "...", "result": {...}, "call_id": "..."}
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from errors import ValidationError
from services.store import utc_now


@dataclass(frozen=True)
class TextFragment:
    value: str


@dataclass(frozen=True)
class ToolCallFragment:
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


@dataclass(frozen=True)
class ToolResultFragment:
    name: str
    result: Dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


Fragment = Union[TextFragment, ToolCallFragment, ToolResultFragment]

ROLE_USER = "user"
ROLE_MODEL = "model"


def fragment_to_dict(fragment: Fragment) -> Dict[str, Any]:
    if isinstance(fragment, TextFragment):
        return {"type": "text", "text": fragment.value}
    if isinstance(fragment, ToolCallFragment):
        return {
            "type": "tool_call",
            "name": fragment.name,
            "arguments": fragment.arguments,
            "call_id": fragment.call_id,
        }
    if isinstance(fragment, ToolResultFragment):
        return {
            "type": "tool_result",
            "name": fragment.name,
            "result": fragment.result,
            "call_id": fragment.call_id,
        }
    raise TypeError(f"Not a fragment: {fragment!r}")


def fragment_from_dict(data: Dict[str, Any]) -> Fragment:
    """Parse one serialized fragment.

    Raises:
        ValidationError: unknown type or missing fields
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid history fragment", expected="object", received=type(data).__name__)

    kind = data.get("type")
    if kind == "text":
        text = data.get("text")
        if not isinstance(text, str):
            raise ValidationError("Text fragment is missing its text", parameter="text")
        return TextFragment(text)
    if kind in ("tool_call", "tool_result"):
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValidationError(f"{kind} fragment is missing its name", parameter="name")
        if kind == "tool_call":
            return ToolCallFragment(name, dict(data.get("arguments") or {}), data.get("call_id"))
        return ToolResultFragment(name, dict(data.get("result") or {}), data.get("call_id"))

    raise ValidationError("Unknown history fragment type", parameter="type", received=str(kind))


def merge_text(fragments: List[Fragment]) -> List[Fragment]:
    """Join adjacent text fragments, dropping empty ones. Order is preserved."""
    merged: List[Fragment] = []
    for fragment in fragments:
        if isinstance(fragment, TextFragment):
            if not fragment.value:
                continue
            if merged and isinstance(merged[-1], TextFragment):
                merged[-1] = TextFragment(merged[-1].value + fragment.value)
                continue
        merged.append(fragment)
    return merged


@dataclass
class Turn:
    """One role-attributed entry of the conversation log."""

    role: str
    content: List[Fragment] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_now)

    @property
    def is_empty(self) -> bool:
        return not self.content

    @property
    def text(self) -> str:
        return "".join(f.value for f in self.content if isinstance(f, TextFragment))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": [fragment_to_dict(f) for f in self.content],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Turn":
        """Parse a serialized turn.

        Accepts ``content`` as a fragment list or a bare string (plain text
        history sent by simple clients). ``assistant`` is read as ``model``.
        """
        if not isinstance(data, dict):
            raise ValidationError("Invalid history turn", expected="object", received=type(data).__name__)

        role = data.get("role")
        if role == "assistant":
            role = ROLE_MODEL
        if role not in (ROLE_USER, ROLE_MODEL):
            raise ValidationError("Invalid history role", parameter="role", received=str(role))

        content = data.get("content", [])
        if isinstance(content, str):
            fragments: List[Fragment] = [TextFragment(content)]
        elif isinstance(content, list):
            fragments = [fragment_from_dict(item) for item in content]
        else:
            raise ValidationError("Invalid history content", parameter="content", expected="list")

        return cls(role=role, content=merge_text(fragments), timestamp=data.get("timestamp") or utc_now())


def turns_from_payload(history: Optional[List[Any]]) -> List[Turn]:
    """Parse a client-supplied history list, skipping empty turns."""
    if not history:
        return []
    if not isinstance(history, list):
        raise ValidationError("history must be a list", parameter="history", expected="list")
    turns = [Turn.from_dict(item) for item in history]
    return [t for t in turns if not t.is_empty]
