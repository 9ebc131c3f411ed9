"""
Nyx Result Router - turns one tool outcome into a client event and a model payload

Handlers are looked up by tool name with an explicit ``default`` entry, so a
new tool needs a table entry, not new control flow. Every handler builds both
outputs from the same outcome:
- the side-channel event sent to the client
- the model-facing payload used to resume the model (a subset of the
  outcome's keys, keeping the resumed prompt small)
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

Outcome = Dict[str, Any]


@dataclass(frozen=True)
class RoutedResult:
    event: str
    payload: Any
    model_payload: Dict[str, Any]
    halts_round_trip: bool = False

    @property
    def success(self) -> bool:
        return bool(self.model_payload.get("success"))


Handler = Callable[[str, Outcome, Dict[str, Any]], RoutedResult]


def _pick(outcome: Outcome, *keys: str) -> Dict[str, Any]:
    return {k: outcome[k] for k in keys if k in outcome}


def _failure(name: str, outcome: Outcome) -> RoutedResult:
    message = outcome.get("message") or f"{name} failed."
    return RoutedResult(
        event="notification",
        payload={"type": "error", "message": message},
        model_payload={"success": False, "message": message},
    )


def route_default(name: str, outcome: Outcome, args: Dict[str, Any]) -> RoutedResult:
    """Generic notification; the model sees the outcome without error internals."""
    if not outcome.get("success"):
        return _failure(name, outcome)
    return RoutedResult(
        event="notification",
        payload={"type": "success", "message": outcome.get("message", "")},
        model_payload={k: v for k, v in outcome.items() if k != "error"},
    )


def route_analyze_image(name: str, outcome: Outcome, args: Dict[str, Any]) -> RoutedResult:
    if not outcome.get("success"):
        return _failure(name, outcome)
    return RoutedResult(
        event="image-analysis-result",
        payload=outcome.get("analysis"),
        model_payload=_pick(outcome, "success", "message", "analysis"),
    )


def route_generate_quote(name: str, outcome: Outcome, args: Dict[str, Any]) -> RoutedResult:
    """The full quote goes to the client; the model only learns it was shown."""
    if not outcome.get("success"):
        return _failure(name, outcome)
    quote_id = outcome.get("quote_id")
    return RoutedResult(
        event="quote-generated",
        payload=outcome.get("data"),
        model_payload={
            "success": True,
            "quote_id": quote_id,
            "message": f"Quote {quote_id} generated and shown to the user.",
        },
    )


def route_development_request(name: str, outcome: Outcome, args: Dict[str, Any]) -> RoutedResult:
    if not outcome.get("success"):
        return _failure(name, outcome)
    return RoutedResult(
        event="development-request-received",
        payload={"type": "info", "message": outcome.get("message", "")},
        model_payload=_pick(outcome, "success", "message", "request_id"),
    )


DEFAULT_HANDLERS: Dict[str, Handler] = {
    "analyze_image": route_analyze_image,
    "generate_quote": route_generate_quote,
    "handle_development_request": route_development_request,
    "default": route_default,
}


class ResultRouter:
    """Routes tool outcomes.

    Args:
        handlers: tool name -> handler; must contain ``default``
        halts: predicate (tool name, outcome) -> whether the turn ends without
            a second model call; usually ToolRegistry.halts_round_trip
    """

    def __init__(
        self,
        handlers: Optional[Mapping[str, Handler]] = None,
        halts: Optional[Callable[[str, Outcome], bool]] = None,
    ):
        self.handlers: Dict[str, Handler] = dict(handlers if handlers is not None else DEFAULT_HANDLERS)
        if "default" not in self.handlers:
            raise ValueError("ResultRouter needs a 'default' handler")
        self._halts = halts

    def route(self, name: str, outcome: Outcome, args: Optional[Dict[str, Any]] = None) -> RoutedResult:
        handler = self.handlers.get(name, self.handlers["default"])
        routed = handler(name, outcome, args or {})
        if self._halts is not None and self._halts(name, outcome):
            logger.info(f"{name} outcome halts the round-trip")
            routed = RoutedResult(routed.event, routed.payload, routed.model_payload, halts_round_trip=True)
        return routed
