"""
Nyx Chat Router - WebSocket Handler

Auto-parts assistant with tools. This module owns the /ws/chat endpoint,
the inbound event table and connection lifecycle, and delegates turns to
chat_orchestration/.

Architecture:
- chat.py: WebSocket endpoint, reader/worker tasks, event handlers
- chat_orchestration/: turn state machine and its components
- chat_prompts.py: instruction composition
- chat_streaming.py: bounded outbound channel
- chat_executors/: tool implementations

Wire format both ways: {"event": str, "payload": ...}
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from config import runtime_config
from errors import (
    ErrorCode,
    NotFoundError,
    NyxError,
    PersistenceError,
    ValidationError,
    format_error_for_client,
    log_error,
)
from services.store import DEV_REQUESTS, QUOTES, TURNS, DataStore, get_store, session_scope, utc_now
from tools.registry import ToolRegistry, get_tool_registry

from .chat_executors import record_activity
from .chat_orchestration import (
    ChatSession,
    ResultRouter,
    ToolExecutor,
    Turn,
    TurnOrchestrator,
    TurnRequest,
    turns_from_payload,
)
from .chat_prompts import build_instructions
from .chat_streaming import ClientChannel

logger = logging.getLogger(__name__)

router = APIRouter()

DEV_REQUEST_STATUSES = ("pending", "in-progress", "completed", "rejected")


# =============================================================================
# INBOUND PAYLOADS
# =============================================================================


class SessionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_identity: str = Field(
        validation_alias=AliasChoices("sessionIdentity", "userId", "session_identity"), min_length=1
    )


class ChatMessagePayload(SessionPayload):
    message: str = Field(min_length=1)
    history: Optional[List[Any]] = None
    image_data: Optional[str] = Field(default=None, validation_alias=AliasChoices("imageData", "image_data"))


class QuotePayload(SessionPayload):
    quote_id: str = Field(validation_alias=AliasChoices("quoteId", "quote_id"), min_length=1)


class DevRequestStatusPayload(SessionPayload):
    request_id: str = Field(validation_alias=AliasChoices("requestId", "request_id"), min_length=1)
    status: str


def parse_payload(model: type, payload: Any) -> Any:
    """Validate an inbound payload, raising our ValidationError on failure."""
    if not isinstance(payload, dict):
        raise ValidationError("Event payload must be an object", expected="object", received=type(payload).__name__)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        if first.get("type") == "missing" or field_name in ("message", "sessionIdentity"):
            raise ValidationError("message and sessionIdentity are required.", parameter=field_name)
        raise ValidationError(
            f"Invalid {field_name}: {first.get('msg')}",
            parameter=field_name,
            code=ErrorCode.VALIDATION_INVALID_FORMAT,
        )


# =============================================================================
# CONNECTION CONTEXT
# =============================================================================


@dataclass
class ConnectionContext:
    """Everything one WebSocket connection owns."""

    session: ChatSession
    channel: ClientChannel
    store: DataStore
    registry: ToolRegistry
    orchestrator: TurnOrchestrator


def _model_session_factory(registry: ToolRegistry) -> Callable[[], Any]:
    from services.llm_client import create_model_session

    tools = registry.get_tools_schema()
    return lambda: create_model_session(tools)


def build_connection(
    websocket: WebSocket,
    store: DataStore,
    registry: ToolRegistry,
    model_session_factory: Optional[Callable[[], Any]] = None,
    vision: Any = None,
) -> ConnectionContext:
    session = ChatSession(connection_id=uuid.uuid4().hex[:12])
    channel = ClientChannel(websocket, runtime_config.ws_send_queue_size, runtime_config.ws_send_timeout)
    context = {"vision": vision} if vision is not None else {}
    orchestrator = TurnOrchestrator(
        session=session,
        channel=channel,
        store=store,
        executor=ToolExecutor(registry, store, context),
        router=ResultRouter(halts=registry.halts_round_trip),
        model_session_factory=model_session_factory or _model_session_factory(registry),
        instructions_builder=build_instructions,
        history_limit=runtime_config.history_limit,
        history_load_limit=runtime_config.history_load_limit,
        stream_timeout=runtime_config.llm_stream_timeout,
    )
    return ConnectionContext(session, channel, store, registry, orchestrator)


# =============================================================================
# EVENT HANDLERS
# =============================================================================


async def handle_chat_message(ctx: ConnectionContext, payload: Any) -> None:
    data = parse_payload(ChatMessagePayload, payload)
    if len(data.message) > runtime_config.max_message_length:
        raise ValidationError(
            f"Message too long (max {runtime_config.max_message_length} characters).",
            parameter="message",
            code=ErrorCode.VALIDATION_OUT_OF_RANGE,
        )
    history = turns_from_payload(data.history) if data.history is not None else None
    await ctx.orchestrator.run_turn(
        TurnRequest(
            message=data.message,
            session_identity=data.session_identity,
            history=history,
            image_data=data.image_data,
        )
    )


async def handle_request_history(ctx: ConnectionContext, payload: Any) -> None:
    data = parse_payload(SessionPayload, payload)
    records = await ctx.store.query(
        session_scope(TURNS, data.session_identity), limit=runtime_config.history_load_limit
    )
    history = [Turn.from_dict(r).to_dict() for r in records]
    await ctx.channel.send("history-loaded", {"history": history, "rawHistory": records})


async def handle_clear_history(ctx: ConnectionContext, payload: Any) -> None:
    data = parse_payload(SessionPayload, payload)
    removed = await ctx.store.clear(session_scope(TURNS, data.session_identity))
    logger.info(f"Cleared {removed} turns for {data.session_identity}")
    await ctx.channel.send("history-cleared", {"removed": removed})


async def handle_send_confirmed_quote(ctx: ConnectionContext, payload: Any) -> None:
    data = parse_payload(QuotePayload, payload)
    quote = await ctx.store.update(
        session_scope(QUOTES, data.session_identity), data.quote_id, {"status": "sent", "sent_at": utc_now()}
    )
    if quote is None:
        raise NotFoundError(f"Quote {data.quote_id} not found.", resource_type="quote", resource_id=data.quote_id)
    await record_activity(ctx.store, data.session_identity, f"Quote {data.quote_id} sent to the customer")
    await ctx.channel.send("notification", {"type": "success", "message": f"Quote {data.quote_id} sent."})


async def handle_request_dev_requests(ctx: ConnectionContext, payload: Any) -> None:
    data = parse_payload(SessionPayload, payload)
    requests = await ctx.store.query(session_scope(DEV_REQUESTS, data.session_identity))
    await ctx.channel.send("dev-requests-loaded", list(reversed(requests)))


async def handle_update_dev_request_status(ctx: ConnectionContext, payload: Any) -> None:
    data = parse_payload(DevRequestStatusPayload, payload)
    if data.status not in DEV_REQUEST_STATUSES:
        raise ValidationError(
            f"Unknown status: {data.status}",
            parameter="status",
            expected=", ".join(DEV_REQUEST_STATUSES),
            received=data.status,
            code=ErrorCode.VALIDATION_OUT_OF_RANGE,
        )
    updated = await ctx.store.update(
        session_scope(DEV_REQUESTS, data.session_identity),
        data.request_id,
        {"status": data.status, "updated_at": utc_now()},
    )
    if updated is None:
        raise NotFoundError(
            f"Development request {data.request_id} not found.", resource_id=data.request_id
        )
    await record_activity(
        ctx.store, data.session_identity, f"Development request {data.request_id} marked as '{data.status}'"
    )
    await ctx.channel.send(
        "notification", {"type": "success", "message": f"Request {data.request_id} marked as '{data.status}'."}
    )


EVENT_HANDLERS: Dict[str, Callable[[ConnectionContext, Any], Awaitable[None]]] = {
    "chat-message": handle_chat_message,
    "request-history": handle_request_history,
    "clear-history": handle_clear_history,
    "send-confirmed-quote": handle_send_confirmed_quote,
    "request-dev-requests": handle_request_dev_requests,
    "update-dev-request-status": handle_update_dev_request_status,
}


async def dispatch_event(ctx: ConnectionContext, data: Any) -> None:
    """Run the handler for one inbound envelope. Never raises."""
    if not isinstance(data, dict) or not isinstance(data.get("event"), str):
        await ctx.channel.send("error", "Messages must look like {\"event\": ..., \"payload\": ...}.")
        return

    event = data["event"]
    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        logger.warning(f"Unknown event received: {event}")
        await ctx.channel.send("error", f"Unknown event: {event}")
        return

    try:
        await handler(ctx, data.get("payload"))
    except ValidationError as e:
        logger.info(f"Rejected {event}: {e.message}")
        await ctx.channel.send("error", e.message)
    except PersistenceError as e:
        log_error(logger, e, context=event)
        await ctx.channel.send("error", "Could not reach the data store. Please try again.")
    except NyxError as e:
        log_error(logger, e, context=event, include_traceback=False)
        await ctx.channel.send("error", format_error_for_client(e))
    except Exception as e:
        logger.error(f"Error handling {event}: {e}", exc_info=True)
        await ctx.channel.send("error", format_error_for_client(e))


async def _process_events(ctx: ConnectionContext, inbox: asyncio.Queue) -> None:
    """Worker: handles inbound events strictly one at a time."""
    while True:
        data = await inbox.get()
        if data is None:
            break
        if ctx.channel.closed:
            continue
        await dispatch_event(ctx, data)


# =============================================================================
# WEBSOCKET ENDPOINT
# =============================================================================


async def serve_connection(websocket: WebSocket, ctx: ConnectionContext) -> None:
    """Reader loop for an accepted socket. Returns when the client disconnects."""
    inbox: asyncio.Queue = asyncio.Queue()
    ctx.channel.start()
    worker = asyncio.create_task(_process_events(ctx, inbox))
    logger.info(f"Chat connection {ctx.session.connection_id} opened")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                logger.info(f"Binary frame on {ctx.session.connection_id} rejected")
                await ctx.channel.send("error", "Messages must be JSON text, not binary frames.")
                continue
            if len(raw.encode("utf-8")) > runtime_config.ws_max_payload_bytes:
                await ctx.channel.send("error", "Message too large.")
                continue
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await ctx.channel.send("error", "Messages must be JSON.")
                continue
            await inbox.put(data)
    except WebSocketDisconnect:
        logger.info(f"Chat connection {ctx.session.connection_id} closed by client")
    finally:
        ctx.channel.mark_closed()
        await inbox.put(None)
        # The in-flight turn finishes its tool call and persistence
        await worker
        await ctx.channel.close()


@router.websocket("/ws/chat")
async def chat_websocket(websocket: WebSocket):
    """WebSocket endpoint for chat."""
    await websocket.accept()
    store = await get_store()
    ctx = build_connection(websocket, store, get_tool_registry())
    await serve_connection(websocket, ctx)
