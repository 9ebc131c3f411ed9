"""
Nyx Turn Orchestrator - the per-connection turn state machine

One turn:
    IDLE -> STREAMING_1 -> [TOOL_PENDING -> EXECUTING -> STREAMING_2] -> IDLE

1. Compose (or reuse cached) instructions, truncate history, start the stream
2. Relay text while watching for a tool call
3. Execute the first tool call, audit it, route the outcome
4. Resume the model with the routed payload and relay the second stream
5. Persist the new turns and emit chat-stream-end with the updated history

Any failure emits exactly one ``error`` event, persists the partial turns and
returns to IDLE. A closed client channel skips the second round-trip; tool
execution and persistence still complete.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from errors import NyxError, PersistenceError, UnknownToolError, UpstreamModelError, log_error
from logging_config import log_turn_end, log_turn_start
from services.store import TURNS, DataStore, session_scope

from .fragments import ROLE_MODEL, ROLE_USER, TextFragment, ToolResultFragment, Turn
from .result_router import ResultRouter
from .session import ChatSession, TurnState, truncate_history
from .stream_consumer import StreamConsumer
from .tool_dispatch import ToolExecutor

logger = logging.getLogger(__name__)

UPSTREAM_FAILURE_MESSAGE = "The assistant is unavailable right now. Please try again in a moment."
INTERNAL_FAILURE_MESSAGE = "Something went wrong on the server. Please try again."

# Tools whose success changes the composed instructions
INSTRUCTION_TOOLS = ("save_user_preference",)


class OutboundChannel(Protocol):
    @property
    def closed(self) -> bool: ...

    async def send(self, event: str, payload: Any = None) -> bool: ...


@dataclass
class TurnRequest:
    message: str
    session_identity: str
    history: Optional[List[Turn]] = None  # None: load the persisted history
    image_data: Optional[str] = None


@dataclass
class TurnOutcome:
    success: bool
    turns: List[Turn] = field(default_factory=list)
    tools_used: List[str] = field(default_factory=list)
    error: Optional[str] = None


async def load_history(store: DataStore, session_identity: str, limit: Optional[int] = None) -> List[Turn]:
    """Persisted turns for a session, oldest first."""
    records = await store.query(session_scope(TURNS, session_identity), limit=limit)
    turns = []
    for record in records:
        turn = Turn.from_dict(record)
        if not turn.is_empty:
            turns.append(turn)
    return turns


class TurnOrchestrator:
    """Runs turns for one connection, strictly one at a time.

    Args:
        session: Connection state (turn state, instruction cache)
        channel: Outbound event channel
        store: Data store
        executor: ToolExecutor bound to the same store
        router: ResultRouter for tool outcomes
        model_session_factory: Builds a fresh ModelSession per turn
        instructions_builder: async (store, identity) -> instruction string
    """

    def __init__(
        self,
        session: ChatSession,
        channel: OutboundChannel,
        store: DataStore,
        executor: ToolExecutor,
        router: ResultRouter,
        model_session_factory: Callable[[], Any],
        instructions_builder: Callable[[DataStore, str], Awaitable[str]],
        history_limit: int = 30,
        history_load_limit: int = 50,
        stream_timeout: Optional[float] = None,
    ):
        self.session = session
        self.channel = channel
        self.store = store
        self.executor = executor
        self.router = router
        self.model_session_factory = model_session_factory
        self.instructions_builder = instructions_builder
        self.history_limit = history_limit
        self.history_load_limit = history_load_limit
        self.stream_timeout = stream_timeout

    async def _send(self, event: str, payload: Any = None) -> None:
        if not self.channel.closed:
            await self.channel.send(event, payload)

    async def _relay_text(self, text: str) -> None:
        await self._send("chat-stream-chunk", text)

    async def _instructions(self, session_identity: str) -> str:
        cached = self.session.cached_instructions(session_identity)
        if cached is not None:
            return cached
        instructions = await self.instructions_builder(self.store, session_identity)
        self.session.cache_instructions(session_identity, instructions)
        return instructions

    async def _base_history(self, request: TurnRequest) -> List[Turn]:
        if request.history is not None:
            return list(request.history)
        try:
            return await load_history(self.store, request.session_identity, self.history_load_limit)
        except PersistenceError as e:
            log_error(logger, e, context="load-history", include_traceback=False)
            return []

    async def _persist(self, session_identity: str, turns: List[Turn]) -> List[Turn]:
        """Append non-empty turns in order. Returns the turns that were written."""
        written = []
        scope = session_scope(TURNS, session_identity)
        for turn in turns:
            if turn.is_empty:
                continue
            try:
                await self.store.append(scope, {**turn.to_dict(), "session_identity": session_identity})
                written.append(turn)
            except PersistenceError as e:
                log_error(logger, e, context="persist-turn")
        return written

    async def run_turn(self, request: TurnRequest) -> TurnOutcome:
        identity = request.session_identity
        log_turn_start(logger, identity, request.message, image=bool(request.image_data))

        user_turn = Turn(ROLE_USER, [TextFragment(request.message)])
        first_turn = Turn(ROLE_MODEL)
        second_turn = Turn(ROLE_MODEL)
        tools_used: List[str] = []
        first: Optional[StreamConsumer] = None
        second: Optional[StreamConsumer] = None
        base: List[Turn] = []

        self.session.state = TurnState.STREAMING_1
        try:
            instructions = await self._instructions(identity)
            base = await self._base_history(request)
            window = truncate_history(base + [user_turn], self.history_limit)

            model = self.model_session_factory()
            first = StreamConsumer(self._relay_text, self.stream_timeout)
            result = await first.consume(model.start_stream(instructions, window, request.image_data))
            first_turn.content = result.turn_content()

            if result.tool_call is not None:
                call = result.tool_call
                self.session.state = TurnState.TOOL_PENDING
                tools_used.append(call.name)

                self.session.state = TurnState.EXECUTING
                outcome, record = await self.executor.execute(
                    call, identity, image_data=request.image_data
                )
                routed = self.router.route(call.name, outcome, record.arguments)
                tool_result = ToolResultFragment(call.name, routed.model_payload, call.call_id)
                first_turn.content = first_turn.content + [tool_result]

                if call.name in INSTRUCTION_TOOLS and outcome.get("success"):
                    self.session.invalidate_instructions(identity)

                await self._send(routed.event, routed.payload)

                if routed.halts_round_trip:
                    message = outcome.get("message", "")
                    second_turn.content = [TextFragment(message)] if message else []
                    await self._relay_text(message)
                elif self.channel.closed:
                    logger.info(f"Client gone, skipping second round-trip for {identity}")
                else:
                    self.session.state = TurnState.STREAMING_2
                    second = StreamConsumer(self._relay_text, self.stream_timeout)
                    result2 = await second.consume(model.resume_stream(tool_result), detect_tool_calls=False)
                    second_turn.content = result2.turn_content()

        except asyncio.CancelledError:
            _keep_partial(first, first_turn)
            _keep_partial(second, second_turn)
            logger.warning(f"Turn for {identity} cancelled, persisting partial turns")
            await self._persist(identity, [user_turn, first_turn, second_turn])
            self.session.state = TurnState.IDLE
            self.session.last_tools_used = tools_used
            raise
        except Exception as e:
            _keep_partial(first, first_turn)
            _keep_partial(second, second_turn)
            written = await self._persist(identity, [user_turn, first_turn, second_turn])
            message = self._failure_message(e)
            await self._send("error", message)
            self.session.state = TurnState.IDLE
            self.session.turns_completed += 1
            self.session.last_tools_used = tools_used
            return TurnOutcome(success=False, turns=written, tools_used=tools_used, error=message)

        written = await self._persist(identity, [user_turn, first_turn, second_turn])
        self.session.state = TurnState.IDLE
        self.session.turns_completed += 1
        self.session.last_tools_used = tools_used

        history = [t.to_dict() for t in base + written]
        await self._send("chat-stream-end", {"history": history})
        log_turn_end(logger, identity, tools_used, len(written))
        return TurnOutcome(success=True, turns=written, tools_used=tools_used)

    def _failure_message(self, error: Exception) -> str:
        if isinstance(error, UnknownToolError):
            logger.warning(f"Turn ended on unknown tool {error.tool_name}")
            return error.message
        if isinstance(error, UpstreamModelError):
            log_error(logger, error, context="model-stream")
            return UPSTREAM_FAILURE_MESSAGE
        if isinstance(error, NyxError):
            log_error(logger, error, context="turn")
            return error.message
        logger.error(f"Turn failed: {error}", exc_info=True)
        return INTERNAL_FAILURE_MESSAGE


def _keep_partial(consumer: Optional[StreamConsumer], turn: Turn) -> None:
    if consumer is not None and not turn.content:
        turn.content = consumer.result.turn_content()
