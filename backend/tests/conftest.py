"""
Shared pytest fixtures for the Nyx backend tests.

The model is never called: FakeModelSession replays scripted fragment
streams, and FakeChannel records outbound events instead of writing to a
socket. Async code is driven with asyncio.run so the suite only needs pytest.
"""

import asyncio
from typing import Any, List, Optional

import pytest

from config import runtime_config
from routers.chat_orchestration import (
    ChatSession,
    ResultRouter,
    TextFragment,
    ToolExecutor,
    TurnOrchestrator,
)
from routers.chat_prompts import build_instructions
from services.demo_data import seed_demo_data
from services.store import MemoryStore
from tools.registry import ToolRegistry, register_all_tools


class FakeModelSession:
    """Replays one scripted stream per call.

    Script items are fragments; an Exception instance is raised at that
    point of the stream instead.
    """

    def __init__(self, first: Optional[List[Any]] = None, second: Optional[List[Any]] = None):
        self.first = first if first is not None else [TextFragment("OK")]
        self.second = second if second is not None else [TextFragment("Done.")]
        self.started: List[tuple] = []
        self.resumed: List[Any] = []
        self.closed_streams = 0

    async def _replay(self, script):
        try:
            for item in script:
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.closed_streams += 1

    async def start_stream(self, instructions, history, image_data=None):
        self.started.append((instructions, list(history), image_data))
        async for fragment in self._replay(self.first):
            yield fragment

    async def resume_stream(self, result):
        self.resumed.append(result)
        async for fragment in self._replay(self.second):
            yield fragment


class ScriptedModel:
    """Model session factory handing out FakeModelSessions in order."""

    def __init__(self, *sessions: FakeModelSession):
        self.pending = list(sessions)
        self.used: List[FakeModelSession] = []

    def __call__(self) -> FakeModelSession:
        session = self.pending.pop(0) if self.pending else FakeModelSession()
        self.used.append(session)
        return session


class FakeChannel:
    """Records outbound events. ``close_after`` closes it once that event is sent."""

    def __init__(self, close_after: Optional[str] = None):
        self.events: List[tuple] = []
        self.closed = False
        self.close_after = close_after

    async def send(self, event: str, payload: Any = None) -> bool:
        if self.closed:
            return False
        self.events.append((event, payload))
        if event == self.close_after:
            self.closed = True
        return True

    @property
    def names(self) -> List[str]:
        return [event for event, _ in self.events]

    def payloads(self, event: str) -> List[Any]:
        return [payload for name, payload in self.events if name == event]


class FakeVision:
    def __init__(self, analysis: Optional[dict] = None):
        self.analysis = analysis or {
            "part_type": "alternator",
            "part_number": "AL-2231",
            "brand": "Bosch",
            "condition": "used",
        }
        self.calls: List[str] = []

    async def analyze_image(self, image_data: str) -> dict:
        self.calls.append(image_data)
        return dict(self.analysis)


@pytest.fixture
def run():
    """Run a coroutine to completion."""
    return asyncio.run


@pytest.fixture
def store():
    """Fresh in-memory store with the demo inventory and persona."""
    memory = MemoryStore()
    asyncio.run(seed_demo_data(memory, runtime_config.persona_id))
    return memory


@pytest.fixture
def empty_store():
    return MemoryStore()


@pytest.fixture
def registry():
    """Registry with every built-in tool, isolated from the process singleton."""
    reg = ToolRegistry()
    register_all_tools(reg)
    return reg


@pytest.fixture
def vision():
    return FakeVision()


@pytest.fixture
def make_orchestrator(store, registry, vision):
    """Build a TurnOrchestrator wired to fakes.

    Returns (orchestrator, channel).
    """

    def _make(model: ScriptedModel, channel: Optional[FakeChannel] = None, **kwargs):
        channel = channel or FakeChannel()
        orchestrator = TurnOrchestrator(
            session=ChatSession(connection_id="test"),
            channel=channel,
            store=store,
            executor=ToolExecutor(registry, store, {"vision": vision}),
            router=ResultRouter(halts=registry.halts_round_trip),
            model_session_factory=model,
            instructions_builder=build_instructions,
            **kwargs,
        )
        return orchestrator, channel

    return _make


@pytest.fixture
def halt_on_out_of_stock():
    """Enable the out-of-stock halt for one test."""
    original = runtime_config.inventory_halt_on_out_of_stock
    runtime_config.inventory_halt_on_out_of_stock = True
    yield
    runtime_config.inventory_halt_on_out_of_stock = original
