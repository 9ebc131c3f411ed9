"""
Tests for StreamConsumer: text relay, tool-call capture, stream cleanup.
"""

import asyncio

import pytest

from errors import ErrorCode, UpstreamModelError
from routers.chat_orchestration import StreamConsumer, TextFragment, ToolCallFragment, ToolResultFragment


class TrackedStream:
    """Async generator wrapper that records whether it was finalized."""

    def __init__(self, items, delay=0.0):
        self.items = items
        self.delay = delay
        self.finalized = False

    async def __call__(self):
        try:
            for item in self.items:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield item
        finally:
            self.finalized = True


def _consume(stream, detect_tool_calls=True, idle_timeout=None, on_text=None):
    relayed = []

    async def default_on_text(text):
        relayed.append(text)

    consumer = StreamConsumer(on_text or default_on_text, idle_timeout)

    async def scenario():
        return await consumer.consume(stream(), detect_tool_calls=detect_tool_calls)

    return asyncio.run(scenario()), relayed, consumer


def test_text_is_relayed_in_order():
    stream = TrackedStream([TextFragment("Hola, "), TextFragment(""), TextFragment("sí tenemos.")])
    result, relayed, _ = _consume(stream)
    assert relayed == ["Hola, ", "sí tenemos."]
    assert result.text == "Hola, sí tenemos."
    assert result.tool_call is None
    assert result.turn_content() == [TextFragment("Hola, sí tenemos.")]
    assert stream.finalized


def test_first_tool_call_captured_extra_kept():
    first = ToolCallFragment("get_inventory_status", {"part_name": "faros led"}, "c0")
    second = ToolCallFragment("log_activity", {"description": "x"}, "c1")
    stream = TrackedStream([TextFragment("Checking"), first, second])
    result, _, _ = _consume(stream)
    assert result.tool_call == first
    assert result.extra_tool_calls == [second]
    assert result.turn_content() == [TextFragment("Checking"), first, second]


def test_detection_off_never_captures():
    call = ToolCallFragment("create_task", {"title": "x"})
    result, _, _ = _consume(TrackedStream([call]), detect_tool_calls=False)
    assert result.tool_call is None
    assert result.extra_tool_calls == [call]


def test_tool_results_from_model_are_dropped():
    result, _, _ = _consume(TrackedStream([ToolResultFragment("create_task", {"success": True})]))
    assert result.fragments == []


def test_idle_timeout_raises_and_closes():
    stream = TrackedStream([TextFragment("late")], delay=1.0)
    with pytest.raises(UpstreamModelError) as exc:
        _consume(stream, idle_timeout=0.05)
    assert exc.value.code == ErrorCode.LLM_TIMEOUT
    assert stream.finalized


def test_stream_closed_when_callback_fails():
    stream = TrackedStream([TextFragment("a"), TextFragment("b"), TextFragment("c")])

    async def failing_on_text(text):
        raise RuntimeError("socket gone")

    with pytest.raises(RuntimeError):
        _consume(stream, on_text=failing_on_text)
    assert stream.finalized


def test_partial_result_available_after_failure():
    async def broken():
        yield TextFragment("partial ")
        raise UpstreamModelError("Model stream failed", error_type="stream")

    relayed = []

    async def on_text(text):
        relayed.append(text)

    consumer = StreamConsumer(on_text)
    with pytest.raises(UpstreamModelError):
        asyncio.run(consumer.consume(broken()))
    assert relayed == ["partial "]
    assert consumer.result.text == "partial "
