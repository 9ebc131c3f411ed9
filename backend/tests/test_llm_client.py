"""
Tests for the OpenAI-compatible model session, with the client faked at the
chat.completions level.
"""

import asyncio
import json
from types import SimpleNamespace

import pytest

from errors import ErrorCode, UpstreamModelError
from routers.chat_orchestration import TextFragment, ToolCallFragment, ToolResultFragment, Turn
from services.llm_client import OpenAIModelSession, VisionClient, _ThinkFilter, _translate_history_for_openai


def _chunk(content=None, tool_calls=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def _tool_delta(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


class FakeStream:
    def __init__(self, chunks):
        self.chunks = chunks
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk

    async def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self, *streams):
        self.streams = list(streams)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return self.streams.pop(0)


def _client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


async def _collect(stream):
    return [fragment async for fragment in stream]


class TestTranslateHistory:
    def test_paired_calls_become_tool_messages(self):
        call = ToolCallFragment("get_inventory_status", {"part_name": "faros led"}, "c0")
        result = ToolResultFragment("get_inventory_status", {"success": True}, "c0")
        history = [
            Turn("user", [TextFragment("tienen faros?")]),
            Turn("model", [TextFragment("Reviso."), call, result]),
            Turn("model", [TextFragment("Sí.")]),
            Turn("user", [TextFragment("gracias")]),
        ]
        messages = _translate_history_for_openai("sys", history)

        assert messages[0] == {"role": "system", "content": "sys"}
        assert messages[1] == {"role": "user", "content": "tienen faros?"}
        assert messages[2]["role"] == "assistant"
        assert messages[2]["content"] == "Reviso."
        assert messages[2]["tool_calls"][0]["id"] == "c0"
        assert json.loads(messages[2]["tool_calls"][0]["function"]["arguments"]) == {"part_name": "faros led"}
        assert messages[3] == {"role": "tool", "tool_call_id": "c0", "content": json.dumps({"success": True})}
        assert messages[4] == {"role": "assistant", "content": "Sí."}
        assert messages[5] == {"role": "user", "content": "gracias"}

    def test_unpaired_call_dropped(self):
        history = [Turn("user", [TextFragment("hi")]), Turn("model", [ToolCallFragment("teleport", {}, "x")])]
        messages = _translate_history_for_openai("sys", history)
        assert [m["role"] for m in messages] == ["system", "user"]

    def test_image_on_last_user_turn(self):
        history = [Turn("user", [TextFragment("old")]), Turn("model", [TextFragment("ok")]), Turn("user", [TextFragment("qué es?")])]
        messages = _translate_history_for_openai("sys", history, "data:image/png;base64,AA")
        assert messages[1]["content"] == "old"
        parts = messages[3]["content"]
        assert parts[0] == {"type": "text", "text": "qué es?"}
        assert parts[1]["image_url"]["url"] == "data:image/png;base64,AA"


class TestThinkFilter:
    def test_strips_split_tags(self):
        f = _ThinkFilter()
        out = f.feed("Hola <thi") + f.feed("nk>secret</th") + f.feed("ink> mundo") + f.flush()
        assert out == "Hola  mundo"

    def test_plain_text_passes(self):
        f = _ThinkFilter()
        assert f.feed("a < b") + f.flush() == "a < b"


class TestOpenAIModelSession:
    def test_text_and_tool_call_deltas(self):
        stream = FakeStream([
            _chunk(content="Un "),
            _chunk(content="momento"),
            _chunk(tool_calls=[_tool_delta(0, id="call_a", name="get_inventory_status", arguments='{"part_')]),
            _chunk(tool_calls=[_tool_delta(0, arguments='name": "faros led"}')]),
        ])
        completions = FakeCompletions(stream)
        session = OpenAIModelSession(_client(completions), "chat-model", tools=[{"type": "function"}])

        fragments = asyncio.run(_collect(session.start_stream("sys", [Turn("user", [TextFragment("hola")])])))

        assert fragments == [
            TextFragment("Un "),
            TextFragment("momento"),
            ToolCallFragment("get_inventory_status", {"part_name": "faros led"}, "call_a"),
        ]
        assert stream.closed
        assert completions.requests[0]["tools"] == [{"type": "function"}]
        assert completions.requests[0]["stream"] is True

    def test_resume_sends_tool_result_without_tools(self):
        first = FakeStream([_chunk(tool_calls=[_tool_delta(0, id="c1", name="create_task", arguments='{"title": "x"}')])])
        second = FakeStream([_chunk(content="Tarea creada.")])
        completions = FakeCompletions(first, second)
        session = OpenAIModelSession(_client(completions), "chat-model", tools=[{"type": "function"}])

        async def scenario():
            await _collect(session.start_stream("sys", [Turn("user", [TextFragment("crea tarea")])]))
            return await _collect(session.resume_stream(ToolResultFragment("create_task", {"success": True}, "c1")))

        fragments = asyncio.run(scenario())

        assert fragments == [TextFragment("Tarea creada.")]
        request = completions.requests[1]
        assert "tools" not in request
        assert request["messages"][-2]["tool_calls"][0]["id"] == "c1"
        assert request["messages"][-1] == {"role": "tool", "tool_call_id": "c1", "content": '{"success": true}'}

    def test_missing_call_id_gets_index_id(self):
        stream = FakeStream([_chunk(tool_calls=[_tool_delta(0, name="log_activity", arguments="")])])
        session = OpenAIModelSession(_client(FakeCompletions(stream)), "m")
        fragments = asyncio.run(_collect(session.start_stream("sys", [])))
        assert fragments == [ToolCallFragment("log_activity", {}, "call_0")]


class TestVisionClient:
    def _client(self, content):
        async def create(**kwargs):
            message = SimpleNamespace(content=content)
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])

        return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    def test_parses_part_fields(self):
        vision = VisionClient(self._client('```json\n{"part_type": "alternator", "brand": "Bosch", "extra": 1}\n```'), "vl")
        analysis = asyncio.run(vision.analyze_image("data:image/png;base64,AA"))
        assert analysis == {"part_type": "alternator", "part_number": None, "brand": "Bosch", "condition": None}

    def test_no_json_is_upstream_error(self):
        vision = VisionClient(self._client("I cannot tell."), "vl")
        with pytest.raises(UpstreamModelError) as exc:
            asyncio.run(vision.analyze_image("data:image/png;base64,AA"))
        assert exc.value.code == ErrorCode.LLM_RESPONSE_INVALID
