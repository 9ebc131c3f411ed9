"""
LLM Client - model sessions over any OpenAI-compatible chat endpoint.

A ModelSession streams Fragments for one conversation turn:
    start_stream(instructions, history, image_data) -> first response
    resume_stream(tool_result)                      -> second response

Key translations:
- History: Turn/Fragment log -> OpenAI messages (tool_call + tool_result pairs
  become assistant tool_calls + tool messages; unpaired calls are dropped)
- Vision: data URL image on the current user message -> content:[{type:"image_url"}]
- Streaming: ChatCompletionChunk deltas -> TextFragment; tool-call deltas are
  accumulated by index and emitted as ToolCallFragment at end of stream
- Thinking: <think>...</think> inline tags are stripped from the text stream
"""

import json
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import httpx
from openai import APIError, AsyncOpenAI

from errors import UpstreamModelError
from logging_config import log_model_call
from routers.chat_orchestration.fragments import (
    ROLE_MODEL,
    Fragment,
    TextFragment,
    ToolCallFragment,
    ToolResultFragment,
    Turn,
)
from services.json_repair import parse_json_response, parse_tool_arguments

logger = logging.getLogger(__name__)


class ModelSession(Protocol):
    """One logical conversation with the model.

    Both methods return lazy, finite, non-restartable fragment streams.
    """

    def start_stream(
        self, instructions: str, history: List[Turn], image_data: Optional[str] = None
    ) -> AsyncIterator[Fragment]: ...

    def resume_stream(self, result: ToolResultFragment) -> AsyncIterator[Fragment]: ...


def _translate_history_for_openai(
    instructions: str, history: List[Turn], image_data: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Translate the turn log to OpenAI chat messages.

    The image (a data URL) is attached to the last user turn.
    """
    messages: List[Dict[str, Any]] = [{"role": "system", "content": instructions}]

    last_user = max((i for i, t in enumerate(history) if t.role != ROLE_MODEL), default=-1)

    for index, turn in enumerate(history):
        if turn.role != ROLE_MODEL:
            if index == last_user and image_data:
                parts: List[Dict[str, Any]] = []
                if turn.text:
                    parts.append({"type": "text", "text": turn.text})
                parts.append({"type": "image_url", "image_url": {"url": image_data}})
                messages.append({"role": "user", "content": parts})
            else:
                messages.append({"role": "user", "content": turn.text})
            continue

        answered = {f.call_id or f.name for f in turn.content if isinstance(f, ToolResultFragment)}
        called = set()
        pending_text = ""
        for i, fragment in enumerate(turn.content):
            if isinstance(fragment, TextFragment):
                pending_text += fragment.value
            elif isinstance(fragment, ToolCallFragment):
                key = fragment.call_id or fragment.name
                if key not in answered or key in called:
                    continue
                called.add(key)
                messages.append({
                    "role": "assistant",
                    "content": pending_text or None,
                    "tool_calls": [{
                        "id": key,
                        "type": "function",
                        "function": {"name": fragment.name, "arguments": json.dumps(fragment.arguments)},
                    }],
                })
                pending_text = ""
            elif isinstance(fragment, ToolResultFragment):
                key = fragment.call_id or fragment.name
                if key not in called:
                    continue
                messages.append({
                    "role": "tool",
                    "tool_call_id": key,
                    "content": json.dumps(fragment.result, default=str),
                })
        if pending_text:
            messages.append({"role": "assistant", "content": pending_text})

    return messages


class _ThinkFilter:
    """Strips <think>...</think> blocks from streamed text.

    Holds back a tail short enough to contain a partial tag.
    """

    TAG_OPEN = "<think>"
    TAG_CLOSE = "</think>"

    def __init__(self):
        self.in_think = False
        self.buffer = ""

    def feed(self, chunk: str) -> str:
        self.buffer += chunk
        out = ""
        while self.buffer:
            if self.in_think:
                close_idx = self.buffer.find(self.TAG_CLOSE)
                if close_idx >= 0:
                    self.buffer = self.buffer[close_idx + len(self.TAG_CLOSE):]
                    self.in_think = False
                elif len(self.buffer) > len(self.TAG_CLOSE):
                    self.buffer = self.buffer[-(len(self.TAG_CLOSE) - 1):]
                    break
                else:
                    break
            else:
                open_idx = self.buffer.find(self.TAG_OPEN)
                if open_idx >= 0:
                    out += self.buffer[:open_idx]
                    self.buffer = self.buffer[open_idx + len(self.TAG_OPEN):]
                    self.in_think = True
                elif "<" in self.buffer[-(len(self.TAG_OPEN) - 1):]:
                    # Possible partial tag at the end
                    safe = self.buffer[:-(len(self.TAG_OPEN) - 1)]
                    out += safe
                    self.buffer = self.buffer[len(safe):]
                    break
                else:
                    out += self.buffer
                    self.buffer = ""
        return out

    def flush(self) -> str:
        rest = "" if self.in_think else self.buffer
        self.buffer = ""
        return rest


class OpenAIModelSession:
    """ModelSession over AsyncOpenAI chat.completions streaming."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        tools: Optional[List[Dict[str, Any]]] = None,
        params: Optional[Dict[str, Any]] = None,
    ):
        self._client = client
        self.model = model
        self._tools = tools or None
        self._params = params or {}
        self._messages: List[Dict[str, Any]] = []
        self._last_text = ""
        self._last_calls: List[ToolCallFragment] = []

    async def start_stream(
        self, instructions: str, history: List[Turn], image_data: Optional[str] = None
    ) -> AsyncIterator[Fragment]:
        self._messages = _translate_history_for_openai(instructions, history, image_data)
        async for fragment in self._stream(self._messages, self._tools):
            yield fragment

    async def resume_stream(self, result: ToolResultFragment) -> AsyncIterator[Fragment]:
        call = next(
            (c for c in self._last_calls if c.call_id == result.call_id),
            ToolCallFragment(result.name, {}, result.call_id),
        )
        call_id = call.call_id or call.name
        self._messages = self._messages + [
            {
                "role": "assistant",
                "content": self._last_text or None,
                "tool_calls": [{
                    "id": call_id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }],
            },
            {"role": "tool", "tool_call_id": call_id, "content": json.dumps(result.result, default=str)},
        ]
        # No tools on the second call: single hop only
        async for fragment in self._stream(self._messages, None):
            yield fragment

    async def _stream(
        self, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]]
    ) -> AsyncIterator[Fragment]:
        kwargs: Dict[str, Any] = {"model": self.model, "messages": messages, **self._params}
        if tools:
            kwargs["tools"] = tools

        self._last_text = ""
        self._last_calls = []
        purpose = "chat" if tools else "resume"
        log_model_call(logger, self.model, purpose)
        started = time.time()

        try:
            stream = await self._client.chat.completions.create(stream=True, **kwargs)
        except APIError as e:
            raise UpstreamModelError("Model request failed", str(e), model=self.model) from e
        except httpx.HTTPError as e:
            raise UpstreamModelError("Model request failed", str(e), model=self.model, error_type="stream") from e

        think = _ThinkFilter()
        calls: Dict[int, Dict[str, str]] = {}
        try:
            async for chunk in stream:
                delta = chunk.choices[0].delta if chunk.choices else None
                if not delta:
                    continue

                if delta.content:
                    text = think.feed(delta.content)
                    if text:
                        self._last_text += text
                        yield TextFragment(text)

                for tc in delta.tool_calls or []:
                    slot = calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function:
                        if tc.function.name:
                            slot["name"] += tc.function.name
                        if tc.function.arguments:
                            slot["arguments"] += tc.function.arguments
        except APIError as e:
            raise UpstreamModelError("Model stream failed", str(e), model=self.model, error_type="stream") from e
        except httpx.HTTPError as e:
            raise UpstreamModelError("Model stream failed", str(e), model=self.model, error_type="stream") from e
        finally:
            await stream.close()

        rest = think.flush()
        if rest:
            self._last_text += rest
            yield TextFragment(rest)

        for index in sorted(calls):
            slot = calls[index]
            if not slot["name"]:
                logger.warning(f"Dropping nameless tool call at index {index}")
                continue
            call = ToolCallFragment(
                name=slot["name"],
                arguments=parse_tool_arguments(slot["arguments"]),
                call_id=slot["id"] or f"call_{index}",
            )
            self._last_calls.append(call)
            yield call

        log_model_call(logger, self.model, purpose, time.time() - started)


# Shared client, one per process
_client: Optional[AsyncOpenAI] = None


def get_openai_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        from config import runtime_config

        _client = AsyncOpenAI(
            base_url=runtime_config.llm_base_url,
            api_key=runtime_config.llm_api_key,
            timeout=runtime_config.llm_stream_timeout,
        )
    return _client


async def close_openai_client() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None


def create_model_session(tools: Optional[List[Dict[str, Any]]] = None) -> OpenAIModelSession:
    """Build a chat ModelSession from runtime config."""
    from config import runtime_config

    return OpenAIModelSession(
        get_openai_client(),
        runtime_config.model_chat,
        tools=tools,
        params=runtime_config.get_llm_params(),
    )


class VisionClient:
    """Identifies auto parts in photos with the vision model."""

    PROMPT = (
        "Identify the auto part in this image. Answer with a JSON object only, with the keys "
        '"part_type", "part_number", "brand" and "condition". Use null for anything you cannot read.'
    )

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        from config import runtime_config

        self._client = client or get_openai_client()
        self.model = model or runtime_config.model_vision

    async def analyze_image(self, image_data: str) -> Dict[str, Any]:
        """Run the vision model on a data URL image.

        Raises:
            UpstreamModelError: request failed or the answer held no JSON object
        """
        from config import runtime_config

        log_model_call(logger, self.model, "vision")
        started = time.time()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self.PROMPT},
                        {"type": "image_url", "image_url": {"url": image_data}},
                    ],
                }],
                temperature=0.1,
                timeout=runtime_config.vision_timeout,
            )
        except APIError as e:
            raise UpstreamModelError("Vision request failed", str(e), model=self.model) from e

        raw = (response.choices[0].message.content or "") if response.choices else ""
        log_model_call(logger, self.model, "vision", time.time() - started)

        parsed = parse_json_response(raw)
        if not isinstance(parsed, dict):
            raise UpstreamModelError(
                "Vision model returned no part data", raw[:200], model=self.model, error_type="invalid"
            )
        return {key: parsed.get(key) for key in ("part_type", "part_number", "brand", "condition")}


async def check_llm_health(timeout: float = 3.0) -> bool:
    """Check the OpenAI-compatible server's /models endpoint."""
    from config import runtime_config

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(
                f"{runtime_config.llm_base_url.rstrip('/')}/models",
                headers={"Authorization": f"Bearer {runtime_config.llm_api_key}"},
            )
            return resp.status_code == 200
    except httpx.HTTPError:
        return False
