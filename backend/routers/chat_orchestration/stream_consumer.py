"""
Nyx Stream Consumer - splits one model stream into relayed text and a tool call

Text fragments go to the ``on_text`` callback as they arrive. The first tool
call is captured for execution; any later ones are kept on the result (and
persisted with the turn) but never executed. The stream is always drained or
closed before ``consume`` returns, including on error and cancellation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from errors import UpstreamModelError

from .fragments import Fragment, TextFragment, ToolCallFragment, ToolResultFragment, merge_text

logger = logging.getLogger(__name__)


@dataclass
class StreamResult:
    fragments: List[Fragment] = field(default_factory=list)
    tool_call: Optional[ToolCallFragment] = None
    extra_tool_calls: List[ToolCallFragment] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(f.value for f in self.fragments if isinstance(f, TextFragment))

    def turn_content(self) -> List[Fragment]:
        """Fragments for the persisted model turn, adjacent text merged."""
        return merge_text(self.fragments)


class StreamConsumer:
    """Consumes one fragment stream.

    ``result`` is filled in progressively, so a caller that catches an error
    from ``consume`` can still persist what arrived before the failure.
    """

    def __init__(self, on_text: Callable[[str], Awaitable[object]], idle_timeout: Optional[float] = None):
        self._on_text = on_text
        self.idle_timeout = idle_timeout
        self.result = StreamResult()

    async def consume(self, stream: AsyncIterator[Fragment], detect_tool_calls: bool = True) -> StreamResult:
        iterator = stream.__aiter__()
        finished = False
        try:
            while True:
                try:
                    if self.idle_timeout:
                        fragment = await asyncio.wait_for(iterator.__anext__(), self.idle_timeout)
                    else:
                        fragment = await iterator.__anext__()
                except StopAsyncIteration:
                    finished = True
                    break
                except asyncio.TimeoutError as e:
                    raise UpstreamModelError(
                        "Model stream stalled",
                        details=f"No fragment for {self.idle_timeout}s",
                        error_type="timeout",
                    ) from e

                await self._handle(fragment, detect_tool_calls)
        finally:
            if not finished:
                aclose = getattr(iterator, "aclose", None)
                if aclose is not None:
                    await aclose()

        return self.result

    async def _handle(self, fragment: Fragment, detect_tool_calls: bool) -> None:
        if isinstance(fragment, TextFragment):
            if fragment.value:
                self.result.fragments.append(fragment)
                await self._on_text(fragment.value)
        elif isinstance(fragment, ToolCallFragment):
            self.result.fragments.append(fragment)
            if detect_tool_calls and self.result.tool_call is None:
                self.result.tool_call = fragment
            else:
                logger.warning(f"Ignoring extra tool call: {fragment.name}")
                self.result.extra_tool_calls.append(fragment)
        elif isinstance(fragment, ToolResultFragment):
            # Results only come from our side of the loop
            logger.warning(f"Model stream yielded a tool result for {fragment.name}, dropping it")
        else:
            raise UpstreamModelError("Model stream yielded an unknown fragment", error_type="invalid")
