"""
Nyx Chat Streaming - outbound event channel for one WebSocket

Every outbound event is an envelope ``{"event": str, "payload": ...}``.
Events are queued in a bounded buffer and written by a single writer task,
so a slow client never blocks the turn that produces the events. When the
buffer stays full past ``send_timeout`` the channel is marked stalled and the
socket is closed with code 1011; later sends are dropped and the turn
continues for persistence only.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

_CLOSE = object()

# Server error: the client stopped reading
STALLED_CLOSE_CODE = 1011


class ClientChannel:
    def __init__(self, websocket: WebSocket, max_size: int = 256, send_timeout: float = 10.0):
        self.websocket = websocket
        self.send_timeout = send_timeout
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self._writer: Optional[asyncio.Task] = None
        self._abort: Optional[asyncio.Task] = None
        self._closed = False
        self.stalled = False
        self.sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def mark_closed(self) -> None:
        """Stop accepting events (client went away)."""
        self._closed = True

    async def send(self, event: str, payload: Any = None) -> bool:
        """Queue an event. Returns False if the channel is closed or stalled."""
        if self._closed:
            return False
        envelope: Dict[str, Any] = {"event": event, "payload": payload}
        try:
            await asyncio.wait_for(self._queue.put(envelope), self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Client stalled for {self.send_timeout}s, dropping outbound events")
            self.stalled = True
            self._closed = True
            if self._abort is None:
                self._abort = asyncio.create_task(self._close_socket(STALLED_CLOSE_CODE))
            return False
        return True

    async def _close_socket(self, code: int) -> None:
        if self._writer is not None:
            self._writer.cancel()
        try:
            await self.websocket.close(code=code)
        except (RuntimeError, OSError) as e:
            logger.info(f"Could not close stalled WebSocket: {e}")

    async def _write_loop(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                break
            if self._closed and self.stalled:
                continue
            try:
                await self.websocket.send_json(item)
                self.sent += 1
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.info(f"WebSocket send failed, closing channel: {e}")
                self._closed = True
                break

    async def close(self, timeout: float = 5.0) -> None:
        """Flush queued events (bounded by timeout), then stop the writer."""
        self._closed = True
        if self._abort is not None:
            await self._abort
        if self._writer is None:
            return
        if not self._writer.done():
            try:
                self._queue.put_nowait(_CLOSE)
            except asyncio.QueueFull:
                self._writer.cancel()
        _, pending = await asyncio.wait({self._writer}, timeout=timeout)
        if pending:
            logger.warning("Writer did not flush in time")
            self._writer.cancel()
        self._writer = None
