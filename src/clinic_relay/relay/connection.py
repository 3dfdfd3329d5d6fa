"""WebSocket adapter for the hub's ConnectionHandle protocol."""

import asyncio
import json
from typing import Any

from starlette.websockets import WebSocket, WebSocketState

from clinic_relay.observability.logging import get_logger

logger = get_logger(__name__)

# Close code sent to a socket displaced by a newer registration for its phone
REPLACED_CLOSE_CODE = 4000


class ConnectionClosedError(Exception):
    """Raised when sending on a connection that is already closed."""


class WebSocketConnection:
    """Fire-and-forget sender over a Starlette WebSocket.

    send() only enqueues a frame; run_writer() is the task that actually
    writes to the socket, so hub calls never await the transport.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._outbox: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False
        self._close_code: int | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    def send(self, payload: dict[str, Any]) -> None:
        if self._closed:
            raise ConnectionClosedError("connection closed")
        self._outbox.put_nowait(json.dumps(payload))

    def close(self, code: int = REPLACED_CLOSE_CODE) -> None:
        """Stop accepting frames; the writer closes the socket after flushing."""
        if self._closed:
            return
        self._closed = True
        self._close_code = code
        self._outbox.put_nowait(None)

    def detach(self) -> None:
        """Stop the writer without closing the socket (peer already went away)."""
        if self._closed:
            return
        self._closed = True
        self._outbox.put_nowait(None)

    async def run_writer(self) -> None:
        while True:
            frame = await self._outbox.get()
            if frame is None:
                break
            try:
                await self._websocket.send_text(frame)
            except Exception:
                logger.warning("live connection write failed", exc_info=True)
                self._closed = True
                return

        if self._close_code is not None and self._websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self._websocket.close(code=self._close_code)
            except Exception:
                logger.warning("live connection close failed", exc_info=True)
