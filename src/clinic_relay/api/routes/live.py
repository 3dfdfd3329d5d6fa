"""Live connection endpoint.

Client protocol (JSON text frames):
- {"phoneNumber": "+9715..."} binds this socket to a phone. No acknowledgement.
- {"type": "ping"} is answered with {"type": "pong"}.

Server pushes relay events (see relay.events) unsolicited. A socket that sends
nothing for settings.ws_idle_timeout seconds is closed and unregistered.

Each socket logs under one correlation id for its whole session: the
X-Correlation-ID handshake header if sent, otherwise a generated "ws-<uuid>".
"""

import asyncio
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from clinic_relay.config import RelaySettings
from clinic_relay.errors import InvalidPhoneFormat
from clinic_relay.observability.correlation import (
    CORRELATION_ID_HEADER,
    LIVE_SESSION_PREFIX,
    correlation_scope,
)
from clinic_relay.observability.logging import get_logger
from clinic_relay.observability.redaction import safe_log_context
from clinic_relay.relay.connection import ConnectionClosedError, WebSocketConnection
from clinic_relay.relay.hub import RelayHub

router = APIRouter(tags=["live"])

logger = get_logger(__name__)

IDLE_CLOSE_CODE = 4008


def _handle_control(raw: str, connection: WebSocketConnection, hub: RelayHub) -> None:
    try:
        message = json.loads(raw)
    except ValueError:
        logger.warning("live control message is not json")
        return

    if not isinstance(message, dict):
        logger.warning("live control message is not an object")
        return

    if message.get("type") == "ping":
        connection.send({"type": "pong"})
        return

    if "phoneNumber" in message:
        try:
            hub.register(str(message["phoneNumber"]), connection)
        except InvalidPhoneFormat:
            logger.warning("live registration rejected, invalid phone number")
        return

    logger.info(
        "unknown live control message ignored",
        extra={"extra_fields": safe_log_context(keys=message)},
    )


@router.websocket("/ws")
async def live_connection(websocket: WebSocket) -> None:
    cid = websocket.headers.get(CORRELATION_ID_HEADER)
    # The writer task copies the context, so it must be created inside the scope
    with correlation_scope(cid, prefix=LIVE_SESSION_PREFIX):
        await _run_session(websocket)


async def _run_session(websocket: WebSocket) -> None:
    hub: RelayHub = websocket.app.state.hub
    settings: RelaySettings = websocket.app.state.settings
    idle_timeout = settings.ws_idle_timeout or None

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    writer = asyncio.create_task(connection.run_writer())
    logger.info("live session opened")

    try:
        while not connection.closed:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=idle_timeout)
            except asyncio.TimeoutError:
                logger.info("live connection idle, closing")
                connection.close(code=IDLE_CLOSE_CODE)
                break
            try:
                _handle_control(raw, connection, hub)
            except ConnectionClosedError:
                # Replaced by a newer registration; the writer is closing the socket
                break
    except WebSocketDisconnect:
        connection.detach()
    except Exception:
        logger.exception("live connection failed")
    finally:
        hub.unregister(connection)
        connection.detach()
        await writer
        logger.info("live session closed")
