"""WebSocket endpoint — one socket per browser tab, any number of rooms.

Learn: each client connects to /ws?token=JWT. The handler:
1. Optionally authenticates the token (required outside development)
2. Registers the connection with the realtime service
3. Runs a reader task (frames → handlers, strictly in order) and a
   writer task (outbound queue → socket)
4. On disconnect, leaves every room and publishes userDisconnected

Frames are JSON: {"type": "<event>", "data": {...}}.
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from huddle.auth.jwt import TokenError, verify_token
from huddle.config import settings
from huddle.realtime.handlers import EventHandlers
from huddle.realtime.registry import Connection

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """Real-time socket for chat, documents, task boards and notifications."""
    # ── Authentication ──────────────────────────────────────
    token = websocket.query_params.get("token")
    token_subject = None

    if not token and settings.token_required:
        await websocket.close(code=4001, reason="Authentication required")
        return

    if token:
        try:
            token_subject = verify_token(token).get("sub")
        except TokenError:
            await websocket.close(code=4001, reason="Invalid or expired token")
            return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()

    handlers: EventHandlers = websocket.app.state.handlers
    conn = handlers.service.connect(token_subject=token_subject)
    structlog.contextvars.bind_contextvars(connection_id=conn.id)
    logger.info("ws.connected", authenticated=token_subject is not None)

    reader = asyncio.create_task(_read_frames(websocket, conn, handlers))
    writer = asyncio.create_task(_write_frames(websocket, conn))

    try:
        await asyncio.wait([reader, writer], return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (reader, writer):
            task.cancel()
        await handlers.disconnect(conn)
        await asyncio.gather(reader, writer, return_exceptions=True)
        if websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError:
                pass
        structlog.contextvars.unbind_contextvars("connection_id")


async def _read_frames(
    websocket: WebSocket, conn: Connection, handlers: EventHandlers
) -> None:
    """Feed client frames to the handlers one at a time."""
    try:
        while True:
            text = await websocket.receive_text()
            try:
                frame = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("ws.invalid_frame", reason="not json")
                continue
            if not isinstance(frame, dict) or "type" not in frame:
                logger.warning("ws.invalid_frame", reason="missing type")
                continue

            if frame["type"] == "ping":
                conn.enqueue({"type": "pong"})
                continue

            await handlers.handle(conn, frame["type"], frame.get("data"))
    except (WebSocketDisconnect, asyncio.CancelledError):
        pass


async def _write_frames(websocket: WebSocket, conn: Connection) -> None:
    """Drain the connection's outbound queue onto the socket."""
    try:
        while True:
            frame = await conn.outbox.get()
            await websocket.send_json(frame)
    except (WebSocketDisconnect, RuntimeError, OSError, asyncio.CancelledError):
        # Socket went away mid-flush; queued frames are dropped.
        pass
