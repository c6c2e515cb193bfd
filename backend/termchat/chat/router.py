"""Chat router providing the WebSocket endpoint and the client page.

This module provides:
    - GET /, /index.html: Terminal-style chat client (HTML)
    - WebSocket /ws (also /): Real-time chat messaging

Protocol Flow:
    1. Client connects with ``?token=<join token>`` from ``POST /auth``.
       Missing/unknown token → server sends {type: "error"} and closes (1008).
    2. Client sends: {type: "join", username}
       → Joiner receives: {type: "history", messages: [...]}
       → Everyone receives: {type: "system", message: "<name> joined the room"}
       → Everyone receives: {type: "users", list: [...]}
       Name taken → joiner receives {type: "error"} and may try again.
    3. Client sends: {type: "chat", text}
       → Plain text is broadcast as {type: "chat", username, text, time}
       → Text starting with "/" runs a command (see chat.commands)
    4. On disconnect → Everyone receives the leave notice and new roster.

Anything sent before a successful join, and any payload that is not a valid
frame, is ignored without closing the connection.
"""
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket
from fastapi.responses import HTMLResponse

from termchat.auth.tokens import JoinToken, TokenStore, get_token_store

from .errors import AuthRejectedError
from .manager import SessionManager, get_session_manager
from .protocol import ErrorFrame, encode

logger = logging.getLogger(__name__)

router = APIRouter()

# HTML template directory
TEMPLATES_DIR = Path(__file__).parent / "templates"

AUTH_REQUIRED_MESSAGE = "Auth required: must connect using launcher token"

# 1008 = Policy Violation
AUTH_CLOSE_CODE = 1008


def authenticate(tokens: TokenStore, token: Optional[str]) -> JoinToken:
    """Resolve the connection's join token.

    Raises:
        AuthRejectedError: If the token is missing or was never issued.
    """
    entry = tokens.lookup(token)
    if entry is None:
        raise AuthRejectedError(AUTH_REQUIRED_MESSAGE)
    return entry


@router.get("/", response_class=HTMLResponse)
@router.get("/index.html", response_class=HTMLResponse)
async def chat_page() -> HTMLResponse:
    """Serve the chat client page."""
    try:
        content = (TEMPLATES_DIR / "index.html").read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to load chat page: {e}")
        return HTMLResponse("Error loading page", status_code=500)
    return HTMLResponse(content=content)


@router.websocket("/ws")
@router.websocket("/")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Join token from POST /auth"),
    manager: SessionManager = Depends(get_session_manager),
    tokens: TokenStore = Depends(get_token_store),
) -> None:
    """WebSocket endpoint for the chat room.

    Drives one connection through AwaitingJoin → Active → Closed. Each inbound
    frame is handed to the SessionManager, which processes it synchronously,
    so frames from different clients never interleave.

    Args:
        websocket: The WebSocket connection.
        token: Join token issued by the gate.
        manager: The room's SessionManager.
        tokens: Join-token table.
    """
    await websocket.accept()

    try:
        entry = authenticate(tokens, token)
    except AuthRejectedError as exc:
        logger.warning("[WS] Rejected connection: no valid join token")
        await websocket.send_text(encode(ErrorFrame(message=str(exc))))
        await websocket.close(code=AUTH_CLOSE_CODE)
        return

    connection = manager.open(websocket, entry.model_dump())
    connection.start()
    logger.info(f"[WS] Connection {connection.id[:8]} accepted for pc={entry.pc_name!r}")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            payload = message.get("text")
            if payload is None:
                payload = message.get("bytes")
            if payload is None:
                continue
            manager.handle_message(connection, payload)
    finally:
        manager.leave(connection)
        await connection.stop()
        logger.info(f"[WS] Connection {connection.id[:8]} closed")
