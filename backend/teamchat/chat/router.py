"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /ws/chat: Real-time team chat
    - GET /chat/{team_id}: Recent message history (chronological)
    - DELETE /chat/message/{message_id}: Soft-delete own message
    - POST /chat/{team_id}/read: Mark messages as read

Every WebSocket frame is ``{"event": name, "data": payload}``.

Protocol Flow:
    1. Client connects with ?token=<jwt>, or sends {event: "connect", auth: {token}}
       as its first frame (a late connect frame after query auth is ignored)
       → Server sends: {event: "connected", data: {userId, userName}}
       → or {event: "connect_error", data: {message}} and closes (1008)
    2. Client sends: {event: "join_team", data: teamId}
       → Others in room: user_joined; caller: active_users
    3. Client sends: {event: "send_message", data: {teamId, text}}
       → Room (incl. sender): receive_message; sender: message_sent
    4. Client sends: typing / stop_typing with the current teamId
       → Others in room: user_typing / user_stop_typing
    5. Client sends: {event: "leave_team", data: teamId}
       → Others in room: user_left
    6. On disconnect → every room the user was present in: user_left
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from teamchat.auth.dependencies import get_current_user
from teamchat.auth.service import Identity
from teamchat.errors import AuthenticationError, ChatValidationError

from .events import Connected, ErrorPayload, parse_connect_frame
from .server import ChatServer

logger = logging.getLogger(__name__)

router = APIRouter()

# 1008 = Policy Violation
WS_POLICY_VIOLATION = 1008


class MarkReadRequest(BaseModel):
    """Request body for marking messages as read."""
    messageIds: Optional[List[str]] = None


def _chat(request: Request) -> ChatServer:
    return request.app.state.chat


@router.get("/chat/{team_id}")
async def get_chat_history(
    team_id: str,
    request: Request,
    before: Optional[datetime] = Query(None, description="Only messages older than this time"),
    limit: Optional[int] = Query(None, ge=1, description="Number of messages to return"),
    user: Identity = Depends(get_current_user),
) -> JSONResponse:
    """Get recent message history for a team, oldest first.

    Example:
        GET /chat/8d0c...e1
        GET /chat/8d0c...e1?before=2026-01-01T10:00:00Z&limit=20
    """
    result = await _chat(request).history.get_history(team_id, user.id, limit=limit, before=before)
    return JSONResponse(result)


@router.delete("/chat/message/{message_id}")
async def delete_message(
    message_id: str,
    request: Request,
    user: Identity = Depends(get_current_user),
) -> JSONResponse:
    """Soft-delete a message sent by the caller."""
    await _chat(request).history.delete_message(message_id, user.id)
    return JSONResponse({"success": True, "message": "Message deleted successfully"})


@router.post("/chat/{team_id}/read")
async def mark_messages_read(
    team_id: str,
    request: Request,
    body: Optional[MarkReadRequest] = None,
    user: Identity = Depends(get_current_user),
) -> JSONResponse:
    """Mark messages of a team as read by the caller."""
    message_ids = body.messageIds if body else None
    await _chat(request).history.mark_read(team_id, user.id, message_ids)
    return JSONResponse({"success": True, "message": "Messages marked as read"})


# Frames that cannot be decoded as a JSON text message
MALFORMED_FRAME_ERRORS = (ValueError, KeyError, TypeError)


async def _receive_connect_token(websocket: WebSocket, timeout: float) -> Optional[str]:
    """Wait for the connect frame and return its ``auth.token``.

    Any other first frame carries no credential and yields None.
    """
    try:
        frame = await asyncio.wait_for(websocket.receive_json(), timeout=timeout)
    except asyncio.TimeoutError:
        return None
    except MALFORMED_FRAME_ERRORS:
        return None
    try:
        return parse_connect_frame(frame)
    except ChatValidationError:
        logger.debug("[WS] First frame was not a connect frame")
        return None


async def _handshake(websocket: WebSocket, chat: ChatServer) -> Optional[Identity]:
    """Authenticate a freshly accepted socket.

    A ``token`` query parameter authenticates the socket immediately;
    otherwise the client's first frame must be the connect frame.

    Returns:
        The identity, or None after the connection has been refused.
    """
    try:
        token = websocket.query_params.get("token")
        if not token:
            token = await _receive_connect_token(
                websocket, chat.settings.chat.handshake_timeout_seconds
            )
        return await chat.authenticator.authenticate(token)
    except AuthenticationError as exc:
        logger.warning(f"[WS] Connection refused: {exc.message}")
        await websocket.send_json({
            "event": "connect_error",
            "data": ErrorPayload(message=f"Authentication error: {exc.message}").model_dump(),
        })
        await websocket.close(code=WS_POLICY_VIOLATION)
        return None


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time team chat.

    Handles the complete chat lifecycle for a single client: handshake,
    event loop and disconnect cleanup.
    """
    chat: ChatServer = websocket.app.state.chat
    await websocket.accept()

    try:
        identity = await _handshake(websocket, chat)
    except WebSocketDisconnect:
        logger.info("[WS] Client left during handshake")
        return
    if identity is None:
        return

    session = chat.open_session(websocket, identity)
    logger.info(f"[WS] User connected: {identity.name} ({identity.id})")

    try:
        await websocket.send_json({
            "event": "connected",
            "data": Connected(userId=identity.id, userName=identity.name).model_dump(),
        })

        # Main event loop
        while True:
            try:
                frame = await websocket.receive_json()
            except MALFORMED_FRAME_ERRORS as exc:
                # Binary or non-JSON frame; the protocol is JSON-only so the connection ends
                logger.warning(f"[WS] Dropping {identity.id}: malformed frame ({exc!r})")
                await websocket.close(code=WS_POLICY_VIOLATION)
                break
            logger.debug("[WS] %s received: event=%s", identity.id,
                         frame.get("event", "?") if isinstance(frame, dict) else "?")
            if isinstance(frame, dict) and frame.get("event") == "connect":
                # Already authenticated through the query string
                continue
            await session.handle_frame(frame)

    except WebSocketDisconnect:
        pass
    finally:
        await session.disconnect()
