"""Chat command router.

This module provides:
    - POST /api/websocket: command endpoint for the polling client
    - GET  /api/websocket: WebSocket upgrade probe (not supported)

The endpoint keeps its historical ``websocket`` path: clients emulate a live
socket by posting one command per request and polling for updates.

Protocol:
    Request body: ``{"type": <command>, "data": {...}, "userId": <id>}``
    Response body: ``{"success": true, "type": <result>, "data": {...}}`` or
    ``{"success": false, "error": <text>, "code": <class>}``

Commands:
    - register, join_room, leave_room
    - send_message, get_messages, edit_message, delete_message
    - search_rooms, create_room, get_rooms, get_joined_rooms
    - get_online_users, get_room_members
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .errors import UnknownCommandError
from .schemas import CommandRequest, CommandResult
from .service import ChatService, get_chat_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


@router.get("/websocket")
async def websocket_probe(request: Request) -> PlainTextResponse:
    """Reject WebSocket upgrades; the protocol runs over POST.

    Returns:
        400 without an ``Upgrade: websocket`` header, 501 with one.
    """
    if request.headers.get("upgrade", "").lower() != "websocket":
        return PlainTextResponse("Expected websocket", status_code=400)
    return PlainTextResponse("WebSocket upgrade not supported", status_code=501)


@router.post("/websocket")
async def handle_command(
    body: CommandRequest,
    chat: ChatService = Depends(get_chat_service),
) -> JSONResponse:
    """Execute one chat command.

    Application errors come back with HTTP 200 and ``success: false``.
    Unknown command types and unexpected server faults return HTTP 500.

    Args:
        body: Command envelope.

    Returns:
        JSONResponse with the command result.
    """
    logger.info(f"API Request: {body.type} (userId={body.userId})")
    try:
        result = chat.dispatcher.dispatch(body)
    except Exception as e:
        logger.exception(f"Command {body.type} failed: {e}")
        return JSONResponse(
            CommandResult.fail("Internal server error").to_wire(),
            status_code=500,
        )

    status_code = 500 if result.code == UnknownCommandError.code else 200
    return JSONResponse(result.to_wire(), status_code=status_code)
