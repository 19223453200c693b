"""Livechat REST API and room stream.

Endpoints:
    POST /api/v1/livechat/visitor                   - Register or update a visitor
    GET  /api/v1/livechat/room                      - Get the open room, opening one if needed
    POST /api/v1/livechat/room.close                - Close a room
    GET  /api/v1/livechat/messages.history/{rid}    - Room history, oldest first
    WS   /ws/livechat/{rid}?token=...               - Live messages of a room
"""
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, WebSocket, WebSocketDisconnect

from . import responses
from .manager import manager
from .messages import DEFAULT_HISTORY_LIMIT, MessageService
from .rooms import RoomRepository
from .schemas import CloseRoomRequest, RegisterVisitorRequest
from .visitors import VisitorRepository
from .widget import get_source_type

logger = logging.getLogger(__name__)

router = APIRouter(tags=["livechat"])

# WebSocket close code for a room the token cannot access
WS_CLOSE_UNAUTHORIZED = 4401


@router.post("/api/v1/livechat/visitor")
async def register_visitor(body: RegisterVisitorRequest):
    """Register a visitor token, or update the name/email of a known one."""
    visitor = VisitorRepository().register(
        token=body.visitor.token,
        name=body.visitor.name,
        email=body.visitor.email,
    )
    return responses.success(
        {"visitor": visitor.model_dump(mode="json", by_alias=True, exclude_none=True)}
    )


@router.get("/api/v1/livechat/room")
async def get_room(
    request: Request,
    token: str = Query(..., min_length=1),
    rid: Optional[str] = Query(None),
):
    """Return the visitor's open room, opening a new one if needed.

    With ``rid`` the room must be open and belong to the visitor.
    """
    visitor = VisitorRepository().get_by_token(token)
    if visitor is None:
        return responses.failure("invalid-token")

    rooms = RoomRepository()
    if rid:
        room = rooms.find_one_open_by_room_id_and_visitor_token(rid, token)
        if room is None:
            return responses.failure("invalid-room")
        new_room = False
    else:
        room = rooms.find_open_by_visitor_token(token)
        new_room = room is None
        if new_room:
            room = rooms.create(visitor, get_source_type(request.headers))

    return responses.success({
        "room": room.model_dump(mode="json", by_alias=True, exclude_none=True),
        "newRoom": new_room,
    })


@router.post("/api/v1/livechat/room.close")
async def close_room(body: CloseRoomRequest):
    """Close a visitor's open room and disconnect its subscribers."""
    if VisitorRepository().get_by_token(body.token) is None:
        return responses.failure("invalid-token")
    if not RoomRepository().close(body.rid, body.token):
        return responses.failure("room-closed")

    await manager.broadcast({"type": "room_closed", "rid": body.rid}, body.rid)
    manager.clear_room(body.rid)
    return responses.success({"rid": body.rid, "comment": None})


@router.get("/api/v1/livechat/messages.history/{rid}")
async def messages_history(
    rid: str,
    token: str = Query(..., min_length=1),
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1),
):
    """Room history for the visitor that owns the room."""
    room = RoomRepository().find_one_by_id(rid)
    if room is None or room.v.token != token:
        return responses.unauthorized()

    messages = MessageService().history(rid, limit=limit)
    return responses.success({"messages": [m.to_response() for m in messages]})


@router.websocket("/ws/livechat/{rid}")
async def room_stream(websocket: WebSocket, rid: str, token: str = ""):
    """Stream messages of an open room to its visitor.

    The server only pushes; anything the client sends is ignored.
    """
    room = RoomRepository().find_one_open_by_room_id_and_visitor_token(rid, token)
    if room is None:
        logger.warning(f"[WS] Rejected subscription to room {rid}")
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await manager.connect(websocket, rid)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"[WS] Subscriber left room {rid}")
    finally:
        manager.disconnect(websocket, rid)
