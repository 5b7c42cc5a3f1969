"""Public room listing.

Endpoints:
    GET /api/rooms - Public rooms with their member counts
"""
import logging

from fastapi import APIRouter, Depends

from devtea.chat.service import ChatService, get_chat_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rooms"])


@router.get("/rooms")
async def list_public_rooms(chat: ChatService = Depends(get_chat_service)) -> dict:
    """List public rooms from the shared chat store.

    Returns:
        ``{"rooms": [{id, name, description, memberCount}]}``
    """
    rooms = [
        {
            "id": room.id,
            "name": room.name,
            "description": room.description,
            "memberCount": len(room.members),
        }
        for room in chat.store.list_rooms()
        if not room.isPrivate
    ]
    return {"rooms": rooms}
