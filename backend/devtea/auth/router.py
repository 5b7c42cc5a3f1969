"""Account bootstrap endpoints (mock Google sign-in).

Endpoints:
    POST   /api/auth/google          - Create a user from a profile
    GET    /api/auth/google?search=  - Search users by username, code or name
    DELETE /api/auth/google          - Delete a user
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from .schemas import UserCreate, UserDelete, UserSearchHit
from .service import UserDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.users


@router.post("/google")
async def create_user(
    body: UserCreate,
    users: UserDirectory = Depends(get_user_directory),
) -> dict:
    """Create a user from an identity-provider profile.

    Returns:
        ``{"user": {...}}`` with id, username and userCode assigned.
    """
    user = users.create(body.email, body.name, body.picture)
    return {"user": user.model_dump()}


@router.get("/google")
async def search_users(
    search: Optional[str] = Query(None, description="Substring to match"),
    users: UserDirectory = Depends(get_user_directory),
) -> dict:
    """Search users; an empty query returns no users."""
    hits = users.search(search or "")
    return {"users": [UserSearchHit(**user.model_dump()).model_dump() for user in hits]}


@router.delete("/google")
async def delete_user(
    body: UserDelete,
    users: UserDirectory = Depends(get_user_directory),
) -> JSONResponse:
    """Delete a user by id.

    Returns:
        ``{"success": true}`` or 404 if the user is unknown.
    """
    if users.delete(body.userId):
        return JSONResponse({"success": True})
    return JSONResponse({"error": "User not found"}, status_code=404)
