"""Pydantic schemas for the account bootstrap module."""
from typing import Optional

from pydantic import BaseModel, Field

from devtea.chat.schemas import now_ms


class UserCreate(BaseModel):
    """Request body for creating a user from an identity provider profile."""
    email: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    picture: Optional[str] = None


class UserDelete(BaseModel):
    userId: str = Field(..., min_length=1)


class UserRecord(BaseModel):
    """Stored user identity.

    Attributes:
        id: Stable user id (UUID4 string) used by the chat protocol.
        username: Unique handle; collisions get a numeric suffix.
        userCode: Short uppercase code users can share to be found.
    """
    id: str
    email: str
    name: str
    username: str
    avatar: Optional[str] = None
    userCode: str
    createdAt: int = Field(default_factory=now_ms)


class UserSearchHit(BaseModel):
    id: str
    username: str
    name: str
    userCode: str
    avatar: Optional[str] = None
