"""Pydantic schemas for the chat command protocol and in-memory state.

Field names use the camelCase spelling of the wire protocol so models can be
dumped straight into JSON responses.
"""
import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


class MessageKind(str, Enum):
    """Addressing mode of a message.

    Attributes:
        ROOM: Sent to a topic room, stored under the room id.
        DM: Direct message, stored under the canonical DM key.
    """
    ROOM = "room"
    DM = "dm"


class CommandType(str, Enum):
    """Command discriminators accepted by the command endpoint."""
    REGISTER = "register"
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    SEND_MESSAGE = "send_message"
    GET_MESSAGES = "get_messages"
    EDIT_MESSAGE = "edit_message"
    DELETE_MESSAGE = "delete_message"
    SEARCH_ROOMS = "search_rooms"
    CREATE_ROOM = "create_room"
    GET_ROOMS = "get_rooms"
    GET_JOINED_ROOMS = "get_joined_rooms"
    GET_ONLINE_USERS = "get_online_users"
    GET_ROOM_MEMBERS = "get_room_members"


class Message(BaseModel):
    """A chat message stored in a conversation log.

    Attributes:
        id: Opaque unique identifier (UUID4 string).
        user: Author username captured when the message was sent.
        content: Message text.
        timestamp: Creation time in milliseconds since epoch.
        edited: True once the content has been replaced by an edit.
        type: Room or direct message.
        roomId: Target room for room messages.
        recipientId: Target user id for direct messages.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user: str
    content: str
    timestamp: int = Field(default_factory=now_ms)
    edited: bool = False
    type: MessageKind
    roomId: Optional[str] = None
    recipientId: Optional[str] = None


class Room(BaseModel):
    """A topic room and its member set."""
    id: str
    name: str
    description: str = ""
    createdBy: str
    createdAt: int = Field(default_factory=now_ms)
    members: Set[str] = Field(default_factory=set)
    isPrivate: bool = False
    isPublic: bool = True

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["members"] = sorted(self.members)
        data["memberCount"] = len(self.members)
        return data


class ClientSession(BaseModel):
    """Ephemeral per-user session created by ``register``."""
    userId: str
    username: str
    currentRoom: Optional[str] = None
    lastSeen: int = Field(default_factory=now_ms)
    joinedRooms: Set[str] = Field(default_factory=set)


class RoomSummary(BaseModel):
    """Room as shown in listings and search results."""
    id: str
    name: str
    description: str
    memberCount: int
    isMember: bool
    isJoined: Optional[bool] = None


class RoomMember(BaseModel):
    userId: str
    username: str
    isOnline: bool


class OnlineUser(BaseModel):
    userId: str
    username: str
    currentRoom: Optional[str] = None
    joinedRooms: List[str] = Field(default_factory=list)


class CommandRequest(BaseModel):
    """Envelope posted by the client for every command.

    ``type`` stays a plain string so unknown commands reach the dispatcher
    and get a structured error instead of a validation failure.
    """
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    userId: Optional[str] = None


class CommandResult(BaseModel):
    """Typed result returned for every command.

    Successful results carry ``type`` and ``data``; failures carry ``error``
    and, for application errors, a machine readable ``code``.
    """
    success: bool
    type: Optional[str] = None
    data: Optional[Any] = None
    error: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def ok(cls, type_: str, data: Any) -> "CommandResult":
        return cls(success=True, type=type_, data=data)

    @classmethod
    def fail(cls, error: str, code: Optional[str] = None) -> "CommandResult":
        return cls(success=False, error=error, code=code)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
