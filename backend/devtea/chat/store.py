"""In-memory conversation store for DevTea chat.

This module owns every piece of chat state for the lifetime of the process:

    - Rooms (seeded defaults plus user-created rooms)
    - Per-conversation message logs, keyed by room id or canonical DM key
    - Client sessions, keyed by user id
    - The durable user -> rooms membership index, which outlives sessions

Conversation keys:
    A room message log is stored under the room id. A direct message log is
    stored under ``dm_key(a, b)``: both user ids sorted and joined with
    ``-dm-``, so either party addresses the same log.

Thread Safety:
    One coarse ``threading.RLock`` guards all state. Callers that perform a
    read-modify-write across several structures (join, send, edit) hold
    ``store.lock`` for the whole sequence; the lock is re-entrant so the
    store's own methods can be called inside it.

Lifecycle:
    Nothing is persisted. A fresh store starts from the seeded rooms and
    their welcome messages.
"""
import logging
import re
import threading
from typing import Callable, Dict, List, Optional, Set, Tuple

from .errors import (
    DuplicateRoomError,
    InvalidCommandError,
    MessageNotFoundError,
    RoomNotFoundError,
    UserNotFoundError,
)
from .schemas import ClientSession, Message, MessageKind, Room, now_ms

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

DM_SEPARATOR = "-dm-"

SYSTEM_USER = "system"

DEFAULT_BOT_NAME = "DevTea Bot"

# (id, name, description)
DEFAULT_ROOMS: List[Tuple[str, str, str]] = [
    ("general", "General", "General discussion for all developers"),
    ("frontend", "Frontend Devs", "React, Vue, Angular, and all things frontend"),
    ("backend", "Backend Devs", "APIs, databases, servers, and backend architecture"),
    ("mobile", "Mobile Development", "iOS, Android, React Native, Flutter discussions"),
    ("devops", "DevOps & Infrastructure", "CI/CD, Docker, Kubernetes, cloud platforms"),
]

# room id -> [(message id, content, age in ms)]
WELCOME_MESSAGES: Dict[str, List[Tuple[str, str, int]]] = {
    "general": [
        (
            "welcome-general-1",
            "Welcome to the General discussion room! 👋 This is where developers "
            "from all backgrounds come together to chat.",
            3_600_000,
        ),
        (
            "welcome-general-2",
            "💡 Tip: You can join/leave rooms, create new ones, and send direct "
            "messages. Use the search to find rooms!",
            3_500_000,
        ),
    ],
    "frontend": [
        (
            "welcome-frontend-1",
            "Welcome to Frontend Devs! 🚀 Share your React, Vue, Angular tips and "
            "discuss the latest in frontend development.",
            3_600_000,
        ),
        (
            "welcome-frontend-2",
            "🔥 Hot topics: Component libraries, state management, performance "
            "optimization, and modern CSS!",
            3_400_000,
        ),
    ],
    "backend": [
        (
            "welcome-backend-1",
            "Welcome to Backend Devs! 🔧 Discuss APIs, databases, server "
            "architecture, and backend best practices.",
            3_600_000,
        ),
        (
            "welcome-backend-2",
            "💾 Popular topics: Microservices, database design, API security, and "
            "scalability patterns!",
            3_300_000,
        ),
    ],
    "mobile": [
        (
            "welcome-mobile-1",
            "Welcome to Mobile Development! 📱 Discuss iOS, Android, React Native, "
            "Flutter, and mobile best practices.",
            3_600_000,
        ),
    ],
    "devops": [
        (
            "welcome-devops-1",
            "Welcome to DevOps & Infrastructure! ⚙️ Share knowledge about CI/CD, "
            "containerization, and cloud platforms.",
            3_600_000,
        ),
    ],
}

_WHITESPACE_RE = re.compile(r"\s+")
_INVALID_ID_CHARS_RE = re.compile(r"[^a-z0-9-]")


# =============================================================================
# Identity rules
# =============================================================================


def derive_room_id(name: str) -> str:
    """Derive a room id from its display name.

    Lowercases, turns each whitespace run into ``-`` and strips everything
    outside ``[a-z0-9-]``. ``"Frontend Devs!!"`` becomes ``"frontend-devs"``.
    """
    slug = _WHITESPACE_RE.sub("-", name.lower())
    return _INVALID_ID_CHARS_RE.sub("", slug)


def dm_key(user_a: str, user_b: str) -> str:
    """Canonical conversation key for a direct message pair.

    Commutative: ``dm_key(a, b) == dm_key(b, a)``.
    """
    return DM_SEPARATOR.join(sorted([user_a, user_b]))


# =============================================================================
# Conversation Store
# =============================================================================


class ConversationStore:
    """Single source of truth for rooms, message logs and sessions.

    Attributes:
        rooms: room id -> Room.
        logs: conversation key -> ordered list of messages (append-only
            apart from edit/delete).
        sessions: user id -> ClientSession.
        memberships: user id -> room ids the user has joined, in join order.
            Kept apart from sessions so membership survives re-registration.
    """

    def __init__(
        self,
        *,
        seed: bool = True,
        bot_name: str = DEFAULT_BOT_NAME,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._lock = threading.RLock()
        self.bot_name = bot_name
        self.clock = clock

        self.rooms: Dict[str, Room] = {}
        self.logs: Dict[str, List[Message]] = {}
        self.sessions: Dict[str, ClientSession] = {}
        self.memberships: Dict[str, List[str]] = {}

        if seed:
            self.seed_default_rooms()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def seed_default_rooms(self) -> None:
        """Install the default rooms and their welcome messages."""
        now = self.clock()
        with self._lock:
            for room_id, name, description in DEFAULT_ROOMS:
                self.rooms[room_id] = Room(
                    id=room_id,
                    name=name,
                    description=description,
                    createdBy=SYSTEM_USER,
                    createdAt=now,
                )
            for room_id, entries in WELCOME_MESSAGES.items():
                self.logs[room_id] = [
                    Message(
                        id=message_id,
                        user=self.bot_name,
                        content=content,
                        timestamp=now - age,
                        type=MessageKind.ROOM,
                        roomId=room_id,
                    )
                    for message_id, content, age in entries
                ]
        logger.info(f"[Store] Initialized {len(self.rooms)} rooms with welcome messages")

    # =========================================================================
    # Rooms
    # =========================================================================

    def create_room(self, name: str, description: str, creator_id: str) -> Room:
        """Create a room whose id is derived from ``name``.

        The creator must have a session; the room starts with the creator as
        its only member and a single welcome message naming the creator.

        Raises:
            UserNotFoundError: The creator has no session.
            InvalidCommandError: The name yields an empty id.
            DuplicateRoomError: The derived id is already taken.
        """
        room_id = derive_room_id(name)
        with self._lock:
            creator = self.get_session(creator_id)
            if not room_id:
                raise InvalidCommandError("Room name must contain letters or digits")
            if room_id in self.rooms:
                logger.warning(f"[Store] Attempt to create existing room: {room_id}")
                raise DuplicateRoomError(room_id)

            now = self.clock()
            room = Room(
                id=room_id,
                name=name,
                description=description or "",
                createdBy=creator_id,
                createdAt=now,
                members={creator_id},
            )
            self.rooms[room_id] = room
            self.logs[room_id] = [
                Message(
                    user=self.bot_name,
                    content=(
                        f"Welcome to {name}! 🎉 This room was created by "
                        f"{creator.username}. {description or 'Start chatting!'}"
                    ),
                    timestamp=now,
                    type=MessageKind.ROOM,
                    roomId=room_id,
                )
            ]
        logger.info(f"[Store] Room created: {room_id} by {creator.username}")
        return room

    def get_room(self, room_id: Optional[str]) -> Room:
        room = self.rooms.get(room_id) if room_id else None
        if room is None:
            raise RoomNotFoundError(room_id or "")
        return room

    def find_room(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def list_rooms(self) -> List[Room]:
        with self._lock:
            return list(self.rooms.values())

    # =========================================================================
    # Message logs
    # =========================================================================

    def append_message(self, key: str, message: Message) -> Message:
        """Append ``message`` to the log for ``key``, creating the log lazily."""
        with self._lock:
            self.logs.setdefault(key, []).append(message)
            count = len(self.logs[key])
        logger.debug(f"[Store] Message {message.id} appended to {key} (total={count})")
        return message

    def list_messages(self, key: str) -> List[Message]:
        """Return a snapshot of the log for ``key``; empty if nothing was sent."""
        with self._lock:
            return list(self.logs.get(key, []))

    def find_message(self, key: str, message_id: str) -> Tuple[int, Message]:
        """Locate a message by linear scan of the ``key`` log.

        Raises:
            MessageNotFoundError: No message with that id in the log.
        """
        with self._lock:
            for index, message in enumerate(self.logs.get(key, [])):
                if message.id == message_id:
                    return index, message
        raise MessageNotFoundError(message_id)

    def replace_message(self, key: str, index: int, message: Message) -> Message:
        with self._lock:
            self.logs[key][index] = message
        return message

    def remove_message(self, key: str, index: int) -> Message:
        with self._lock:
            return self.logs[key].pop(index)

    # =========================================================================
    # Sessions
    # =========================================================================

    def register_session(self, user_id: str, username: str) -> ClientSession:
        """Create or replace the session for ``user_id``.

        The new session starts with the rooms recorded in the durable
        membership index.
        """
        with self._lock:
            session = ClientSession(
                userId=user_id,
                username=username,
                lastSeen=self.clock(),
                joinedRooms=set(self.memberships.get(user_id, [])),
            )
            self.sessions[user_id] = session
        return session

    def get_session(self, user_id: Optional[str]) -> ClientSession:
        session = self.sessions.get(user_id) if user_id else None
        if session is None:
            raise UserNotFoundError(user_id or "")
        return session

    def find_session(self, user_id: Optional[str]) -> Optional[ClientSession]:
        return self.sessions.get(user_id) if user_id else None

    def touch_session(self, user_id: Optional[str]) -> None:
        """Refresh ``lastSeen`` for an existing session; unknown ids are ignored."""
        with self._lock:
            session = self.find_session(user_id)
            if session is not None:
                session.lastSeen = self.clock()

    def list_sessions(self) -> List[ClientSession]:
        with self._lock:
            return list(self.sessions.values())

    # =========================================================================
    # Durable membership index
    # =========================================================================

    def indexed_rooms(self, user_id: str) -> List[str]:
        """Room ids recorded for ``user_id``, oldest join first."""
        with self._lock:
            return list(self.memberships.get(user_id, []))

    def index_add(self, user_id: str, room_id: str) -> None:
        with self._lock:
            rooms = self.memberships.setdefault(user_id, [])
            if room_id not in rooms:
                rooms.append(room_id)

    def index_remove(self, user_id: str, room_id: str) -> None:
        with self._lock:
            rooms = self.memberships.get(user_id)
            if rooms and room_id in rooms:
                rooms.remove(room_id)

    def index_members(self, room_id: str) -> Set[str]:
        """User ids whose durable index contains ``room_id``."""
        with self._lock:
            return {
                user_id for user_id, rooms in self.memberships.items()
                if room_id in rooms
            }

    # =========================================================================
    # Introspection
    # =========================================================================

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "rooms": len(self.rooms),
                "conversations": len(self.logs),
                "messages": sum(len(log) for log in self.logs.values()),
                "sessions": len(self.sessions),
            }
