"""Message operations: send, read, edit, delete, plus room queries.

Ownership:
    Edit and delete compare the requester's *current* session username with
    the ``user`` string stored on the message when it was sent. The check
    runs at call time against live session state, so renaming a session
    changes what that user may edit.

Addressing:
    Room messages live under the room id and require the room to exist.
    Direct messages live under ``dm_key(sender, recipient)`` and are never
    existence-checked: a DM conversation exists once its log is non-empty.
"""
import logging
from typing import List, Optional, Tuple

from .errors import InvalidCommandError, UnauthorizedError
from .membership import MembershipManager
from .schemas import (
    Message,
    MessageKind,
    OnlineUser,
    Room,
    RoomMember,
    RoomSummary,
)
from .store import ConversationStore, dm_key

logger = logging.getLogger(__name__)

DEFAULT_ONLINE_WINDOW_SECONDS = 300


class MessageEngine:
    """Applies message mutations and room queries to a ConversationStore."""

    def __init__(
        self,
        store: ConversationStore,
        membership: MembershipManager,
        online_window_seconds: int = DEFAULT_ONLINE_WINDOW_SECONDS,
    ) -> None:
        self.store = store
        self.membership = membership
        self.online_window_ms = online_window_seconds * 1000

    # =========================================================================
    # Mutations
    # =========================================================================

    def send(
        self,
        user_id: str,
        content: str,
        kind: MessageKind,
        room_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
        username: Optional[str] = None,
    ) -> Message:
        """Append a new message from ``user_id``.

        Room messages auto-join the sender. The author snapshot is
        ``username`` when given, else the session's current username.

        Raises:
            UserNotFoundError: Sender has no session.
            RoomNotFoundError: Room message to an unknown room.
            InvalidCommandError: Missing room id / recipient id.
        """
        with self.store.lock:
            session = self.store.get_session(user_id)
            message = Message(
                user=username or session.username,
                content=content,
                timestamp=self.store.clock(),
                type=kind,
                roomId=room_id,
                recipientId=recipient_id,
            )

            if kind == MessageKind.ROOM:
                if not room_id:
                    raise InvalidCommandError("Missing roomId for room message")
                self.store.get_room(room_id)
                self.membership.auto_join_on_activity(user_id, room_id)
                key = room_id
            else:
                if not recipient_id:
                    raise InvalidCommandError("Missing recipientId for DM")
                key = dm_key(user_id, recipient_id)

            self.store.append_message(key, message)

        if kind == MessageKind.ROOM:
            logger.info(f"[Messages] {session.username} -> room {room_id}: {message.id}")
        else:
            logger.info(f"[Messages] DM {user_id} -> {recipient_id}: {message.id}")
        return message

    def edit(
        self,
        user_id: str,
        message_id: str,
        content: str,
        room_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> Message:
        """Replace a message's content and mark it edited. No history is kept.

        Raises:
            MessageNotFoundError: No such message in the target log.
            UnauthorizedError: Requester's current username is not the author.
        """
        key = self._target_key(user_id, room_id, recipient_id)
        with self.store.lock:
            index, message = self.store.find_message(key, message_id)
            self._authorize(user_id, message)
            updated = message.model_copy(update={"content": content, "edited": True})
            self.store.replace_message(key, index, updated)
        logger.info(f"[Messages] Message {message_id} edited in {key}")
        return updated

    def delete(
        self,
        user_id: str,
        message_id: str,
        room_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> str:
        """Remove a message from its log. No tombstone is left.

        Returns:
            The deleted message id.

        Raises:
            MessageNotFoundError: No such message in the target log.
            UnauthorizedError: Requester's current username is not the author.
        """
        key = self._target_key(user_id, room_id, recipient_id)
        with self.store.lock:
            index, message = self.store.find_message(key, message_id)
            self._authorize(user_id, message)
            self.store.remove_message(key, index)
        logger.info(f"[Messages] Message {message_id} deleted from {key}")
        return message_id

    def create_room(self, user_id: str, name: str, description: str = "") -> Room:
        """Create a room and join its creator to it."""
        with self.store.lock:
            room = self.store.create_room(name, description, user_id)
            self.membership.join(user_id, room.id)
        return room

    # =========================================================================
    # Reads
    # =========================================================================

    def room_messages(self, user_id: str, room_id: str) -> Tuple[Room, List[Message]]:
        """Read a room log, auto-joining the reader.

        Raises:
            UserNotFoundError: Reader has no session.
            RoomNotFoundError: Unknown room.
        """
        with self.store.lock:
            session = self.store.get_session(user_id)
            room = self.store.get_room(room_id)
            if self.membership.auto_join_on_activity(user_id, room_id):
                session.currentRoom = room_id
            return room, self.store.list_messages(room_id)

    def dm_messages(self, user_id: str, recipient_id: str) -> List[Message]:
        """Read the DM log shared by ``user_id`` and ``recipient_id``."""
        if not recipient_id:
            raise InvalidCommandError("Missing recipientId for DM")
        return self.store.list_messages(dm_key(user_id, recipient_id))

    def search(self, query: str, user_id: Optional[str]) -> List[RoomSummary]:
        """Public rooms whose name, description or id contains ``query``."""
        needle = (query or "").lower()
        return [
            self._summary(room, user_id)
            for room in self.store.list_rooms()
            if room.isPublic and (
                needle in room.name.lower()
                or needle in room.description.lower()
                or needle in room.id.lower()
            )
        ]

    def list_rooms(self, user_id: Optional[str]) -> List[RoomSummary]:
        """All public rooms, annotated with the requester's membership."""
        session = self.store.find_session(user_id)
        summaries = []
        for room in self.store.list_rooms():
            if not room.isPublic:
                continue
            summary = self._summary(room, user_id if session else None)
            summary.isJoined = bool(session and room.id in session.joinedRooms)
            summaries.append(summary)
        return summaries

    def joined_rooms(self, user_id: str) -> List[RoomSummary]:
        return [
            RoomSummary(
                id=room.id,
                name=room.name,
                description=room.description,
                memberCount=len(room.members),
                isMember=True,
                isJoined=True,
            )
            for room in self.membership.joined_rooms(user_id)
        ]

    def online_users(self) -> List[OnlineUser]:
        """Sessions seen within the online window."""
        now = self.store.clock()
        return [
            OnlineUser(
                userId=session.userId,
                username=session.username,
                currentRoom=session.currentRoom,
                joinedRooms=sorted(session.joinedRooms),
            )
            for session in self.store.list_sessions()
            if now - session.lastSeen < self.online_window_ms
        ]

    def room_members(self, room_id: str) -> List[RoomMember]:
        """Members of ``room_id`` that have a session.

        Raises:
            RoomNotFoundError: Unknown room.
        """
        now = self.store.clock()
        with self.store.lock:
            room = self.store.get_room(room_id)
            sessions = [self.store.find_session(member) for member in sorted(room.members)]
        return [
            RoomMember(
                userId=session.userId,
                username=session.username,
                isOnline=now - session.lastSeen < self.online_window_ms,
            )
            for session in sessions
            if session is not None
        ]

    # =========================================================================
    # Internal
    # =========================================================================

    def _target_key(
        self, user_id: str, room_id: Optional[str], recipient_id: Optional[str]
    ) -> str:
        if room_id:
            return room_id
        if recipient_id:
            return dm_key(user_id, recipient_id)
        raise InvalidCommandError("Missing roomId or recipientId")

    def _authorize(self, user_id: str, message: Message) -> None:
        session = self.store.find_session(user_id)
        if session is None or session.username != message.user:
            logger.warning(
                f"[Messages] User {user_id} may not modify message {message.id} "
                f"authored by {message.user}"
            )
            raise UnauthorizedError(message.id)

    def _summary(self, room: Room, user_id: Optional[str]) -> RoomSummary:
        return RoomSummary(
            id=room.id,
            name=room.name,
            description=room.description,
            memberCount=len(room.members),
            isMember=bool(user_id) and user_id in room.members,
        )
