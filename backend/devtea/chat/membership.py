"""Room membership bookkeeping.

Three structures describe who is in which room and must never drift apart:

    - ``Room.members`` (per-room member set)
    - ``ClientSession.joinedRooms`` (per-session view)
    - the store's durable membership index (survives re-registration)

Every join/leave goes through ``MembershipManager`` so all three change
together under the store lock.
"""
import logging
from typing import List

from .schemas import Room
from .store import ConversationStore

logger = logging.getLogger(__name__)


class MembershipManager:
    """Keeps room member sets, session views and the durable index in step."""

    def __init__(self, store: ConversationStore) -> None:
        self.store = store

    def join(self, user_id: str, room_id: str) -> Room:
        """Add ``user_id`` to ``room_id`` and make it the session's current room.

        Idempotent: joining a room twice is a successful no-op.

        Raises:
            UserNotFoundError: The user has no session.
            RoomNotFoundError: The room does not exist.
        """
        with self.store.lock:
            session = self.store.get_session(user_id)
            room = self.store.get_room(room_id)
            self._add(user_id, room)
            session.currentRoom = room.id
            session.lastSeen = self.store.clock()
        logger.info(f"[Membership] User {session.username} joined room {room.id}")
        return room

    def leave(self, user_id: str, room_id: str) -> Room:
        """Remove ``user_id`` from ``room_id``. Idempotent.

        Clears the session's current room if it pointed at ``room_id``.

        Raises:
            UserNotFoundError: The user has no session.
            RoomNotFoundError: The room does not exist.
        """
        with self.store.lock:
            session = self.store.get_session(user_id)
            room = self.store.get_room(room_id)
            room.members.discard(user_id)
            session.joinedRooms.discard(room.id)
            self.store.index_remove(user_id, room.id)
            if session.currentRoom == room.id:
                session.currentRoom = None
        logger.info(f"[Membership] User {session.username} left room {room.id}")
        return room

    def auto_join_on_activity(self, user_id: str, room_id: str) -> bool:
        """Make ``user_id`` a member of ``room_id`` if it is not one already.

        Invoked whenever a user sends to or reads from a room. Anyone who can
        address a room id becomes a member; this is not an error path.

        Returns:
            True if the user was added, False if already a member.
        """
        with self.store.lock:
            self.store.get_session(user_id)
            room = self.store.get_room(room_id)
            if user_id in room.members:
                return False
            self._add(user_id, room)
        logger.info(f"[Membership] Auto-added user {user_id} to room {room_id}")
        return True

    def restore_on_register(self, user_id: str) -> List[str]:
        """Re-add ``user_id`` to every room recorded in the durable index.

        Rooms that no longer exist are skipped.

        Returns:
            Restored room ids, oldest join first.
        """
        restored = []
        with self.store.lock:
            session = self.store.find_session(user_id)
            for room_id in self.store.indexed_rooms(user_id):
                room = self.store.find_room(room_id)
                if room is None:
                    continue
                room.members.add(user_id)
                if session is not None:
                    session.joinedRooms.add(room_id)
                restored.append(room_id)
        logger.info(f"[Membership] Restored user {user_id} to {len(restored)} rooms")
        return restored

    def joined_rooms(self, user_id: str) -> List[Room]:
        """Rooms in the session's joined set, in durable join order."""
        with self.store.lock:
            session = self.store.get_session(user_id)
            ordered = [r for r in self.store.indexed_rooms(user_id) if r in session.joinedRooms]
            ordered += sorted(session.joinedRooms.difference(ordered))
            return [room for room in map(self.store.find_room, ordered) if room is not None]

    def is_member(self, user_id: str, room_id: str) -> bool:
        room = self.store.find_room(room_id)
        return room is not None and user_id in room.members

    def _add(self, user_id: str, room: Room) -> None:
        room.members.add(user_id)
        session = self.store.find_session(user_id)
        if session is not None:
            session.joinedRooms.add(room.id)
        self.store.index_add(user_id, room.id)
