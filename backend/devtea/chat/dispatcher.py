"""Command dispatch for the polling chat protocol.

Every request is an envelope ``{type, data, userId}``. The dispatcher looks
up the handler for ``type``, runs it against the membership manager and
message engine, and wraps the outcome in a ``CommandResult``:

    - success: ``{"success": true, "type": <result type>, "data": {...}}``
    - application error: ``{"success": false, "error": ..., "code": ...}``

Application errors (``ChatError``) never escape ``dispatch``. Anything else
is a server fault and propagates to the HTTP layer.
"""
import logging
from typing import Any, Callable, Dict, List

from .errors import ChatError, InvalidCommandError, UnknownCommandError
from .membership import MembershipManager
from .messages import MessageEngine
from .schemas import CommandRequest, CommandResult, CommandType, Message, MessageKind
from .store import ConversationStore

logger = logging.getLogger(__name__)

Handler = Callable[[CommandRequest], CommandResult]


def _require(data: Dict[str, Any], field: str) -> Any:
    value = data.get(field)
    if value is None or value == "":
        raise InvalidCommandError(f"Missing {field}")
    return value


def _kind(data: Dict[str, Any]) -> MessageKind:
    kind = _require(data, "type")
    try:
        return MessageKind(kind)
    except ValueError:
        raise InvalidCommandError(f"Invalid message type: {data.get('type')}") from None


def _dump_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    return [message.model_dump(mode="json") for message in messages]


class CommandDispatcher:
    """Routes typed commands to the chat engine.

    Attributes:
        store: Shared conversation store.
        membership: Membership manager bound to ``store``.
        engine: Message engine bound to ``store``.
    """

    def __init__(
        self,
        store: ConversationStore,
        membership: MembershipManager,
        engine: MessageEngine,
    ) -> None:
        self.store = store
        self.membership = membership
        self.engine = engine
        self._handlers: Dict[CommandType, Handler] = {
            CommandType.REGISTER: self._register,
            CommandType.JOIN_ROOM: self._join_room,
            CommandType.LEAVE_ROOM: self._leave_room,
            CommandType.SEND_MESSAGE: self._send_message,
            CommandType.GET_MESSAGES: self._get_messages,
            CommandType.EDIT_MESSAGE: self._edit_message,
            CommandType.DELETE_MESSAGE: self._delete_message,
            CommandType.SEARCH_ROOMS: self._search_rooms,
            CommandType.CREATE_ROOM: self._create_room,
            CommandType.GET_ROOMS: self._get_rooms,
            CommandType.GET_JOINED_ROOMS: self._get_joined_rooms,
            CommandType.GET_ONLINE_USERS: self._get_online_users,
            CommandType.GET_ROOM_MEMBERS: self._get_room_members,
        }

    def dispatch(self, request: CommandRequest) -> CommandResult:
        """Run one command and return its typed result."""
        logger.debug(f"[Dispatch] {request.type} from {request.userId}: {request.data}")
        try:
            try:
                command = CommandType(request.type)
            except ValueError:
                raise UnknownCommandError(request.type) from None
            self.store.touch_session(request.userId)
            return self._handlers[command](request)
        except ChatError as exc:
            logger.info(f"[Dispatch] {request.type} rejected: {exc.wire_message} ({exc})")
            return CommandResult.fail(exc.wire_message, exc.code)

    # =========================================================================
    # Session & membership
    # =========================================================================

    def _register(self, request: CommandRequest) -> CommandResult:
        user_id = request.data.get("userId") or request.userId
        if not user_id:
            raise InvalidCommandError("Missing userId")
        username = _require(request.data, "username")

        with self.store.lock:
            self.store.register_session(user_id, username)
            restored = self.membership.restore_on_register(user_id)
            available = [room.id for room in self.store.list_rooms()]

        logger.info(f"User registered: {username} ({user_id}), restored to {len(restored)} rooms")
        return CommandResult.ok("registered", {
            "joinedRooms": restored,
            "availableRooms": available,
        })

    def _join_room(self, request: CommandRequest) -> CommandResult:
        room_id = _require(request.data, "roomId")
        with self.store.lock:
            room = self.membership.join(request.userId, room_id)
            messages = self.store.list_messages(room.id)
            member_count = len(room.members)
        return CommandResult.ok("room_joined", {
            "roomId": room.id,
            "messages": _dump_messages(messages),
            "memberCount": member_count,
        })

    def _leave_room(self, request: CommandRequest) -> CommandResult:
        room_id = _require(request.data, "roomId")
        room = self.membership.leave(request.userId, room_id)
        return CommandResult.ok("room_left", {
            "roomId": room.id,
            "memberCount": len(room.members),
        })

    # =========================================================================
    # Messages
    # =========================================================================

    def _send_message(self, request: CommandRequest) -> CommandResult:
        data = request.data
        content = data.get("content")
        if content is None:
            raise InvalidCommandError("Missing content")
        message = self.engine.send(
            request.userId,
            content,
            _kind(data),
            room_id=data.get("roomId"),
            recipient_id=data.get("recipientId"),
            username=data.get("username"),
        )
        return CommandResult.ok("message_sent", message.model_dump(mode="json"))

    def _get_messages(self, request: CommandRequest) -> CommandResult:
        data = request.data
        if _kind(data) == MessageKind.ROOM:
            room_id = _require(data, "roomId")
            room, messages = self.engine.room_messages(request.userId, room_id)
            return CommandResult.ok("room_messages", {
                "roomId": room.id,
                "messages": _dump_messages(messages),
                "memberCount": len(room.members),
            })

        recipient_id = _require(data, "recipientId")
        messages = self.engine.dm_messages(request.userId, recipient_id)
        return CommandResult.ok("dm_messages", {
            "recipientId": recipient_id,
            "messages": _dump_messages(messages),
        })

    def _edit_message(self, request: CommandRequest) -> CommandResult:
        data = request.data
        message = self.engine.edit(
            request.userId,
            _require(data, "messageId"),
            _require(data, "content"),
            room_id=data.get("roomId"),
            recipient_id=data.get("recipientId"),
        )
        return CommandResult.ok("message_edited", message.model_dump(mode="json"))

    def _delete_message(self, request: CommandRequest) -> CommandResult:
        data = request.data
        message_id = self.engine.delete(
            request.userId,
            _require(data, "messageId"),
            room_id=data.get("roomId"),
            recipient_id=data.get("recipientId"),
        )
        return CommandResult.ok("message_deleted", {"messageId": message_id})

    # =========================================================================
    # Rooms & presence
    # =========================================================================

    def _search_rooms(self, request: CommandRequest) -> CommandResult:
        query = (request.data.get("query") or "").lower()
        rooms = self.engine.search(query, request.userId)
        return CommandResult.ok("search_results", {
            "rooms": [room.model_dump(exclude_none=True) for room in rooms],
            "query": query,
        })

    def _create_room(self, request: CommandRequest) -> CommandResult:
        name = _require(request.data, "name")
        room = self.engine.create_room(
            request.userId, name, request.data.get("description") or ""
        )
        return CommandResult.ok("room_created", room.to_wire())

    def _get_rooms(self, request: CommandRequest) -> CommandResult:
        rooms = self.engine.list_rooms(request.userId)
        return CommandResult.ok("rooms_list", {"rooms": [room.model_dump() for room in rooms]})

    def _get_joined_rooms(self, request: CommandRequest) -> CommandResult:
        rooms = self.engine.joined_rooms(request.userId)
        return CommandResult.ok("joined_rooms", {"rooms": [room.model_dump() for room in rooms]})

    def _get_online_users(self, request: CommandRequest) -> CommandResult:
        users = self.engine.online_users()
        return CommandResult.ok("online_users", {"users": [user.model_dump() for user in users]})

    def _get_room_members(self, request: CommandRequest) -> CommandResult:
        room_id = _require(request.data, "roomId")
        members = self.engine.room_members(room_id)
        return CommandResult.ok("room_members", {
            "roomId": room_id,
            "members": [member.model_dump() for member in members],
        })
