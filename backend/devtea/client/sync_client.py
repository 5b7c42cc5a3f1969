"""Polling chat client that emulates a live connection.

The client talks to the command endpoint one request at a time and keeps a
small connection state machine:

    DISCONNECTED -> REGISTERING -> CONNECTED <-> POLLING
                         ^             |
                         |             v
                         +---------- ERROR

Key behaviours:
    - ``connect()`` registers (with retry), restores previously joined rooms,
      focuses the most recently joined room (or the default room) and starts
      the polling loop.
    - Every user command goes through ``RetryPolicy``; only transport
      failures are retried. Exhausted retries move the client to ERROR and
      emit ``connection_lost``. Application rejections are returned as-is
      and leave the connection state alone.
    - Each polling tick runs as its own task: it re-fetches the focused
      conversation and, on a random minority of ticks, the presence list.
    - Message-list results are delivered only if their conversation still
      matches the live focus when they arrive; stale results are dropped.

Events are plain dicts passed to ``on_event``: every successful command
result, plus ``connected``, ``connection_failed``, ``connection_lost``,
``disconnected``, ``room_messages_update`` and ``dm_messages_update``.

Thread Safety:
    Designed for a single asyncio event loop; focus and state are only
    written from coroutines running on that loop.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from devtea.chat.schemas import CommandResult, MessageKind
from devtea.chat.store import dm_key
from devtea.config import ClientSettings

from .errors import RetriesExhausted, TransportError
from .retry import RetryPolicy
from .transport import ChatTransport

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_PRESENCE_PROBABILITY = 0.3
DEFAULT_RECONNECT_DELAY = 1.0
DEFAULT_ROOM = "general"

EventHandler = Callable[[Dict[str, Any]], None]


class ConnectionState(str, Enum):
    """Client connection states.

    Attributes:
        DISCONNECTED: Not registered; no polling.
        REGISTERING: ``register`` in flight.
        CONNECTED: Registered and idle between polls.
        POLLING: A polling request is in flight.
        ERROR: Transport retries exhausted; waiting for a reconnect.
    """
    DISCONNECTED = "disconnected"
    REGISTERING = "registering"
    CONNECTED = "connected"
    POLLING = "polling"
    ERROR = "error"


@dataclass(frozen=True)
class Focus:
    """The conversation the client is currently showing."""
    kind: MessageKind
    target: str

    def conversation_key(self, user_id: str) -> str:
        if self.kind == MessageKind.ROOM:
            return self.target
        return dm_key(user_id, self.target)

    def request_data(self) -> Dict[str, Any]:
        if self.kind == MessageKind.ROOM:
            return {"type": self.kind.value, "roomId": self.target}
        return {"type": self.kind.value, "recipientId": self.target}


class ChatSyncClient:
    """Request/response chat client with retry, polling and focus tracking.

    Attributes:
        user_id: Identity asserted on every command.
        username: Display name sent with ``register`` and messages.
        transport: HTTP transport used for every command.
        retry_policy: Policy wrapping user-initiated commands.
    """

    def __init__(
        self,
        user_id: str,
        username: str,
        transport: ChatTransport,
        on_event: Optional[EventHandler] = None,
        retry_policy: Optional[RetryPolicy] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        presence_probability: float = DEFAULT_PRESENCE_PROBABILITY,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        default_room: str = DEFAULT_ROOM,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.user_id = user_id
        self.username = username
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy()
        self.poll_interval = poll_interval
        self.presence_probability = presence_probability
        self.reconnect_delay = reconnect_delay
        self.default_room = default_room

        self._on_event = on_event
        self._rng = rng or random.Random()
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._focus: Optional[Focus] = None
        self._joined_rooms: List[str] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()
        self._polls_in_flight = 0

    @classmethod
    def from_settings(
        cls,
        user_id: str,
        username: str,
        settings: ClientSettings,
        on_event: Optional[EventHandler] = None,
        http_transport=None,
    ) -> "ChatSyncClient":
        """Build a client from the ``client`` settings section.

        Args:
            http_transport: Optional ``httpx`` transport (e.g. ASGITransport).
        """
        transport = ChatTransport(
            settings.base_url,
            endpoint=settings.endpoint,
            timeout=settings.request_timeout,
            transport=http_transport,
        )
        return cls(
            user_id,
            username,
            transport,
            on_event=on_event,
            retry_policy=RetryPolicy(
                max_attempts=settings.max_retries,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
            ),
            poll_interval=settings.poll_interval,
            presence_probability=settings.presence_probability,
            reconnect_delay=settings.reconnect_delay,
            default_room=settings.default_room,
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in (ConnectionState.CONNECTED, ConnectionState.POLLING)

    @property
    def focus(self) -> Optional[Focus]:
        return self._focus

    @property
    def joined_rooms(self) -> List[str]:
        """Rooms this client believes it has joined, oldest first."""
        return list(self._joined_rooms)

    def focus_room(self, room_id: str) -> None:
        self._focus = Focus(MessageKind.ROOM, room_id)

    def focus_dm(self, recipient_id: str) -> None:
        self._focus = Focus(MessageKind.DM, recipient_id)

    def clear_focus(self) -> None:
        self._focus = None

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug(f"[Client] {self.user_id}: {self._state.value} -> {state.value}")
            self._state = state

    def _emit(self, event: Dict[str, Any]) -> None:
        if self._on_event is not None:
            self._on_event(event)

    def _remember_room(self, room_id: str) -> None:
        if room_id not in self._joined_rooms:
            self._joined_rooms.append(room_id)

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self) -> CommandResult:
        """Register, restore joined rooms, pick a focus and start polling."""
        logger.info(f"[Client] Connecting as {self.username} ({self.user_id})")
        self._set_state(ConnectionState.REGISTERING)

        try:
            result = await self.retry_policy.run(
                lambda: self.transport.send(
                    "register",
                    {"userId": self.user_id, "username": self.username},
                    self.user_id,
                ),
                "register",
            )
        except RetriesExhausted as e:
            self._set_state(ConnectionState.ERROR)
            self._emit({"type": "connection_failed", "data": {"error": str(e)}})
            return CommandResult.fail(str(e), code="transport")

        if not result.success:
            logger.error(f"[Client] Failed to register user: {result.error}")
            self._set_state(ConnectionState.ERROR)
            self._emit({"type": "connection_failed", "data": {"error": result.error}})
            return result

        self._joined_rooms = list((result.data or {}).get("joinedRooms", []))
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"[Client] Connected; restored rooms {self._joined_rooms}")
        self._emit({"type": "connected", "data": {"joinedRooms": self.joined_rooms}})

        if self._focus is None:
            initial = self._joined_rooms[-1] if self._joined_rooms else self.default_room
            await self.join_room(initial)
            if not self.is_connected:
                logger.error(f"[Client] Lost connection while joining {initial}")
                return CommandResult.fail(f"Could not join {initial}", code="transport")

        self._start_polling()
        return result

    async def reconnect(self) -> CommandResult:
        """Drop the connection, pause briefly and connect again."""
        logger.info("[Client] Manual reconnection requested")
        await self.disconnect()
        await self._sleep(self.reconnect_delay)
        return await self.connect()

    async def disconnect(self) -> None:
        """Stop polling, clear focus and enter DISCONNECTED.

        Pending polling ticks are cancelled so their results are never
        delivered.
        """
        tasks = list(self._tick_tasks)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tick_tasks.clear()
        self._polls_in_flight = 0

        self.clear_focus()
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info(f"[Client] {self.user_id} disconnected")
        self._emit({"type": "disconnected"})

    async def close(self) -> None:
        await self.disconnect()
        await self.transport.close()

    async def __aenter__(self) -> "ChatSyncClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Command plumbing
    # =========================================================================

    async def _send(self, type_: str, data: Dict[str, Any], retry: bool = True) -> CommandResult:
        """Send a user-initiated command.

        Transport failures never raise: they come back as a failed result
        after moving the client to ERROR.
        """
        if not self.is_connected and self._state != ConnectionState.REGISTERING:
            logger.warning("[Client] Not connected, attempting to reconnect...")
            await self.connect()
            if not self.is_connected:
                return CommandResult.fail("Not connected", code="transport")

        try:
            if retry:
                result = await self.retry_policy.run(
                    lambda: self.transport.send(type_, data, self.user_id), type_
                )
            else:
                result = await self.transport.send(type_, data, self.user_id)
        except (RetriesExhausted, TransportError) as e:
            self._connection_lost(e)
            return CommandResult.fail(str(e), code="transport")

        if not result.success:
            logger.info(f"[Client] {type_} rejected: {result.error}")
        return result

    def _connection_lost(self, error: Exception) -> None:
        logger.error(f"[Client] Connection lost: {error}")
        self._set_state(ConnectionState.ERROR)
        self._emit({"type": "connection_lost", "data": {"error": str(error)}})

    def _matches_focus(self, kind: MessageKind, target: Optional[str]) -> bool:
        focus = self._focus
        if focus is None or target is None or focus.kind != kind:
            return False
        return focus.conversation_key(self.user_id) == Focus(kind, target).conversation_key(self.user_id)

    def _deliver(self, event: Dict[str, Any], kind: MessageKind, target: Optional[str]) -> bool:
        """Emit a message-list event only if it matches the live focus."""
        if not self._matches_focus(kind, target):
            logger.debug(f"[Client] Discarding stale {event.get('type')} for {target}")
            return False
        self._emit(event)
        return True

    # =========================================================================
    # Rooms
    # =========================================================================

    async def join_room(self, room_id: str) -> CommandResult:
        logger.info(f"[Client] Joining room: {room_id}")
        self.focus_room(room_id)
        self._remember_room(room_id)
        result = await self._send("join_room", {"roomId": room_id})
        if result.success:
            self._deliver(result.to_wire(), MessageKind.ROOM, result.data.get("roomId"))
        return result

    async def leave_room(self, room_id: str) -> CommandResult:
        logger.info(f"[Client] Leaving room: {room_id}")
        result = await self._send("leave_room", {"roomId": room_id})
        if result.success:
            if room_id in self._joined_rooms:
                self._joined_rooms.remove(room_id)
            if self._focus == Focus(MessageKind.ROOM, room_id):
                self.clear_focus()
            self._emit(result.to_wire())
        return result

    async def create_room(self, name: str, description: str = "") -> CommandResult:
        logger.info(f"[Client] Creating room: {name}")
        result = await self._send("create_room", {"name": name, "description": description})
        if result.success and result.data.get("id"):
            self._remember_room(result.data["id"])
            self.focus_room(result.data["id"])
            self._emit(result.to_wire())
        return result

    async def search_rooms(self, query: str) -> CommandResult:
        return self._emit_on_success(await self._send("search_rooms", {"query": query}))

    async def get_rooms(self) -> CommandResult:
        return self._emit_on_success(await self._send("get_rooms", {}))

    async def get_joined_rooms(self) -> CommandResult:
        return self._emit_on_success(await self._send("get_joined_rooms", {}))

    async def get_room_members(self, room_id: str) -> CommandResult:
        return self._emit_on_success(await self._send("get_room_members", {"roomId": room_id}))

    async def get_online_users(self) -> CommandResult:
        # Called often; a single attempt is enough.
        return self._emit_on_success(await self._send("get_online_users", {}, retry=False))

    def _emit_on_success(self, result: CommandResult) -> CommandResult:
        if result.success:
            self._emit(result.to_wire())
        return result

    # =========================================================================
    # Messages
    # =========================================================================

    async def send_chat_message(
        self,
        content: str,
        kind: MessageKind,
        room_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> CommandResult:
        """Send a room message or DM. Missing targets fail without a request."""
        kind = MessageKind(kind)
        if kind == MessageKind.ROOM and not room_id:
            return CommandResult.fail("Missing roomId for room message", code="invalid_command")
        if kind == MessageKind.DM and not recipient_id:
            return CommandResult.fail("Missing recipientId for DM", code="invalid_command")

        result = await self._send("send_message", {
            "username": self.username,
            "content": content,
            "type": kind.value,
            "roomId": room_id,
            "recipientId": recipient_id,
        })
        return self._emit_on_success(result)

    async def get_messages(
        self,
        kind: MessageKind,
        room_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> CommandResult:
        """Focus a conversation and fetch its log."""
        focus = Focus(MessageKind(kind), room_id or recipient_id or "")
        self._focus = focus
        result = await self._send("get_messages", focus.request_data())
        if result.success:
            self._deliver(result.to_wire(), focus.kind, focus.target)
        return result

    async def edit_message(
        self,
        message_id: str,
        content: str,
        room_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> CommandResult:
        result = await self._send("edit_message", {
            "messageId": message_id,
            "content": content,
            "roomId": room_id,
            "recipientId": recipient_id,
        })
        return self._emit_on_success(result)

    async def delete_message(
        self,
        message_id: str,
        room_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> CommandResult:
        result = await self._send("delete_message", {
            "messageId": message_id,
            "roomId": room_id,
            "recipientId": recipient_id,
        })
        return self._emit_on_success(result)

    # =========================================================================
    # Polling
    # =========================================================================

    def _start_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return
        logger.info(f"[Client] Starting message polling every {self.poll_interval}s")
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            if not self.is_connected:
                continue
            task = asyncio.create_task(self._tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    async def _tick(self) -> None:
        try:
            await self.poll_once()
        except TransportError as e:
            logger.warning(f"[Client] Polling request failed: {e}")
        except Exception:
            logger.exception("[Client] Polling error")

    async def poll_once(self) -> None:
        """Run one polling tick.

        Fetches the focused conversation (single attempt) and, with
        probability ``presence_probability``, the online-user list.

        Raises:
            TransportError: The request failed at transport level.
        """
        focus = self._focus
        if focus is not None:
            result = await self._poll_request("get_messages", focus.request_data())
            if result.success:
                update = "room_messages_update" if focus.kind == MessageKind.ROOM else "dm_messages_update"
                target = result.data.get("roomId") if focus.kind == MessageKind.ROOM else result.data.get("recipientId")
                self._deliver({"type": update, "data": result.data}, focus.kind, target)

        if self._rng.random() < self.presence_probability:
            result = await self._poll_request("get_online_users", {})
            if result.success:
                self._emit(result.to_wire())

    async def _poll_request(self, type_: str, data: Dict[str, Any]) -> CommandResult:
        self._polls_in_flight += 1
        self._set_state(ConnectionState.POLLING)
        try:
            return await self.transport.send(type_, data, self.user_id)
        finally:
            self._polls_in_flight -= 1
            if self._polls_in_flight == 0 and self._state == ConnectionState.POLLING:
                self._set_state(ConnectionState.CONNECTED)
