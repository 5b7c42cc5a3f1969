"""Application-level chat errors.

These are terminal for the caller: the dispatcher turns them into
``{"success": false, "error": ..., "code": ...}`` results and clients never
retry them. ``wire_message`` is the human readable text clients see and
``code`` the machine readable class.
"""


class ChatError(Exception):
    """Base class for every rejected chat command."""

    wire_message = "Request failed"
    code = "error"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.wire_message)
        self.detail = detail


class InvalidCommandError(ChatError):
    """Command payload is missing a required field."""

    code = "invalid_command"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.wire_message = detail


class UnknownCommandError(ChatError):
    wire_message = "Unknown message type"
    code = "unknown_command"


class NotFoundError(ChatError):
    wire_message = "Not found"
    code = "not_found"


class UserNotFoundError(NotFoundError):
    wire_message = "User not found"


class RoomNotFoundError(NotFoundError):
    wire_message = "Room not found"


class MessageNotFoundError(NotFoundError):
    wire_message = "Message not found or unauthorized"


class UnauthorizedError(ChatError):
    # Shares its text with MessageNotFoundError; only ``code`` differs.
    wire_message = "Message not found or unauthorized"
    code = "unauthorized"


class DuplicateRoomError(ChatError):
    wire_message = "Room already exists"
    code = "duplicate_room"
