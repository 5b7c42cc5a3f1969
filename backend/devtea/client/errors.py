"""Transport-level client errors.

These are distinct from application errors: an application rejection
(``Room not found``) arrives as a ``CommandResult`` with ``success=False``
and is final, while the exceptions below mean the command never got a
usable answer and may be retried.
"""
from typing import Optional


class TransportError(Exception):
    """The command did not reach the server or got no usable answer."""


class NetworkFailure(TransportError):
    """Connection refused/reset, DNS failure or an unavailable gateway."""


class TransportTimeout(TransportError):
    """The request exceeded its timeout."""


class RetriesExhausted(Exception):
    """Every attempt allowed by the retry policy failed at transport level.

    Attributes:
        command: Command type that was being sent.
        attempts: Number of attempts made.
        last_error: The transport error from the final attempt.
    """

    def __init__(self, command: str, attempts: int, last_error: Optional[TransportError]) -> None:
        super().__init__(f"{command} failed after {attempts} attempts: {last_error}")
        self.command = command
        self.attempts = attempts
        self.last_error = last_error
