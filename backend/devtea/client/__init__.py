"""Async polling client for the chat command protocol."""
from .errors import NetworkFailure, RetriesExhausted, TransportError, TransportTimeout
from .retry import RetryPolicy
from .sync_client import ChatSyncClient, ConnectionState, Focus
from .transport import ChatTransport

__all__ = [
    "ChatSyncClient",
    "ChatTransport",
    "ConnectionState",
    "Focus",
    "NetworkFailure",
    "RetriesExhausted",
    "RetryPolicy",
    "TransportError",
    "TransportTimeout",
]
