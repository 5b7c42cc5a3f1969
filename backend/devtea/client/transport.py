"""HTTP transport for the chat command protocol.

Each command is a single POST of ``{type, data, userId}`` to the command
endpoint. Transport faults raise ``TransportError`` subclasses; any answer
the server actually gave, including application rejections, comes back as a
``CommandResult``.
"""
import logging
from types import TracebackType
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from devtea.chat.schemas import CommandResult

from .errors import NetworkFailure, TransportTimeout

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "/api/websocket"
DEFAULT_TIMEOUT = 10.0

# Statuses that mean the app server was not reached.
GATEWAY_STATUSES = {502, 503, 504}


class ChatTransport:
    """Posts chat commands with ``httpx.AsyncClient``.

    Example:
        async with ChatTransport("http://127.0.0.1:8000") as transport:
            result = await transport.send("get_rooms", {}, user_id="u1")
    """

    def __init__(
        self,
        base_url: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def send(
        self, type_: str, data: Dict[str, Any], user_id: Optional[str]
    ) -> CommandResult:
        """Send one command and decode its result.

        Raises:
            TransportTimeout: The request timed out.
            NetworkFailure: Connection-level failure or gateway status.
        """
        payload = {"type": type_, "data": data, "userId": user_id}
        try:
            response = await self._get_client().post(self.endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise TransportTimeout(f"Request timeout for {type_}") from e
        except httpx.TransportError as e:
            raise NetworkFailure(f"Network connection lost: {e}") from e

        if response.status_code in GATEWAY_STATUSES:
            raise NetworkFailure(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            result = CommandResult.model_validate(response.json())
        except (ValueError, ValidationError):
            result = None

        if response.is_success and result is not None:
            return result
        if result is not None and result.error:
            return result
        return CommandResult.fail(
            f"HTTP {response.status_code}: {response.reason_phrase}", code="http_error"
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ChatTransport":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.close()
