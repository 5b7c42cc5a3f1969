"""Tests for the HTTP command transport."""
import json

import httpx
import pytest

from devtea.client.errors import NetworkFailure, TransportTimeout
from devtea.client.transport import ChatTransport


def transport_for(handler):
    return ChatTransport("http://testserver", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_posts_command_envelope():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "type": "rooms_list", "data": {"rooms": []}})

    async with transport_for(handler) as transport:
        result = await transport.send("get_rooms", {}, "u1")

    assert seen == {"path": "/api/websocket", "body": {"type": "get_rooms", "data": {}, "userId": "u1"}}
    assert result.success is True
    assert result.type == "rooms_list"


@pytest.mark.asyncio
async def test_application_failure_is_a_result():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "Room not found", "code": "not_found"})

    async with transport_for(handler) as transport:
        result = await transport.send("join_room", {"roomId": "nope"}, "u1")

    assert result.success is False
    assert result.error == "Room not found"
    assert result.code == "not_found"


@pytest.mark.asyncio
async def test_server_error_body_is_returned():
    def handler(request):
        return httpx.Response(500, json={"success": False, "error": "Unknown message type"})

    async with transport_for(handler) as transport:
        result = await transport.send("teleport", {}, "u1")

    assert result.success is False
    assert result.error == "Unknown message type"


@pytest.mark.asyncio
async def test_non_json_error_becomes_http_error():
    def handler(request):
        return httpx.Response(404, text="Not Found")

    async with transport_for(handler) as transport:
        result = await transport.send("get_rooms", {}, "u1")

    assert result.success is False
    assert result.code == "http_error"
    assert result.error.startswith("HTTP 404")


@pytest.mark.asyncio
async def test_connect_error_is_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with transport_for(handler) as transport:
        with pytest.raises(NetworkFailure):
            await transport.send("register", {}, "u1")


@pytest.mark.asyncio
async def test_timeout_is_transport_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async with transport_for(handler) as transport:
        with pytest.raises(TransportTimeout):
            await transport.send("get_messages", {}, "u1")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [502, 503, 504])
async def test_gateway_status_is_network_failure(status):
    def handler(request):
        return httpx.Response(status, text="upstream unavailable")

    async with transport_for(handler) as transport:
        with pytest.raises(NetworkFailure):
            await transport.send("get_rooms", {}, "u1")
