"""Tests for the chat command endpoint (POST /api/websocket)."""
import pytest


def register(command, user_id, username):
    response = command("register", {"userId": user_id, "username": username}, user_id)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def two_users(command):
    register(command, "A", "alice")
    register(command, "B", "bob")


class TestProtocol:

    def test_websocket_probe_without_upgrade(self, api_client):
        response = api_client.get("/api/websocket")
        assert response.status_code == 400
        assert response.text == "Expected websocket"

    def test_websocket_probe_with_upgrade(self, api_client):
        response = api_client.get("/api/websocket", headers={"Upgrade": "websocket"})
        assert response.status_code == 501

    def test_unknown_command_is_server_error(self, command):
        response = command("teleport", {}, "A")
        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "Unknown message type",
            "code": "unknown_command",
        }

    def test_application_error_is_http_200(self, command):
        response = command("join_room", {"roomId": "general"}, "ghost")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "User not found"
        assert body["code"] == "not_found"

    def test_missing_field(self, command, two_users):
        body = command("join_room", {}, "A").json()
        assert body["success"] is False
        assert body["code"] == "invalid_command"

    def test_malformed_envelope_rejected(self, api_client):
        response = api_client.post("/api/websocket", json={"data": {}})
        assert response.status_code == 422

    def test_unexpected_fault_is_internal_error(self, app, command, monkeypatch):
        def boom(request):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(app.state.chat.dispatcher, "dispatch", boom)
        response = command("get_rooms", {}, "A")
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Internal server error"}


class TestRegister:

    def test_register_new_user(self, command):
        body = register(command, "A", "alice")
        assert body["type"] == "registered"
        assert body["data"]["joinedRooms"] == []
        assert "general" in body["data"]["availableRooms"]

    def test_register_requires_username(self, command):
        body = command("register", {"userId": "A"}, "A").json()
        assert body["success"] is False

    def test_reregister_restores_rooms(self, command):
        register(command, "A", "alice")
        command("join_room", {"roomId": "general"}, "A")
        command("join_room", {"roomId": "devops"}, "A")

        body = register(command, "A", "alice")
        assert body["data"]["joinedRooms"] == ["general", "devops"]

    def test_register_touches_presence(self, command):
        register(command, "A", "alice")
        users = command("get_online_users", {}, "A").json()["data"]["users"]
        assert [u["username"] for u in users] == ["alice"]


class TestRooms:

    def test_join_returns_history(self, command, two_users):
        body = command("join_room", {"roomId": "general"}, "A").json()
        assert body["type"] == "room_joined"
        assert body["data"]["roomId"] == "general"
        assert body["data"]["memberCount"] == 1
        assert len(body["data"]["messages"]) == 2

    def test_join_unknown_room(self, command, two_users):
        body = command("join_room", {"roomId": "nope"}, "A").json()
        assert body == {"success": False, "error": "Room not found", "code": "not_found"}

    def test_leave_room(self, command, two_users):
        command("join_room", {"roomId": "general"}, "A")
        body = command("leave_room", {"roomId": "general"}, "A").json()
        assert body["type"] == "room_left"
        assert body["data"] == {"roomId": "general", "memberCount": 0}

    def test_create_room(self, command, two_users):
        body = command("create_room", {"name": "Rust Fans", "description": ""}, "A").json()
        assert body["type"] == "room_created"
        room = body["data"]
        assert room["id"] == "rust-fans"
        assert room["name"] == "Rust Fans"
        assert room["members"] == ["A"]
        assert room["memberCount"] == 1

        messages = command("get_messages", {"type": "room", "roomId": "rust-fans"}, "A").json()
        [welcome] = messages["data"]["messages"]
        assert "alice" in welcome["content"]

    def test_create_duplicate_room(self, command, two_users):
        first = command("create_room", {"name": "Frontend Devs!!"}, "A").json()
        assert first["data"]["id"] == "frontend-devs"
        second = command("create_room", {"name": "Frontend Devs!!"}, "B").json()
        assert second == {"success": False, "error": "Room already exists", "code": "duplicate_room"}

    def test_search_rooms(self, command, two_users):
        body = command("search_rooms", {"query": "Docker"}, "A").json()
        assert body["type"] == "search_results"
        assert body["data"]["query"] == "docker"
        assert [r["id"] for r in body["data"]["rooms"]] == ["devops"]
        assert "isJoined" not in body["data"]["rooms"][0]

    def test_get_rooms_and_joined_rooms(self, command, two_users):
        command("join_room", {"roomId": "mobile"}, "A")

        rooms = command("get_rooms", {}, "A").json()["data"]["rooms"]
        assert {r["id"]: r["isJoined"] for r in rooms}["mobile"] is True

        joined = command("get_joined_rooms", {}, "A").json()
        assert joined["type"] == "joined_rooms"
        assert [r["id"] for r in joined["data"]["rooms"]] == ["mobile"]

    def test_room_members(self, command, two_users):
        command("join_room", {"roomId": "general"}, "A")
        command("join_room", {"roomId": "general"}, "B")
        body = command("get_room_members", {"roomId": "general"}, "A").json()
        assert body["type"] == "room_members"
        assert {m["username"] for m in body["data"]["members"]} == {"alice", "bob"}
        assert all(m["isOnline"] for m in body["data"]["members"])

    def test_room_members_unknown_room(self, command, two_users):
        body = command("get_room_members", {"roomId": "nope"}, "A").json()
        assert body["error"] == "Room not found"


class TestMessages:

    def test_edit_and_delete_own_message(self, command, two_users):
        sent = command("send_message", {
            "content": "helo", "type": "room", "roomId": "general", "username": "alice",
        }, "A").json()["data"]

        edited = command("edit_message", {
            "messageId": sent["id"], "content": "hello", "roomId": "general",
        }, "A").json()
        assert edited["type"] == "message_edited"
        assert edited["data"]["edited"] is True

        deleted = command("delete_message", {"messageId": sent["id"], "roomId": "general"}, "A").json()
        assert deleted == {"success": True, "type": "message_deleted", "data": {"messageId": sent["id"]}}

    def test_missing_message(self, command, two_users):
        body = command("delete_message", {"messageId": "missing", "roomId": "general"}, "A").json()
        assert body["error"] == "Message not found or unauthorized"
        assert body["code"] == "not_found"

    @pytest.mark.parametrize("type_", ["send_message", "get_messages"])
    def test_message_kind_is_required(self, command, two_users, type_):
        body = command(type_, {"content": "x", "roomId": "general"}, "A").json()
        assert body == {"success": False, "error": "Missing type", "code": "invalid_command"}

    def test_invalid_message_type(self, command, two_users):
        body = command("send_message", {"content": "x", "type": "broadcast"}, "A").json()
        assert body["success"] is False
        assert body["code"] == "invalid_command"


class TestScenarios:
    """End-to-end flows over the command endpoint."""

    def test_room_message_round_trip(self, command, two_users):
        sent = command("send_message", {
            "content": "hello", "type": "room", "roomId": "general", "username": "alice",
        }, "A").json()
        assert sent["type"] == "message_sent"

        body = command("get_messages", {"type": "room", "roomId": "general"}, "B").json()
        assert body["type"] == "room_messages"
        hellos = [m for m in body["data"]["messages"] if m["content"] == "hello"]
        assert len(hellos) == 1
        last = body["data"]["messages"][-1]
        assert last["content"] == "hello"
        assert last["user"] == "alice"
        assert last["edited"] is False
        assert body["data"]["memberCount"] == 2

    def test_direct_message_round_trip(self, command, two_users):
        command("send_message", {
            "content": "hi", "type": "dm", "recipientId": "B", "username": "alice",
        }, "A")

        body = command("get_messages", {"type": "dm", "recipientId": "A"}, "B").json()
        assert body["type"] == "dm_messages"
        assert body["data"]["recipientId"] == "A"
        [message] = body["data"]["messages"]
        assert message["content"] == "hi"
        assert message["user"] == "alice"

    def test_create_room_scenario(self, command, two_users):
        room = command("create_room", {"name": "Rust Fans"}, "A").json()["data"]
        assert room["id"] == "rust-fans"

        body = command("get_messages", {"type": "room", "roomId": "rust-fans"}, "A").json()
        messages = body["data"]["messages"]
        assert len(messages) == 1
        assert "alice" in messages[0]["content"]

    def test_cannot_edit_other_users_message(self, command, two_users):
        sent = command("send_message", {
            "content": "bob's words", "type": "room", "roomId": "general", "username": "bob",
        }, "B").json()["data"]

        body = command("edit_message", {
            "messageId": sent["id"], "content": "alice's words", "roomId": "general",
        }, "A").json()
        assert body == {
            "success": False,
            "error": "Message not found or unauthorized",
            "code": "unauthorized",
        }

    def test_sending_auto_joins(self, app, command, two_users):
        command("send_message", {
            "content": "first!", "type": "room", "roomId": "backend", "username": "bob",
        }, "B")
        store = app.state.chat.store
        assert "B" in store.get_room("backend").members
        assert "backend" in store.indexed_rooms("B")
