"""Tests for the in-memory conversation store."""
import pytest

from devtea.chat.errors import (
    DuplicateRoomError,
    InvalidCommandError,
    MessageNotFoundError,
    RoomNotFoundError,
    UserNotFoundError,
)
from devtea.chat.schemas import Message, MessageKind
from devtea.chat.store import (
    DEFAULT_BOT_NAME,
    ConversationStore,
    derive_room_id,
    dm_key,
)


class TestIdentityRules:
    """Room id derivation and DM keys."""

    def test_derive_room_id_strips_punctuation(self):
        assert derive_room_id("Frontend Devs!!") == "frontend-devs"

    def test_derive_room_id_is_idempotent(self):
        derived = derive_room_id("Frontend Devs!!")
        assert derive_room_id(derived) == derived == derive_room_id("frontend-devs")

    def test_derive_room_id_collapses_whitespace_runs(self):
        assert derive_room_id("Rust   Fans") == "rust-fans"
        assert derive_room_id("Tabs\tand\nlines") == "tabs-and-lines"

    def test_derive_room_id_keeps_digits_and_dashes(self):
        assert derive_room_id("Web3-Devs 2024") == "web3-devs-2024"

    def test_derive_room_id_of_symbols_is_empty(self):
        assert derive_room_id("!!!") == ""

    def test_dm_key_is_commutative(self):
        assert dm_key("alice", "bob") == dm_key("bob", "alice") == "alice-dm-bob"

    def test_dm_key_with_self(self):
        assert dm_key("alice", "alice") == "alice-dm-alice"


class TestSeeding:

    def test_default_rooms_seeded(self, store):
        assert {r.id for r in store.list_rooms()} == {"general", "frontend", "backend", "mobile", "devops"}

    def test_welcome_messages_seeded(self, store):
        general = store.list_messages("general")
        assert [m.id for m in general] == ["welcome-general-1", "welcome-general-2"]
        assert all(m.user == DEFAULT_BOT_NAME for m in general)
        assert len(store.list_messages("mobile")) == 1

    def test_seeded_rooms_start_empty(self, store):
        assert all(not room.members for room in store.list_rooms())

    def test_unseeded_store_is_empty(self):
        store = ConversationStore(seed=False)
        assert store.list_rooms() == []
        assert store.stats()["messages"] == 0


class TestRooms:

    def test_create_room_requires_session(self, store):
        with pytest.raises(UserNotFoundError):
            store.create_room("Rust Fans", "", "ghost")

    def test_create_room_welcome_names_creator(self, store):
        store.register_session("u1", "alice")
        room = store.create_room("Rust Fans", "", "u1")

        assert room.id == "rust-fans"
        assert room.members == {"u1"}
        log = store.list_messages("rust-fans")
        assert len(log) == 1
        assert "alice" in log[0].content
        assert log[0].content.endswith("Start chatting!")

    def test_create_room_uses_description_in_welcome(self, store):
        store.register_session("u1", "alice")
        store.create_room("Go Gophers", "All about Go", "u1")
        assert store.list_messages("go-gophers")[0].content.endswith("All about Go")

    def test_create_room_twice_is_duplicate(self, store):
        store.register_session("u1", "alice")
        room = store.create_room("Frontend Devs!!", "", "u1")
        assert room.id == "frontend-devs"
        with pytest.raises(DuplicateRoomError):
            store.create_room("Frontend Devs!!", "", "u1")

    def test_create_room_colliding_with_seeded_room(self, store):
        store.register_session("u1", "alice")
        with pytest.raises(DuplicateRoomError):
            store.create_room("General", "", "u1")

    def test_create_room_with_empty_id_rejected(self, store):
        store.register_session("u1", "alice")
        with pytest.raises(InvalidCommandError):
            store.create_room("???", "", "u1")

    def test_get_room_unknown(self, store):
        with pytest.raises(RoomNotFoundError):
            store.get_room("nope")
        assert store.find_room("nope") is None


class TestMessageLogs:

    def test_unknown_log_is_empty(self, store):
        assert store.list_messages("never-used") == []

    def test_list_messages_returns_copy(self, store):
        snapshot = store.list_messages("general")
        snapshot.clear()
        assert len(store.list_messages("general")) == 2

    def test_append_creates_log_lazily(self, store):
        key = dm_key("a", "b")
        msg = Message(user="alice", content="hi", type=MessageKind.DM, recipientId="b")
        store.append_message(key, msg)
        assert store.list_messages(key) == [msg]

    def test_find_message_missing(self, store):
        with pytest.raises(MessageNotFoundError):
            store.find_message("general", "missing")

    def test_remove_message_leaves_no_tombstone(self, store):
        index, _ = store.find_message("general", "welcome-general-1")
        store.remove_message("general", index)
        assert [m.id for m in store.list_messages("general")] == ["welcome-general-2"]


class TestSessions:

    def test_register_copies_durable_index(self, store):
        store.index_add("u1", "general")
        session = store.register_session("u1", "alice")
        assert session.joinedRooms == {"general"}

    def test_register_replaces_session(self, store):
        store.register_session("u1", "alice")
        store.register_session("u1", "alice2")
        assert store.get_session("u1").username == "alice2"
        assert len(store.list_sessions()) == 1

    def test_touch_session_updates_last_seen(self, store, clock):
        store.register_session("u1", "alice")
        clock.advance(10)
        store.touch_session("u1")
        assert store.get_session("u1").lastSeen == clock.now

    def test_touch_unknown_session_is_ignored(self, store):
        store.touch_session("ghost")
        store.touch_session(None)
        assert store.list_sessions() == []


class TestDurableIndex:

    def test_index_keeps_join_order_without_duplicates(self, store):
        store.index_add("u1", "general")
        store.index_add("u1", "backend")
        store.index_add("u1", "general")
        assert store.indexed_rooms("u1") == ["general", "backend"]

    def test_index_remove(self, store):
        store.index_add("u1", "general")
        store.index_remove("u1", "general")
        store.index_remove("u1", "never-added")
        assert store.indexed_rooms("u1") == []

    def test_index_members(self, store):
        store.index_add("u1", "general")
        store.index_add("u2", "general")
        store.index_add("u2", "mobile")
        assert store.index_members("general") == {"u1", "u2"}
