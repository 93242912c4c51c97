import pytest

from relay import config
from relay.messages import EditResult, MessageStore, PinResult
from relay.sessions import User


@pytest.fixture
def store():
    s = MessageStore()
    s.add_room("general")
    s.add_room("random")
    return s


@pytest.fixture
def alice():
    return User(id="alice-id", username="alice", avatar="a.svg")


@pytest.fixture
def bob():
    return User(id="bob-id", username="bob", avatar="b.svg")


def test_append_then_history_tail(store, alice):
    store.append("general", alice, "hi")
    history = store.history_tail("general", 100)
    assert len(history) == 1
    assert history[0].content == "hi"
    assert history[0].user_id == "alice-id"
    assert history[0].username == "alice"
    assert history[0].avatar == "a.svg"


def test_history_tail_returns_last_100_in_append_order(store, alice):
    for i in range(150):
        store.append("general", alice, f"m{i}")
    history = store.history_tail("general", 100)
    assert [m.content for m in history] == [f"m{i}" for i in range(50, 150)]


def test_history_tail_edge_limits(store, alice):
    store.append("general", alice, "only")
    assert store.history_tail("general", 0) == []
    assert store.history_tail("nope") == []
    assert len(store.history_tail("general")) == 1


def test_message_ids_unique_across_rooms(store, alice):
    ids = {store.append(room, alice, "x").id for room in ("general", "random") for _ in range(50)}
    assert len(ids) == 100
    assert len(store) == 100


def test_author_snapshot_survives_rename(store, alice):
    msg = store.append("general", alice, "before")
    alice.username = "alice2"
    assert msg.username == "alice"


def test_find_is_scoped_to_room(store, alice):
    msg = store.append("general", alice, "hi")
    assert store.find("general", msg.id) is msg
    assert store.find("random", msg.id) is None


def test_reaction_toggle_parity(store, alice, bob):
    msg = store.append("general", alice, "hi")
    store.react("general", msg.id, bob.id, "🎉")
    original = msg.reactions_snapshot()

    for _ in range(4):
        store.react("general", msg.id, alice.id, "👍")
    assert msg.reactions_snapshot() == original

    for _ in range(3):
        reactions = store.react("general", msg.id, alice.id, "👍")
    assert reactions["👍"] == [alice.id]


def test_reacting_twice_removes_emoji_key(store, alice):
    msg = store.append("general", alice, "hi")
    assert store.react("general", msg.id, alice.id, "👍") == {"👍": [alice.id]}
    assert store.react("general", msg.id, alice.id, "👍") == {}
    assert "👍" not in msg.reactions


def test_reaction_keeps_other_reactors(store, alice, bob):
    msg = store.append("general", alice, "hi")
    store.react("general", msg.id, alice.id, "👍")
    store.react("general", msg.id, bob.id, "👍")
    assert store.react("general", msg.id, alice.id, "👍") == {"👍": [bob.id]}


def test_react_unknown_message(store, alice):
    assert store.react("general", "missing", alice.id, "👍") is None


def test_edit_only_by_author(store, alice, bob):
    msg = store.append("general", alice, "hi")
    assert store.edit("general", msg.id, bob.id, "hacked") is EditResult.UNAUTHORIZED
    assert msg.content == "hi"
    assert not msg.is_edited

    assert store.edit("general", msg.id, alice.id, "hello") is EditResult.SUCCESS
    assert msg.content == "hello"
    assert msg.is_edited
    assert msg.edited_at is not None
    assert store.edit("general", "missing", alice.id, "x") is EditResult.NOT_FOUND


def test_soft_delete_keeps_position(store, alice, bob):
    first = store.append("general", alice, "one")
    store.append("general", bob, "two")
    assert store.soft_delete("general", first.id, bob.id) is EditResult.UNAUTHORIZED
    assert first.content == "one"

    assert store.soft_delete("general", first.id, alice.id) is EditResult.SUCCESS
    history = store.history_tail("general")
    assert [m.content for m in history] == [config.DELETED_PLACEHOLDER, "two"]
    assert history[0].id == first.id
    assert history[0].is_deleted
    assert history[0].deleted_at is not None


def test_pin_twice_keeps_one_entry(store, alice, bob):
    msg = store.append("general", alice, "hi")
    assert store.pin("general", msg.id, bob.id) is PinResult.SUCCESS
    assert store.pin("general", msg.id, alice.id) is PinResult.ALREADY_PINNED
    pinned = store.pinned("general")
    assert len(pinned) == 1
    assert pinned[0].pinned_by == bob.id
    wire = pinned[0].to_wire()
    assert wire["id"] == msg.id
    assert wire["pinnedBy"] == bob.id


def test_pin_unknown_message(store, alice):
    assert store.pin("general", "missing", alice.id) is PinResult.NOT_FOUND
    assert store.pinned("general") == []


def test_message_wire_format(store, alice):
    msg = store.append("general", alice, "hi", reply_to="abc", file="uploads/cat.png")
    wire = msg.to_wire()
    assert wire["type"] == "message"
    assert wire["userId"] == "alice-id"
    assert wire["roomId"] == "general"
    assert wire["replyTo"] == "abc"
    assert wire["file"] == "uploads/cat.png"
    assert wire["reactions"] == {}
    assert wire["isEdited"] is False


def test_deleted_message_cannot_be_edited(store, alice):
    msg = store.append("general", alice, "oops")
    store.soft_delete("general", msg.id, alice.id)
    assert store.edit("general", msg.id, alice.id, "back again") is EditResult.NOT_FOUND
    assert msg.content == config.DELETED_PLACEHOLDER
    assert msg.is_deleted
    assert not msg.is_edited
