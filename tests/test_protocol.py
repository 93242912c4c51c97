import json

import pytest

from relay.protocol import (
    ChatMessage,
    CreateRoom,
    FrameError,
    GetOnlineUsers,
    Join,
    UnknownFrameType,
    parse_frame,
)


def test_parse_join_with_camel_case_fields():
    frame = parse_frame(json.dumps({"type": "join", "username": "alice", "userId": "u1", "roomId": "random"}))
    assert isinstance(frame, Join)
    assert frame.user_id == "u1"
    assert frame.room_id == "random"
    assert frame.avatar is None


def test_parse_message_optional_fields():
    frame = parse_frame('{"type": "message", "content": "hi", "roomId": "general", "replyTo": "m1"}')
    assert isinstance(frame, ChatMessage)
    assert frame.reply_to == "m1"
    assert frame.file is None


def test_parse_create_room_strips_name():
    frame = parse_frame('{"type": "create_room", "roomName": "  Design Review ", "isPrivate": true}')
    assert isinstance(frame, CreateRoom)
    assert frame.room_name == "Design Review"
    assert frame.is_private is True
    with pytest.raises(FrameError):
        parse_frame('{"type": "create_room", "roomName": "   "}')


def test_parse_empty_frame():
    assert isinstance(parse_frame('{"type": "get_online_users"}'), GetOnlineUsers)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        '{"type": "join"}',
        '{"type": "message", "content": "hi"}',
        '{"type": "update_status", "status": "sleeping"}',
    ],
)
def test_malformed_frames(raw):
    with pytest.raises(FrameError) as exc:
        parse_frame(raw)
    assert not isinstance(exc.value, UnknownFrameType)


@pytest.mark.parametrize("raw", ['{"type": "dance"}', '{"content": "no type"}', '{"type": ["join"]}'])
def test_unknown_frame_types(raw):
    with pytest.raises(UnknownFrameType):
        parse_frame(raw)
