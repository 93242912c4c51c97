"""
Wire protocol.

Every frame is a JSON object with a ``type`` discriminator. Inbound frames
are parsed into a closed union of pydantic models; outbound frames are
plain dicts built by the ``*_frame`` helpers below.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from . import config
from .utils import now_iso

GENERIC_ERROR = "Failed to process message"


class FrameError(Exception):
    """The frame could not be parsed or failed validation."""


class UnknownFrameType(FrameError):
    def __init__(self, frame_type):
        super().__init__(f"Unknown message type: {frame_type!r}")
        self.frame_type = frame_type


# -------------- Inbound --------------
class InboundFrame(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Join(InboundFrame):
    type: Literal["join"]
    user_id: Optional[str] = None
    username: str
    room_id: Optional[str] = None
    avatar: Optional[str] = None


class ChatMessage(InboundFrame):
    type: Literal["message"]
    content: str = Field("", max_length=config.MAX_MESSAGE_CHARS)
    room_id: str
    reply_to: Optional[str] = None
    file: Optional[str] = None


class PrivateMessageFrame(InboundFrame):
    type: Literal["private_message"]
    to_user_id: str
    content: str = Field(..., min_length=1, max_length=config.MAX_MESSAGE_CHARS)


class Typing(InboundFrame):
    type: Literal["typing"]
    room_id: str
    is_typing: bool = False


class SwitchRoom(InboundFrame):
    type: Literal["switch_room"]
    room_id: str


class CreateRoom(InboundFrame):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Literal["create_room"]
    room_name: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None
    is_private: bool = False


class ReactToMessage(InboundFrame):
    type: Literal["react_to_message"]
    room_id: str
    message_id: str
    emoji: str = Field(..., min_length=1, max_length=32)


class PinMessage(InboundFrame):
    type: Literal["pin_message"]
    room_id: str
    message_id: str


class DeleteMessage(InboundFrame):
    type: Literal["delete_message"]
    room_id: str
    message_id: str


class EditMessage(InboundFrame):
    type: Literal["edit_message"]
    room_id: str
    message_id: str
    new_content: str = Field(..., min_length=1, max_length=config.MAX_MESSAGE_CHARS)


class UpdateStatus(InboundFrame):
    type: Literal["update_status"]
    status: Literal["online", "away", "busy", "offline"]


class GetOnlineUsers(InboundFrame):
    type: Literal["get_online_users"]


Frame = Annotated[
    Union[
        Join,
        ChatMessage,
        PrivateMessageFrame,
        Typing,
        SwitchRoom,
        CreateRoom,
        ReactToMessage,
        PinMessage,
        DeleteMessage,
        EditMessage,
        UpdateStatus,
        GetOnlineUsers,
    ],
    Field(discriminator="type"),
]

_frame_adapter = TypeAdapter(Frame)

INBOUND_TYPES = frozenset(
    [
        "join",
        "message",
        "private_message",
        "typing",
        "switch_room",
        "create_room",
        "react_to_message",
        "pin_message",
        "delete_message",
        "edit_message",
        "update_status",
        "get_online_users",
    ]
)


def parse_frame(raw: str):
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise FrameError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise FrameError("Frame must be a JSON object")
    frame_type = data.get("type")
    if not isinstance(frame_type, str) or frame_type not in INBOUND_TYPES:
        raise UnknownFrameType(frame_type)
    try:
        return _frame_adapter.validate_python(data)
    except ValidationError as e:
        raise FrameError(str(e)) from e


# -------------- Outbound --------------
def error_frame(message: str = GENERIC_ERROR) -> Dict[str, Any]:
    return {"type": "error", "message": message}


def connection_established_frame(user: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "connection_established", "userId": user["id"], "user": user}


def room_list_frame(rooms: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "room_list", "rooms": rooms}


def message_history_frame(room_id: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "message_history", "messages": messages, "roomId": room_id}


def pinned_messages_frame(room_id: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "pinned_messages", "messages": messages, "roomId": room_id}


def user_joined_frame(user: Dict[str, Any], room_id: str) -> Dict[str, Any]:
    return {"type": "user_joined", "user": user, "roomId": room_id, "timestamp": now_iso()}


def user_list_frame(room_id: str, users: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "user_list", "users": users, "roomId": room_id}


def typing_frame(user_id: str, username: str, is_typing: bool, room_id: str) -> Dict[str, Any]:
    return {
        "type": "typing",
        "userId": user_id,
        "username": username,
        "isTyping": is_typing,
        "roomId": room_id,
    }


def message_reaction_frame(message_id: str, reactions: Dict[str, List[str]], room_id: str) -> Dict[str, Any]:
    return {"type": "message_reaction", "messageId": message_id, "reactions": reactions, "roomId": room_id}


def message_pinned_frame(message: Dict[str, Any], pinned_by: str, room_id: str) -> Dict[str, Any]:
    return {"type": "message_pinned", "message": message, "pinnedBy": pinned_by, "roomId": room_id}


def message_deleted_frame(message_id: str, room_id: str) -> Dict[str, Any]:
    return {"type": "message_deleted", "messageId": message_id, "roomId": room_id}


def message_edited_frame(message_id: str, new_content: str, room_id: str) -> Dict[str, Any]:
    return {"type": "message_edited", "messageId": message_id, "newContent": new_content, "roomId": room_id}


def room_created_frame(room: Dict[str, Any], creator: str) -> Dict[str, Any]:
    return {"type": "room_created", "room": room, "creator": creator}


def online_users_frame(users: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "online_users", "users": users}


def user_left_frame(user: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "user_left", "user": user, "timestamp": now_iso()}
