"""
Per-room message log, reactions and pins.

Edits and deletes rewrite the stored record in place; nothing is ever
removed from a room's log, so positions stay stable.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import config
from .sessions import User
from .utils import generate_id, now_iso

logger = logging.getLogger(__name__)


class EditResult(enum.Enum):
    SUCCESS = "success"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"


class PinResult(enum.Enum):
    SUCCESS = "success"
    ALREADY_PINNED = "already_pinned"
    NOT_FOUND = "not_found"


@dataclass(eq=False)
class Message:
    id: str
    room_id: str
    user_id: str
    username: str
    avatar: str
    content: str
    timestamp: str
    reply_to: Optional[str] = None
    file: Optional[str] = None
    is_edited: bool = False
    edited_at: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[str] = None
    # emoji -> reactor ids, in the order they reacted
    reactions: Dict[str, List[str]] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": "message",
            "id": self.id,
            "userId": self.user_id,
            "username": self.username,
            "avatar": self.avatar,
            "content": self.content,
            "roomId": self.room_id,
            "timestamp": self.timestamp,
            "reactions": self.reactions_snapshot(),
            "isEdited": self.is_edited,
            "editedAt": self.edited_at,
            "isDeleted": self.is_deleted,
            "deletedAt": self.deleted_at,
            "replyTo": self.reply_to,
            "file": self.file,
        }

    def reactions_snapshot(self) -> Dict[str, List[str]]:
        return {emoji: list(users) for emoji, users in self.reactions.items()}


@dataclass
class PinnedEntry:
    message: Message
    pinned_by: str
    pinned_at: str

    def to_wire(self) -> Dict[str, Any]:
        d = self.message.to_wire()
        d["pinnedBy"] = self.pinned_by
        d["pinnedAt"] = self.pinned_at
        return d


class MessageStore:
    def __init__(self):
        self._logs: Dict[str, List[Message]] = {}
        self._pinned: Dict[str, List[PinnedEntry]] = {}
        self._index: Dict[str, Message] = {}  # global id -> message

    def add_room(self, room_id: str):
        self._logs.setdefault(room_id, [])
        self._pinned.setdefault(room_id, [])

    def has_room(self, room_id: str) -> bool:
        return room_id in self._logs

    def append(
        self,
        room_id: str,
        author: User,
        content: str,
        reply_to: Optional[str] = None,
        file: Optional[str] = None,
    ) -> Message:
        log = self._logs[room_id]
        mid = generate_id()
        while mid in self._index:
            mid = generate_id()
        msg = Message(
            id=mid,
            room_id=room_id,
            user_id=author.id,
            username=author.username,
            avatar=author.avatar,
            content=content,
            timestamp=now_iso(),
            reply_to=reply_to,
            file=file,
        )
        log.append(msg)
        self._index[mid] = msg
        return msg

    def history_tail(self, room_id: str, limit: int = config.HISTORY_LIMIT) -> List[Message]:
        if limit <= 0:
            return []
        return list(self._logs.get(room_id, [])[-limit:])

    def find(self, room_id: str, message_id: str) -> Optional[Message]:
        msg = self._index.get(message_id)
        if msg is None or msg.room_id != room_id:
            return None
        return msg

    def react(self, room_id: str, message_id: str, user_id: str, emoji: str) -> Optional[Dict[str, List[str]]]:
        msg = self.find(room_id, message_id)
        if msg is None:
            return None
        reactors = msg.reactions.setdefault(emoji, [])
        if user_id in reactors:
            reactors.remove(user_id)
            if not reactors:
                del msg.reactions[emoji]
        else:
            reactors.append(user_id)
        return msg.reactions_snapshot()

    def edit(self, room_id: str, message_id: str, author_id: str, new_content: str) -> EditResult:
        msg = self.find(room_id, message_id)
        # A deleted message keeps its placeholder for good.
        if msg is None or msg.is_deleted:
            return EditResult.NOT_FOUND
        if msg.user_id != author_id:
            return EditResult.UNAUTHORIZED
        msg.content = new_content
        msg.is_edited = True
        msg.edited_at = now_iso()
        return EditResult.SUCCESS

    def soft_delete(self, room_id: str, message_id: str, author_id: str) -> EditResult:
        msg = self.find(room_id, message_id)
        if msg is None:
            return EditResult.NOT_FOUND
        if msg.user_id != author_id:
            return EditResult.UNAUTHORIZED
        msg.content = config.DELETED_PLACEHOLDER
        msg.is_deleted = True
        msg.deleted_at = now_iso()
        return EditResult.SUCCESS

    def pin(self, room_id: str, message_id: str, pinned_by: str) -> PinResult:
        msg = self.find(room_id, message_id)
        if msg is None:
            return PinResult.NOT_FOUND
        pinned = self._pinned.setdefault(room_id, [])
        if any(p.message.id == message_id for p in pinned):
            return PinResult.ALREADY_PINNED
        pinned.append(PinnedEntry(message=msg, pinned_by=pinned_by, pinned_at=now_iso()))
        return PinResult.SUCCESS

    def pinned(self, room_id: str) -> List[PinnedEntry]:
        return list(self._pinned.get(room_id, []))

    def __len__(self) -> int:
        return len(self._index)
