import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .sessions import SessionRegistry
from .utils import generate_id, now_iso

logger = logging.getLogger(__name__)


def conversation_key(user_a: str, user_b: str) -> str:
    return "-".join(sorted((user_a, user_b)))


@dataclass
class PrivateMessage:
    id: str
    from_user_id: str
    to_user_id: str
    from_username: str
    to_username: str
    content: str
    timestamp: str
    is_read: bool = False

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": "private_message",
            "id": self.id,
            "fromUserId": self.from_user_id,
            "toUserId": self.to_user_id,
            "fromUsername": self.from_username,
            "toUsername": self.to_username,
            "content": self.content,
            "timestamp": self.timestamp,
            "isRead": self.is_read,
        }


class PrivateChannel:
    """Direct messages between pairs of users, independent of rooms."""

    def __init__(self, sessions: SessionRegistry):
        self.sessions = sessions
        self._conversations: Dict[str, List[PrivateMessage]] = {}

    def send(self, from_user_id: str, to_user_id: str, content: str) -> Optional[PrivateMessage]:
        """
        Record a private message and push it to whichever of the two parties
        is connected. Returns None if the sender is not live or the recipient
        has never been seen.
        """
        sender = self.sessions.get(from_user_id)
        recipient = self.sessions.user(to_user_id)
        if sender is None or recipient is None:
            return None
        msg = PrivateMessage(
            id=generate_id(),
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            from_username=sender.user.username,
            to_username=recipient.username,
            content=content,
            timestamp=now_iso(),
        )
        self._conversations.setdefault(conversation_key(from_user_id, to_user_id), []).append(msg)

        frame = msg.to_wire()
        targets = [sender]
        if to_user_id != from_user_id:
            live = self.sessions.get(to_user_id)
            if live is not None:
                targets.append(live)
            else:
                logger.info("Private message %s stored for offline user %s", msg.id, to_user_id)
        for session in targets:
            try:
                session.send(frame)
            except Exception as e:
                logger.warning("Failed to deliver private message to %s: %s", session.user_id, e)
        return msg

    def conversation(self, user_a: str, user_b: str) -> List[PrivateMessage]:
        return list(self._conversations.get(conversation_key(user_a, user_b), []))
