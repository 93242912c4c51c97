import logging
from typing import Iterable, Optional

from .rooms import RoomRegistry
from .sessions import Session, SessionRegistry

logger = logging.getLogger(__name__)


class Broadcaster:
    """Best-effort fan-out. A failing recipient never stops delivery to the rest."""

    def __init__(self, sessions: SessionRegistry, rooms: RoomRegistry):
        self.sessions = sessions
        self.rooms = rooms

    def to_room(self, room_id: str, event: dict, exclude_user_id: Optional[str] = None) -> int:
        recipients = []
        for user_id in self.rooms.members(room_id):
            session = self.sessions.get(user_id)
            if session is not None:
                recipients.append(session)
        return self._deliver(recipients, event, exclude_user_id)

    def to_all(self, event: dict, exclude_user_id: Optional[str] = None) -> int:
        return self._deliver(self.sessions.sessions(), event, exclude_user_id)

    def to_user(self, user_id: str, event: dict) -> int:
        session = self.sessions.get(user_id)
        return self._deliver([session] if session else [], event)

    def _deliver(self, recipients: Iterable[Session], event: dict, exclude_user_id: Optional[str] = None) -> int:
        sent = 0
        for session in recipients:
            if exclude_user_id is not None and session.user_id == exclude_user_id:
                continue
            try:
                session.send(event)
                sent += 1
            except Exception as e:
                logger.warning("Failed to send %s to %s: %s", event.get("type"), session.user_id, e)
        return sent
