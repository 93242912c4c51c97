"""
Session registry.

Tracks which user is bound to which live connection, and keeps a directory
of every user seen since the process started so that offline users can
still be addressed by private messages.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from . import config
from .utils import generate_id, now_iso

logger = logging.getLogger(__name__)

STATUSES = ("online", "away", "busy", "offline")


class UserIdInUse(Exception):
    """A join claimed a user id that is already bound to a live connection."""


@dataclass
class User:
    id: str
    username: str
    avatar: str
    status: str = "online"
    current_room: Optional[str] = None
    joined_at: str = ""
    last_seen: str = ""

    def summary(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username, "avatar": self.avatar}

    def presence(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "status": self.status,
            "avatar": self.avatar,
            "lastSeen": self.last_seen,
        }


@dataclass(eq=False)
class Session:
    connection: Any
    user: User

    @property
    def user_id(self) -> str:
        return self.user.id

    def send(self, frame: dict):
        self.connection.deliver(frame)


def default_avatar(username: str) -> str:
    return config.AVATAR_URL_TEMPLATE.format(seed=quote(username, safe=""))


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, Session] = {}  # user id -> live session
        self._by_connection: Dict[int, Session] = {}
        self._users: Dict[str, User] = {}  # every user seen, including offline

    def register(
        self,
        connection,
        username: str,
        user_id: Optional[str] = None,
        avatar: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> Session:
        if user_id and user_id in self._sessions:
            raise UserIdInUse(user_id)
        uid = user_id or generate_id()
        while not user_id and uid in self._users:
            uid = generate_id()
        ts = now_iso()
        user = self._users.get(uid)
        if user is None:
            user = User(id=uid, username=username, avatar="")
            self._users[uid] = user
        # Reconnecting users keep their id but take the new name and avatar.
        user.username = username
        user.avatar = avatar or default_avatar(username)
        user.status = "online"
        user.current_room = room_id
        user.joined_at = ts
        user.last_seen = ts
        session = Session(connection=connection, user=user)
        self._sessions[uid] = session
        self._by_connection[id(connection)] = session
        logger.info("Registered user %s (%s)", username, uid)
        return session

    def lookup_by_connection(self, connection) -> Optional[Session]:
        return self._by_connection.get(id(connection))

    def get(self, user_id: str) -> Optional[Session]:
        return self._sessions.get(user_id)

    def user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._sessions

    def sessions(self) -> List[Session]:
        return list(self._sessions.values())

    def online_users(self) -> List[Dict[str, Any]]:
        return [s.user.presence() for s in self._sessions.values()]

    def update_status(self, user_id: str, status: str) -> Optional[User]:
        if status not in STATUSES:
            raise ValueError(f"Unknown status: {status}")
        session = self._sessions.get(user_id)
        if session is None:
            return None
        session.user.status = status
        session.user.last_seen = now_iso()
        return session.user

    def remove(self, user_id: str) -> Optional[Session]:
        session = self._sessions.pop(user_id, None)
        if session is None:
            return None
        self._by_connection.pop(id(session.connection), None)
        session.user.status = "offline"
        session.user.last_seen = now_iso()
        logger.info("Removed session for %s (%s)", session.user.username, user_id)
        return session

    def __len__(self) -> int:
        return len(self._sessions)
