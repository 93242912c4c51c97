import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from . import config
from .utils import now_iso, now_millis, slugify

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Room:
    id: str
    name: str
    description: str
    is_private: bool = False
    created_by: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    members: Set[str] = field(default_factory=set)
    # Guards members and the room's message log.
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def metadata(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "userCount": len(self.members),
            "isPrivate": self.is_private,
        }


class RoomRegistry:
    def __init__(self, bootstrap: Optional[List[dict]] = None):
        self._rooms: Dict[str, Room] = {}
        for entry in config.BOOTSTRAP_ROOMS if bootstrap is None else bootstrap:
            self._rooms[entry["id"]] = Room(
                id=entry["id"], name=entry["name"], description=entry.get("description", "")
            )

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        is_private: bool = False,
        creator_id: Optional[str] = None,
    ) -> Room:
        base = f"{slugify(name)}-{now_millis()}"
        room_id, n = base, 1
        while room_id in self._rooms:
            n += 1
            room_id = f"{base}-{n}"
        room = Room(
            id=room_id,
            name=name,
            description=description or config.DEFAULT_ROOM_DESCRIPTION,
            is_private=is_private,
            created_by=creator_id,
        )
        self._rooms[room_id] = room
        logger.info("Room %s created by %s (private=%s)", room_id, creator_id, is_private)
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def exists(self, room_id: str) -> bool:
        return room_id in self._rooms

    def join(self, room_id: str, user_id: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None:
            return False
        room.members.add(user_id)
        return True

    def leave(self, room_id: str, user_id: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None or user_id not in room.members:
            return False
        room.members.discard(user_id)
        return True

    def members(self, room_id: str) -> List[str]:
        room = self._rooms.get(room_id)
        return list(room.members) if room else []

    def rooms_of(self, user_id: str) -> List[Room]:
        return [r for r in self._rooms.values() if user_id in r.members]

    def list(self) -> List[Dict[str, Any]]:
        return [r.metadata() for r in self._rooms.values()]

    def __iter__(self):
        return iter(list(self._rooms.values()))

    def __len__(self) -> int:
        return len(self._rooms)
