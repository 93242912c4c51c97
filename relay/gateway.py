"""
Connection gateway.

Parses inbound frames, drives the per-connection state machine
(unauthenticated -> active -> terminated) and dispatches commands to the
registries. All shared state lives on the Gateway; handlers take the hub
lock for cross-room work and a room's own lock for work on that room, always
in that order. Broadcasting only enqueues frames on each connection's
outbox, so no lock is ever held across a network send.
"""

import asyncio
import contextlib
import logging
from typing import Optional

from . import config
from .broadcast import Broadcaster
from .messages import EditResult, MessageStore, PinResult
from .private import PrivateChannel
from .protocol import (
    ChatMessage,
    CreateRoom,
    DeleteMessage,
    EditMessage,
    FrameError,
    GetOnlineUsers,
    Join,
    PinMessage,
    PrivateMessageFrame,
    ReactToMessage,
    SwitchRoom,
    Typing,
    UnknownFrameType,
    UpdateStatus,
    connection_established_frame,
    error_frame,
    message_deleted_frame,
    message_edited_frame,
    message_history_frame,
    message_pinned_frame,
    message_reaction_frame,
    online_users_frame,
    parse_frame,
    pinned_messages_frame,
    room_created_frame,
    room_list_frame,
    typing_frame,
    user_joined_frame,
    user_left_frame,
    user_list_frame,
)
from .rooms import Room, RoomRegistry
from .sessions import Session, SessionRegistry, UserIdInUse
from .utils import sanitize_username

logger = logging.getLogger(__name__)


class ConnectionClosed(Exception):
    pass


class Connection:
    """
    A client's duplex channel. Outbound frames go through a bounded queue
    drained by a single pump task, which keeps per-connection order and lets
    senders enqueue without awaiting the network. A peer that lets the queue
    fill up is treated as gone.
    """

    def __init__(self, websocket, max_pending: int = config.OUTBOX_MAX_FRAMES):
        self.websocket = websocket
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.closed = False
        self._pump_task: Optional[asyncio.Task] = None

    def start(self):
        self._pump_task = asyncio.create_task(self._pump())

    def deliver(self, frame: dict):
        if self.closed:
            raise ConnectionClosed("connection is closed")
        try:
            self.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            self.closed = True
            logger.warning("Outbox full (%d frames), dropping slow connection", self.outbox.maxsize)
            raise ConnectionClosed("outbox full") from None

    async def _pump(self):
        while True:
            frame = await self.outbox.get()
            try:
                await self.websocket.send_json(frame)
            except Exception as e:
                logger.warning("Send failed, dropping connection output: %s", e)
                self.closed = True
                return

    async def close(self):
        self.closed = True
        if self._pump_task is not None:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task


class Gateway:
    def __init__(self, bootstrap_rooms=None):
        self.sessions = SessionRegistry()
        self.rooms = RoomRegistry(bootstrap_rooms)
        self.store = MessageStore()
        for room in self.rooms:
            self.store.add_room(room.id)
        self.private = PrivateChannel(self.sessions)
        self.broadcaster = Broadcaster(self.sessions, self.rooms)
        # Guards the session registry and anything spanning several rooms.
        self.lock = asyncio.Lock()
        self._handlers = {
            "message": self.handle_message,
            "private_message": self.handle_private_message,
            "typing": self.handle_typing,
            "switch_room": self.handle_switch_room,
            "create_room": self.handle_create_room,
            "react_to_message": self.handle_react,
            "pin_message": self.handle_pin,
            "delete_message": self.handle_delete,
            "edit_message": self.handle_edit,
            "update_status": self.handle_update_status,
            "get_online_users": self.handle_get_online_users,
        }

    # -------------- Inbound --------------
    async def handle_raw(self, connection: Connection, raw: str):
        if connection.closed:
            return
        try:
            frame = parse_frame(raw)
        except UnknownFrameType as e:
            logger.warning("%s", e)
            return
        except FrameError as e:
            logger.info("Malformed frame: %s", e)
            self._reply(connection, error_frame())
            return
        try:
            await self.dispatch(connection, frame)
        except Exception:
            logger.exception("Error processing %s", frame.type)
            self._reply(connection, error_frame())

    async def dispatch(self, connection: Connection, frame):
        session = self.sessions.lookup_by_connection(connection)
        if isinstance(frame, Join):
            if session is not None:
                logger.debug("Ignoring repeated join from %s", session.user_id)
                return
            await self.handle_join(connection, frame)
            return
        if session is None:
            logger.debug("Ignoring %s from unauthenticated connection", frame.type)
            return
        await self._handlers[frame.type](session, frame)

    def _reply(self, connection: Connection, frame: dict):
        try:
            connection.deliver(frame)
        except Exception as e:
            logger.warning("Failed to reply with %s: %s", frame.get("type"), e)

    # -------------- Helpers --------------
    def _room_users(self, room: Room):
        users = []
        for user_id in room.members:
            session = self.sessions.get(user_id)
            if session is not None:
                users.append(session.user.presence())
        users.sort(key=lambda u: (u["username"].lower(), u["id"]))
        return users

    def _broadcast_user_list(self, room: Room):
        self.broadcaster.to_room(room.id, user_list_frame(room.id, self._room_users(room)))

    def _send_room_state(self, session: Session, room: Room):
        history = self.store.history_tail(room.id, config.HISTORY_LIMIT)
        session.send(message_history_frame(room.id, [m.to_wire() for m in history]))
        pinned = self.store.pinned(room.id)
        session.send(pinned_messages_frame(room.id, [p.to_wire() for p in pinned]))

    # -------------- Handlers --------------
    async def handle_join(self, connection: Connection, frame: Join):
        username = sanitize_username(frame.username)[: config.USERNAME_MAX_CHARS].strip()
        if not username:
            self._reply(connection, error_frame("Username is required"))
            return
        async with self.lock:
            room = self.rooms.get(frame.room_id or config.DEFAULT_ROOM_ID)
            if room is None:
                room = self.rooms.get(config.DEFAULT_ROOM_ID)
            try:
                session = self.sessions.register(
                    connection,
                    username,
                    user_id=frame.user_id,
                    avatar=frame.avatar,
                    room_id=room.id if room else None,
                )
            except UserIdInUse:
                self._reply(connection, error_frame("User id is already connected"))
                return
            user = session.user
            session.send(connection_established_frame(user.summary()))
            if room is None:
                session.send(room_list_frame(self.rooms.list()))
                return
            async with room.lock:
                self.rooms.join(room.id, user.id)
                session.send(room_list_frame(self.rooms.list()))
                self._send_room_state(session, room)
                self.broadcaster.to_room(room.id, user_joined_frame(user.summary(), room.id), exclude_user_id=user.id)
                self._broadcast_user_list(room)
        logger.info("User %s joined room %s", user.username, user.current_room)

    async def handle_message(self, session: Session, frame: ChatMessage):
        content = frame.content.strip()
        if not content and not frame.file:
            return
        room = self.rooms.get(frame.room_id)
        if room is None:
            logger.debug("Message for unknown room %s", frame.room_id)
            return
        async with room.lock:
            msg = self.store.append(room.id, session.user, content, reply_to=frame.reply_to, file=frame.file)
            self.broadcaster.to_room(room.id, msg.to_wire())

    async def handle_private_message(self, session: Session, frame: PrivateMessageFrame):
        async with self.lock:
            msg = self.private.send(session.user_id, frame.to_user_id, frame.content)
        if msg is None:
            logger.debug("Private message from %s to unknown user %s", session.user_id, frame.to_user_id)

    async def handle_typing(self, session: Session, frame: Typing):
        if not self.rooms.exists(frame.room_id):
            return
        user = session.user
        self.broadcaster.to_room(
            frame.room_id,
            typing_frame(user.id, user.username, frame.is_typing, frame.room_id),
            exclude_user_id=user.id,
        )

    async def handle_switch_room(self, session: Session, frame: SwitchRoom):
        target = self.rooms.get(frame.room_id)
        if target is None:
            return
        user = session.user
        async with self.lock:
            for room in self.rooms.rooms_of(user.id):
                if room is target:
                    continue
                async with room.lock:
                    self.rooms.leave(room.id, user.id)
                    self._broadcast_user_list(room)
            async with target.lock:
                self.rooms.join(target.id, user.id)
                user.current_room = target.id
                self._send_room_state(session, target)
                self._broadcast_user_list(target)

    async def handle_create_room(self, session: Session, frame: CreateRoom):
        user = session.user
        async with self.lock:
            room = self.rooms.create(frame.room_name, frame.description, frame.is_private, user.id)
            self.store.add_room(room.id)
            # Sent to everyone: the private flag is only a client-side filter.
            self.broadcaster.to_all(room_created_frame(room.metadata(), user.username))

    async def handle_react(self, session: Session, frame: ReactToMessage):
        room = self.rooms.get(frame.room_id)
        if room is None:
            return
        async with room.lock:
            reactions = self.store.react(room.id, frame.message_id, session.user_id, frame.emoji)
            if reactions is None:
                return
            self.broadcaster.to_room(room.id, message_reaction_frame(frame.message_id, reactions, room.id))

    async def handle_pin(self, session: Session, frame: PinMessage):
        room = self.rooms.get(frame.room_id)
        if room is None:
            return
        async with room.lock:
            result = self.store.pin(room.id, frame.message_id, session.user_id)
            if result is not PinResult.SUCCESS:
                logger.debug("Pin of %s in %s: %s", frame.message_id, room.id, result.value)
                return
            msg = self.store.find(room.id, frame.message_id)
            self.broadcaster.to_room(room.id, message_pinned_frame(msg.to_wire(), session.user.username, room.id))

    async def handle_delete(self, session: Session, frame: DeleteMessage):
        room = self.rooms.get(frame.room_id)
        if room is None:
            return
        async with room.lock:
            result = self.store.soft_delete(room.id, frame.message_id, session.user_id)
            if result is not EditResult.SUCCESS:
                logger.debug("Delete of %s by %s: %s", frame.message_id, session.user_id, result.value)
                return
            self.broadcaster.to_room(room.id, message_deleted_frame(frame.message_id, room.id))

    async def handle_edit(self, session: Session, frame: EditMessage):
        room = self.rooms.get(frame.room_id)
        if room is None:
            return
        async with room.lock:
            result = self.store.edit(room.id, frame.message_id, session.user_id, frame.new_content)
            if result is not EditResult.SUCCESS:
                logger.debug("Edit of %s by %s: %s", frame.message_id, session.user_id, result.value)
                return
            self.broadcaster.to_room(room.id, message_edited_frame(frame.message_id, frame.new_content, room.id))

    async def handle_update_status(self, session: Session, frame: UpdateStatus):
        async with self.lock:
            self.sessions.update_status(session.user_id, frame.status)
            for room in self.rooms.rooms_of(session.user_id):
                self._broadcast_user_list(room)

    async def handle_get_online_users(self, session: Session, frame: GetOnlineUsers):
        async with self.lock:
            users = self.sessions.online_users()
        session.send(online_users_frame(users))

    # -------------- Teardown --------------
    async def disconnect(self, connection: Connection):
        """Cascade a closed connection out of every room and announce the departure."""
        async with self.lock:
            session = self.sessions.lookup_by_connection(connection)
            if session is None:
                return
            user = session.user
            for room in self.rooms.rooms_of(user.id):
                async with room.lock:
                    self.rooms.leave(room.id, user.id)
                    self._broadcast_user_list(room)
            self.sessions.remove(user.id)
            self.broadcaster.to_all(user_left_frame(user.summary()))
        logger.info("User %s disconnected", user.username)
