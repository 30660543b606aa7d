# wheelz/realtime.py
"""In-process chat hub: live connections, room membership and fan-out.

Rooms are plain strings from :mod:`wheelz.addressing`. A message is
broadcast only after it has been committed, and appends to one room are
serialized by that room's lock, so every member sees the same order the
database recorded. Members that are offline at broadcast time get
nothing live; they read the history instead.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Callable, Dict, Optional, Set

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from . import message_store
from .addressing import ConversationKey, owner_room_id
from .database import SessionLocal
from .errors import ValidationError

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class Connection:
    """One live client. Subclasses implement ``_write``."""

    def __init__(self) -> None:
        self.id = next(_ids)
        self.rooms: Set[str] = set()
        self.open = True

    async def send(self, event: str, data: dict) -> None:
        await self._write({"event": event, "data": data})

    async def _write(self, payload: dict) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} #{self.id} rooms={sorted(self.rooms)}>"


class WebSocketConnection(Connection):
    def __init__(self, websocket) -> None:
        super().__init__()
        self.websocket = websocket

    async def _write(self, payload: dict) -> None:
        await self.websocket.send_json(payload)


class RealtimeHub:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory
        self._connections: Set[Connection] = set()
        self._rooms: Dict[str, Set[Connection]] = {}
        self._room_locks: Dict[str, asyncio.Lock] = {}

    # -------------------------
    # connection lifecycle
    # -------------------------
    def connect(self, conn: Connection) -> None:
        self._connections.add(conn)
        logger.debug("connected %r", conn)

    def join(self, conn: Connection, key: ConversationKey) -> str:
        room = key.room
        self._join_room(conn, room)
        return room

    def join_owner(self, conn: Connection, vehicle_id: int, owner_id: int) -> str:
        room = owner_room_id(vehicle_id, owner_id)
        self._join_room(conn, room)
        return room

    def _join_room(self, conn: Connection, room: str) -> None:
        if conn not in self._connections:
            raise ValidationError("connection is not registered")
        # set semantics make a second join a no-op
        self._rooms.setdefault(room, set()).add(conn)
        conn.rooms.add(room)

    def disconnect(self, conn: Connection) -> None:
        conn.open = False
        for room in list(conn.rooms):
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(conn)
            if not members:
                del self._rooms[room]
                lock = self._room_locks.get(room)
                if lock is not None and not lock.locked():
                    del self._room_locks[room]
        conn.rooms.clear()
        self._connections.discard(conn)
        logger.debug("disconnected %r", conn)

    # -------------------------
    # introspection
    # -------------------------
    def members(self, room: str) -> Set[Connection]:
        return set(self._rooms.get(room, ()))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # -------------------------
    # messaging
    # -------------------------
    def _room_lock(self, room: str) -> asyncio.Lock:
        lock = self._room_locks.get(room)
        if lock is None:
            lock = self._room_locks[room] = asyncio.Lock()
        return lock

    def _persist(self, key: ConversationKey, sender_id: int, username: Optional[str], body: str) -> dict:
        db = self._session_factory()
        try:
            msg = message_store.append(db, key, sender_id, username, body)
            return msg.to_event()
        finally:
            db.close()

    async def send(
        self,
        key: ConversationKey,
        sender_id: int,
        sender_display_name: Optional[str],
        body: str,
    ) -> dict:
        """Persist then broadcast; raises before anything is sent if the append fails."""
        if not (body or "").strip():
            raise ValidationError("message body must not be empty")

        async with self._room_lock(key.room):
            event = await run_in_threadpool(self._persist, key, sender_id, sender_display_name, body)
            await self.broadcast(key.room, "message", event)

        # the owner inbox only tracks counterparts; owner replies don't signal it
        if sender_id == key.user_id:
            await self.broadcast(key.owner_room, "newUser", {"userId": key.user_id, "username": event["username"]})
        return event

    async def broadcast(self, room: str, event: str, data: dict) -> int:
        delivered = 0
        for conn in list(self._rooms.get(room, ())):
            try:
                await conn.send(event, data)
                delivered += 1
            except Exception as e:
                # a dead socket only costs its own membership
                logger.info("dropping %r after failed %s send: %s", conn, event, e)
                self.disconnect(conn)
        return delivered
