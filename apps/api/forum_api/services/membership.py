"""Room membership: create, join, leave and host-only controls."""
from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Dict, Optional

from ..core.config import settings
from .chat import ChatFanout
from .connections import Connection, ConnectionDirectory, clean_display_name
from .rooms import (
    Room,
    RoomLockedError,
    RoomNotFoundError,
    RoomRegistry,
    UnauthorizedError,
    WrongPinError,
)

HOST_ENDED_NOTICE = "Host ended the call"

logger = logging.getLogger(__name__)


class RoomCleanupScheduler:
    """Delete rooms that are still empty a fixed delay after they were vacated.

    One pending task per room code; scheduling while a task is pending keeps
    the earlier deadline. The check reads the registry when it fires, so joins
    during the delay keep the room.
    """

    def __init__(self, registry: RoomRegistry, delay_seconds: float | None = None) -> None:
        self._registry = registry
        self._delay = settings.room_empty_ttl_seconds if delay_seconds is None else delay_seconds
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    def schedule(self, code: str) -> None:
        if code in self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks[code] = loop.create_task(self._run(code), name=f"room-cleanup-{code}")

    def cancel(self, code: str) -> bool:
        task = self._tasks.pop(code, None)
        if task is None:
            return False
        task.cancel()
        return True

    def pending(self, code: str) -> bool:
        return code in self._tasks

    def check(self, code: str) -> bool:
        """Delete the room if it exists and has no members; return whether it was deleted."""

        room = self._registry.find_room(code)
        if room is None or room.members:
            return False
        self._registry.delete_room(code)
        return True

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, code: str) -> None:
        await asyncio.sleep(self._delay)
        if self._tasks.get(code) is asyncio.current_task():
            self._tasks.pop(code, None)
        self.check(code)


class MembershipManager:
    """Move connections in and out of rooms and guard host-only actions."""

    def __init__(
        self,
        registry: RoomRegistry,
        directory: ConnectionDirectory,
        chat: ChatFanout,
        cleanup: RoomCleanupScheduler,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._chat = chat
        self._cleanup = cleanup

    def set_name(self, connection: Connection, name: object) -> str:
        connection.display_name = clean_display_name(name, connection.display_name)
        return connection.display_name

    def create(
        self,
        connection: Connection,
        name: object,
        pin: object = None,
        code: object = None,
    ) -> Room:
        room = self._registry.create_room(name, pin, connection.connection_id, code=code)
        self.leave(connection)
        self._enter(connection, room)
        self._chat.notice(room.code, f"Created room: {room.name} ({room.code})")
        self._emit_peers(room)
        return room

    def join(
        self,
        connection: Connection,
        code: object,
        pin: object = None,
        host_key: str | None = None,
    ) -> Room:
        """Add ``connection`` to a room.

        The lock is checked before the PIN, so a locked room reports
        ``RoomLockedError`` even to a caller holding the right PIN. A valid
        ``host_key`` skips both checks and makes the caller the host.
        """

        room = self._registry.find_room(code)
        if room is None:
            raise RoomNotFoundError()

        reclaim = bool(host_key) and secrets.compare_digest(
            str(host_key).encode(), room.host_key.encode()
        )
        if not reclaim:
            if room.locked:
                raise RoomLockedError()
            if not room.pin_matches(pin):
                raise WrongPinError()

        if connection.room_code != room.code:
            self.leave(connection)
        if reclaim and room.host_id != connection.connection_id:
            logger.info("Host of room %s reclaimed by %s", room.code, connection.connection_id)
            room.host_id = connection.connection_id
        if connection.connection_id in room.members:
            return room

        self._enter(connection, room)
        self._cleanup.cancel(room.code)
        self._chat.notice(room.code, f"{connection.display_name} joined")
        self._emit_peers(room)
        return room

    def leave(self, connection: Connection) -> Optional[Room]:
        code = connection.room_code
        if not code:
            return None
        connection.room_code = None
        room = self._registry.find_room(code)
        if room is None:
            return None

        room.members.discard(connection.connection_id)
        was_host = room.is_host(connection.connection_id)

        if was_host:
            self._directory.emit_many(room.members, "end-call", {"reason": "host-left"})
            self._chat.notice(code, HOST_ENDED_NOTICE)
            self._mark_not_live(room)
        else:
            self._chat.notice(code, f"{connection.display_name} left")
        self._directory.emit_many(room.members, "rtc:peer-left", {"peerId": connection.connection_id})
        self._emit_peers(room)

        if was_host or not room.members:
            self._cleanup.schedule(code)
        return room

    def disconnect(self, connection: Connection) -> None:
        self.leave(connection)

    def require_host(self, connection: Connection) -> Room:
        room = self._registry.find_room(connection.room_code)
        if room is None:
            raise RoomNotFoundError()
        if not room.is_host(connection.connection_id):
            raise UnauthorizedError()
        return room

    def set_locked(self, connection: Connection, locked: bool) -> Room:
        room = self.require_host(connection)
        self._registry.set_locked(room.code, locked)
        self._directory.emit_many(room.members, "room:locked", room.locked)
        return room

    def set_live(self, connection: Connection, live: bool) -> Room:
        room = self.require_host(connection)
        self._registry.set_live(room.code, live)
        self._directory.emit_many(room.members, "room:live", room.live)
        return room

    def end_for_all(self, connection: Connection) -> Room:
        room = self.require_host(connection)
        host_id = connection.connection_id
        self._directory.emit_many(room.members, "end-call", {"reason": "host-ended"}, exclude=host_id)
        self._chat.notice(room.code, HOST_ENDED_NOTICE, exclude=host_id)
        self._mark_not_live(room)
        return room

    def _enter(self, connection: Connection, room: Room) -> None:
        room.members.add(connection.connection_id)
        connection.room_code = room.code

    def _mark_not_live(self, room: Room) -> None:
        if not room.live:
            return
        self._registry.set_live(room.code, False)
        self._directory.emit_many(room.members, "room:live", False)

    def _emit_peers(self, room: Room) -> None:
        self._directory.emit_many(
            room.members,
            "rtc:peers",
            {"roomId": room.code, "peers": sorted(room.members)},
        )
