"""In-memory room registry.

Rooms are addressed by a six digit code that people can read out loud. The
registry only stores rooms; membership rules live in ``membership``.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from secrets import token_urlsafe
from typing import Callable, Dict, Optional, Set

from ..core.config import settings

CODE_LENGTH = 6
DEFAULT_ROOM_NAME = "Room"

logger = logging.getLogger(__name__)


class RoomError(Exception):
    """Base class for failures reported back to the client as ``{ok: false}``."""

    message = "Room error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def client_message(self) -> str:
        return str(self)


class RoomNotFoundError(RoomError):
    message = "Room not found"


class RoomLockedError(RoomError):
    message = "Room is locked"


class WrongPinError(RoomError):
    message = "wrong pin"


class UnauthorizedError(RoomError):
    message = "Only the host can do that"


class CodeInUseError(RoomError):
    message = "Code already in use"


def _now_ms() -> int:
    return int(time.time() * 1000)


def normalize_pin(value: object) -> Optional[str]:
    """Return the trimmed PIN, or ``None`` when no PIN was supplied."""

    if value is None:
        return None
    pin = str(value).strip()
    return pin or None


def is_valid_code(value: str) -> bool:
    return len(value) == CODE_LENGTH and value.isdigit()


@dataclass
class Room:
    code: str
    name: str
    host_id: str
    pin: Optional[str] = None
    locked: bool = False
    live: bool = False
    members: Set[str] = field(default_factory=set)
    created_at: int = field(default_factory=_now_ms)
    host_key: str = field(default_factory=lambda: token_urlsafe(16), repr=False)

    @property
    def requires_pin(self) -> bool:
        return self.pin is not None

    def is_host(self, connection_id: str) -> bool:
        return self.host_id == connection_id

    def pin_matches(self, candidate: object) -> bool:
        if self.pin is None:
            return True
        return normalize_pin(candidate) == self.pin


def _random_code() -> str:
    return str(random.randint(10 ** (CODE_LENGTH - 1), 10**CODE_LENGTH - 1))


class RoomRegistry:
    """Process-wide table of rooms keyed by code."""

    def __init__(self, code_factory: Callable[[], str] = _random_code) -> None:
        self._rooms: Dict[str, Room] = {}
        self._code_factory = code_factory

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.strip() in self._rooms

    def create_room(
        self,
        name: object,
        pin: object,
        host_id: str,
        code: object = None,
    ) -> Room:
        """Store a new room owned by ``host_id``.

        A requested ``code`` is honoured when it is well formed; a well formed
        code that is already taken raises ``CodeInUseError``.
        """

        requested = str(code).strip() if code is not None else ""
        if requested and is_valid_code(requested):
            if requested in self._rooms:
                raise CodeInUseError()
            room_code = requested
        else:
            room_code = self._generate_code()

        room_name = str(name or "").strip()[: settings.room_name_max_length] or DEFAULT_ROOM_NAME
        room = Room(code=room_code, name=room_name, host_id=host_id, pin=normalize_pin(pin))
        self._rooms[room_code] = room
        logger.info("Created room %s (%s) for host %s", room_code, room_name, host_id)
        return room

    def find_room(self, code: object) -> Optional[Room]:
        if code is None:
            return None
        return self._rooms.get(str(code).strip())

    def delete_room(self, code: str) -> None:
        if self._rooms.pop(code, None) is not None:
            logger.info("Deleted room %s", code)

    def set_locked(self, code: str, locked: bool) -> Room:
        room = self._require(code)
        room.locked = bool(locked)
        return room

    def set_live(self, code: str, live: bool) -> Room:
        room = self._require(code)
        room.live = bool(live)
        return room

    def clear(self) -> None:
        self._rooms.clear()

    def _require(self, code: str) -> Room:
        room = self.find_room(code)
        if room is None:
            raise RoomNotFoundError()
        return room

    def _generate_code(self) -> str:
        code = self._code_factory()
        while code in self._rooms:
            code = self._code_factory()
        return code
