"""Room chat fanout and system notices."""
from __future__ import annotations

import time
from typing import Any, Optional

from ..core.config import settings
from ..schemas.rooms import ChatMessage, SystemNotice
from .connections import Connection, ConnectionDirectory
from .rooms import RoomRegistry

CHAT_EVENT = "chat"


def now_ms() -> int:
    return int(time.time() * 1000)


def _coerce_ts(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return None


class ChatFanout:
    """Deliver chat payloads verbatim to everyone in the sender's room."""

    def __init__(
        self,
        registry: RoomRegistry,
        directory: ConnectionDirectory,
        max_length: int | None = None,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._max_length = max_length or settings.chat_max_length

    def normalize(self, payload: Any, sender_name: str) -> Optional[ChatMessage]:
        """Turn a string or ``{text, ts, from}`` payload into one chat record."""

        if payload is None:
            return None
        if isinstance(payload, dict):
            text = "" if payload.get("text") is None else str(payload["text"])
            name = str(payload.get("from") or "").strip() or sender_name
            ts = _coerce_ts(payload.get("ts"))
        else:
            text = str(payload)
            name = sender_name
            ts = None

        text = text[: self._max_length]
        if not text.strip():
            return None
        return ChatMessage(name=name, text=text, ts=ts or now_ms())

    def send(self, connection: Connection, payload: Any) -> Optional[ChatMessage]:
        room = self._registry.find_room(connection.room_code)
        if room is None:
            return None
        message = self.normalize(payload, connection.display_name)
        if message is None:
            return None
        # The sender renders its own line from this broadcast, so no exclusion.
        self._directory.emit_many(room.members, CHAT_EVENT, message.wire())
        return message

    def notice(self, code: str, text: str, *, exclude: str | None = None) -> Optional[SystemNotice]:
        room = self._registry.find_room(code)
        if room is None:
            return None
        notice = SystemNotice(text=text, ts=now_ms())
        self._directory.emit_many(room.members, CHAT_EVENT, notice.wire(), exclude=exclude)
        return notice
