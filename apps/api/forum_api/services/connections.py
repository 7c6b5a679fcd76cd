"""Connection identity and outbound delivery for signaling participants."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional

from ..core.config import settings

DeliverCallable = Callable[[str, Any], None]

logger = logging.getLogger(__name__)


def default_display_name(connection_id: str) -> str:
    return f"User-{connection_id[:4]}"


def clean_display_name(value: object, fallback: str, max_length: int | None = None) -> str:
    """Trim and bound a display name, keeping ``fallback`` when the result is blank."""

    limit = max_length or settings.display_name_max_length
    text = str(value or "").strip()[:limit]
    return text or fallback


@dataclass(slots=True)
class Connection:
    """A transport connection and the fields the core attaches to it.

    ``deliver`` must not block: the transport queues the frame and writes it
    to the socket on its own task.
    """

    connection_id: str
    deliver: DeliverCallable
    display_name: str = ""
    room_code: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = default_display_name(self.connection_id)


@dataclass
class ConnectionDirectory:
    """Index of connected participants by id."""

    _connections: Dict[str, Connection] = field(default_factory=dict)

    def register(self, connection: Connection) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)

    def get(self, connection_id: str | None) -> Optional[Connection]:
        if not connection_id:
            return None
        return self._connections.get(connection_id)

    def emit(self, connection_id: str | None, event: str, data: Any) -> bool:
        """Deliver one event to one connection; return whether it was handed off."""

        connection = self.get(connection_id)
        if connection is None:
            return False
        try:
            connection.deliver(event, data)
        except Exception:  # noqa: BLE001 - one broken socket must not stop a fanout
            logger.exception("Delivery of %s to %s failed", event, connection.connection_id)
            return False
        return True

    def emit_many(
        self,
        connection_ids: Iterable[str],
        event: str,
        data: Any,
        *,
        exclude: str | None = None,
    ) -> int:
        """Deliver an event to every listed connection except ``exclude``."""

        delivered = 0
        for connection_id in list(connection_ids):
            if connection_id == exclude:
                continue
            if self.emit(connection_id, event, data):
                delivered += 1
        return delivered
