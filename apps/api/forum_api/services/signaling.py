"""In-memory WebRTC signaling relay between a room host and its guests."""
from __future__ import annotations

from typing import Any, Optional

from .connections import Connection, ConnectionDirectory
from .membership import MembershipManager
from .rooms import Room, RoomRegistry


class SignalingRelay:
    """Route offers, answers and ICE candidates without inspecting them.

    The host talks to every guest; guests only ever talk to whoever the room
    currently names as host, so candidates never leak guest to guest.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        directory: ConnectionDirectory,
        membership: MembershipManager,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._membership = membership

    def broadcast_offer(self, connection: Connection, offer: Any) -> int:
        """Send the host's offer to every other member and return the recipient count."""

        room = self._membership.require_host(connection)
        if offer is None:
            return 0
        return self._directory.emit_many(
            room.members,
            "rtc:offer",
            {"from": connection.connection_id, "offer": offer},
            exclude=connection.connection_id,
        )

    def offer_to(self, connection: Connection, target_id: str | None, payload: Any) -> bool:
        return self._send_to(connection, "rtc:offer-to", target_id, payload)

    def answer_to(self, connection: Connection, target_id: str | None, payload: Any) -> bool:
        return self._send_to(connection, "rtc:answer-to", target_id, payload)

    def ice_to(self, connection: Connection, target_id: str | None, payload: Any) -> bool:
        return self._send_to(connection, "rtc:ice-to", target_id, payload)

    def answer(self, connection: Connection, answer: Any) -> bool:
        room = self._room_of(connection)
        if room is None or answer is None or room.is_host(connection.connection_id):
            return False
        return self._directory.emit(
            room.host_id,
            "rtc:answer",
            {"from": connection.connection_id, "answer": answer},
        )

    def ice(self, connection: Connection, candidate: Any) -> int:
        room = self._room_of(connection)
        if room is None or candidate is None:
            return 0
        message = {"from": connection.connection_id, "candidate": candidate}
        if room.is_host(connection.connection_id):
            return self._directory.emit_many(
                room.members, "rtc:ice", message, exclude=connection.connection_id
            )
        return int(self._directory.emit(room.host_id, "rtc:ice", message))

    def ready(self, connection: Connection) -> bool:
        """Tell the host this guest wants an offer."""

        room = self._room_of(connection)
        if room is None or room.is_host(connection.connection_id):
            return False
        return self._directory.emit(room.host_id, "rtc:need-offer", {"id": connection.connection_id})

    def _room_of(self, connection: Connection) -> Optional[Room]:
        room = self._registry.find_room(connection.room_code)
        if room is None or connection.connection_id not in room.members:
            return None
        return room

    def _send_to(self, connection: Connection, event: str, target_id: str | None, payload: Any) -> bool:
        if not target_id or target_id == connection.connection_id:
            return False
        room = self._room_of(connection)
        if room is None or target_id not in room.members:
            return False
        return self._directory.emit(
            target_id,
            event,
            {"from": connection.connection_id, "payload": payload},
        )
