"""Event dispatch for the signaling socket.

``SignalingHub`` owns every piece of room state for one application instance
and maps inbound event names to core operations. Each event is handled to
completion synchronously; the only thing that ever awaits is the transport.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from ..schemas.rooms import CreateRoomRequest, JoinRoomRequest, RoomSnapshot, TargetedSignal
from .chat import ChatFanout
from .connections import Connection, ConnectionDirectory, DeliverCallable
from .membership import MembershipManager, RoomCleanupScheduler
from .rooms import RoomError, RoomRegistry
from .signaling import SignalingRelay

AckPayload = Dict[str, Any]
Handler = Callable[[Connection, Any], Optional[AckPayload]]

logger = logging.getLogger(__name__)


def _field(data: Any, key: str) -> Any:
    if isinstance(data, dict):
        return data.get(key)
    return None


def _flag(data: Any, key: str) -> bool:
    if isinstance(data, dict):
        data = data.get(key)
    return data is True


class SignalingHub:
    """Room registry, connections and the handlers that act on them."""

    def __init__(
        self,
        registry: RoomRegistry | None = None,
        *,
        cleanup_delay: float | None = None,
    ) -> None:
        self.registry = registry if registry is not None else RoomRegistry()
        self.directory = ConnectionDirectory()
        self.chat = ChatFanout(self.registry, self.directory)
        self.cleanup = RoomCleanupScheduler(self.registry, cleanup_delay)
        self.membership = MembershipManager(self.registry, self.directory, self.chat, self.cleanup)
        self.relay = SignalingRelay(self.registry, self.directory, self.membership)

        self._handlers: Dict[str, Handler] = {
            "hello": self._on_hello,
            "set-name": self._on_hello,
            "create-room": self._on_create_room,
            "join-room": self._on_join_room,
            "leave-room": self._on_leave_room,
            "room:lock": self._on_lock,
            "room:live": self._on_live,
            "end-for-all": self._on_end_for_all,
            "chat": self._on_chat,
            "chat:send": self._on_chat,
            "message": self._on_chat,
            "rtc:offer": self._on_offer,
            "rtc:offer-to": self._targeted(self.relay.offer_to),
            "rtc:answer-to": self._targeted(self.relay.answer_to),
            "rtc:ice-to": self._targeted(self.relay.ice_to),
            "rtc:answer": self._on_answer,
            "rtc:ice": self._on_ice,
            "rtc:need-offer": self._on_ready,
            "rtc:ready": self._on_ready,
        }

    def connect(self, connection_id: str, deliver: DeliverCallable) -> Connection:
        connection = Connection(connection_id=connection_id, deliver=deliver)
        self.directory.register(connection)
        return connection

    def disconnect(self, connection: Connection) -> None:
        try:
            self.membership.disconnect(connection)
        finally:
            self.directory.unregister(connection.connection_id)

    def dispatch(self, connection: Connection, event: str, data: Any = None) -> Optional[AckPayload]:
        """Run one event and return its acknowledgment payload, if it has one.

        Failures never propagate: room errors and bad payloads become
        ``{ok: False, error}`` and anything else is logged.
        """

        handler = self._handlers.get(event)
        if handler is None:
            return {"ok": False, "error": f"Unknown event: {event}"}
        try:
            return handler(connection, data)
        except RoomError as exc:
            return {"ok": False, "error": exc.client_message}
        except ValidationError as exc:
            logger.info("Rejected %s payload from %s: %s", event, connection.connection_id, exc)
            return {"ok": False, "error": "Invalid payload"}
        except Exception:  # noqa: BLE001 - isolate failures to the one event
            logger.exception("Handler for %s failed for %s", event, connection.connection_id)
            return {"ok": False, "error": "Internal error"}

    async def shutdown(self) -> None:
        await self.cleanup.shutdown()
        self.registry.clear()

    def _on_hello(self, connection: Connection, data: Any) -> AckPayload:
        name = _field(data, "name") if isinstance(data, dict) else data
        return {"ok": True, "name": self.membership.set_name(connection, name)}

    def _on_create_room(self, connection: Connection, data: Any) -> AckPayload:
        request = CreateRoomRequest.model_validate(data if isinstance(data, dict) else {})
        room = self.membership.create(connection, request.name, request.pin, code=request.code)
        return {"ok": True, "room": RoomSnapshot.from_room(room).wire(), "hostKey": room.host_key}

    def _on_join_room(self, connection: Connection, data: Any) -> AckPayload:
        if isinstance(data, (str, int)):
            data = {"code": data}
        request = JoinRoomRequest.model_validate(data or {})
        room = self.membership.join(connection, request.code, request.pin, host_key=request.host_key)
        return {"ok": True, "room": RoomSnapshot.from_room(room).wire()}

    def _on_leave_room(self, connection: Connection, data: Any) -> AckPayload:
        self.membership.leave(connection)
        return {"ok": True}

    def _on_lock(self, connection: Connection, data: Any) -> AckPayload:
        room = self.membership.set_locked(connection, _flag(data, "locked"))
        return {"ok": True, "locked": room.locked}

    def _on_live(self, connection: Connection, data: Any) -> AckPayload:
        room = self.membership.set_live(connection, _flag(data, "live"))
        return {"ok": True, "live": room.live}

    def _on_end_for_all(self, connection: Connection, data: Any) -> AckPayload:
        self.membership.end_for_all(connection)
        return {"ok": True}

    def _on_chat(self, connection: Connection, data: Any) -> None:
        self.chat.send(connection, data)

    def _on_offer(self, connection: Connection, data: Any) -> AckPayload:
        self.relay.broadcast_offer(connection, _field(data, "offer"))
        return {"ok": True}

    def _on_answer(self, connection: Connection, data: Any) -> None:
        self.relay.answer(connection, _field(data, "answer"))

    def _on_ice(self, connection: Connection, data: Any) -> None:
        self.relay.ice(connection, _field(data, "candidate"))

    def _on_ready(self, connection: Connection, data: Any) -> None:
        self.relay.ready(connection)

    @staticmethod
    def _targeted(send: Callable[[Connection, str | None, Any], bool]) -> Handler:
        def handler(connection: Connection, data: Any) -> None:
            if not isinstance(data, dict):
                return None
            signal = TargetedSignal.model_validate(data)
            send(connection, signal.target_id, signal.payload)
            return None

        return handler
