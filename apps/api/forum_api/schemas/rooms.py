"""Data contracts for room commands, snapshots and chat records."""
from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _stringify(value: object) -> object:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


LooseStr = Annotated[str, BeforeValidator(_stringify)]


class CreateRoomRequest(_WireModel):
    name: LooseStr | None = Field(default=None, description="Display name of the room")
    pin: LooseStr | None = Field(default=None, description="Optional shared PIN")
    code: LooseStr | None = Field(default=None, description="Requested six digit code")


class JoinRoomRequest(_WireModel):
    code: LooseStr = Field(..., description="Room code to join")
    pin: LooseStr | None = Field(default=None, description="PIN, compared after trimming")
    host_key: str | None = Field(default=None, alias="hostKey", description="Host reclaim key")


class TargetedSignal(_WireModel):
    target_id: str | None = Field(default=None, alias="targetId")
    payload: Any = None


class RoomSnapshot(_WireModel):
    code: str
    name: str
    locked: bool
    live: bool
    host_id: str = Field(alias="hostId")
    requires_pin: bool = Field(alias="requiresPin")
    created_at: int = Field(alias="createdAt")

    @classmethod
    def from_room(cls, room) -> "RoomSnapshot":
        return cls(
            code=room.code,
            name=room.name,
            locked=room.locked,
            live=room.live,
            host_id=room.host_id,
            requires_pin=room.requires_pin,
            created_at=room.created_at,
        )


class RoomSummary(_WireModel):
    """Public view of a room for the lookup endpoint."""

    code: str
    name: str
    locked: bool
    live: bool
    requires_pin: bool = Field(alias="requiresPin")


class ChatMessage(_WireModel):
    name: str
    text: str
    ts: int


class SystemNotice(_WireModel):
    sys: bool = True
    text: str
    ts: int


class ClientFrame(BaseModel):
    """One inbound frame on the signaling socket."""

    model_config = ConfigDict(extra="ignore")

    event: str
    data: Any = None
    ack: int | str | None = None
