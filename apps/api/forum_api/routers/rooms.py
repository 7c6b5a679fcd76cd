"""Read-only room lookup so clients know whether to ask for a PIN."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status

from ..schemas.rooms import RoomSummary
from ..services.events import SignalingHub

router = APIRouter()


@router.get("/{code}", response_model=RoomSummary, response_model_by_alias=True)
async def get_room(code: str, request: Request) -> RoomSummary:
    """Return the public view of a room."""

    hub: SignalingHub = request.app.state.hub
    room = hub.registry.find_room(code)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return RoomSummary(
        code=room.code,
        name=room.name,
        locked=room.locked,
        live=room.live,
        requires_pin=room.requires_pin,
    )
