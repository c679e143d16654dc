"""Read-only room directory endpoints and the payment integration hook."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_context, require_integration_secret
from app.models.enums import ReasonCode
from app.schemas.rooms import PermanentRoomRead, PublicRoomRead, RoomInfoRead
from app.services.context import ServerContext

router = APIRouter(prefix="/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)

_FAILURE_STATUS = {
    ReasonCode.INVALID_NAME: status.HTTP_400_BAD_REQUEST,
    ReasonCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ReasonCode.PERSISTENCE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.get("/public", response_model=list[PublicRoomRead])
async def list_public_rooms(context: ServerContext = Depends(get_context)) -> list[PublicRoomRead]:
    """Public rooms that are currently live."""

    return [PublicRoomRead(**entry) for entry in context.directory.list_public_rooms()]


@router.get("/{name}", response_model=RoomInfoRead)
async def read_room(name: str, context: ServerContext = Depends(get_context)) -> RoomInfoRead:
    record = context.directory.get(name)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return RoomInfoRead.model_validate(record.to_public())


@router.post(
    "/{name}/permanent",
    response_model=PermanentRoomRead,
    dependencies=[Depends(require_integration_secret)],
)
async def mark_room_permanent(
    name: str, context: ServerContext = Depends(get_context)
) -> PermanentRoomRead:
    """Mark a purchased room so no other password can ever claim it."""

    async with context.lock:
        outcome = context.directory.mark_permanent(name)
    if not outcome.ok:
        raise HTTPException(
            status_code=_FAILURE_STATUS.get(outcome.error, status.HTTP_400_BAD_REQUEST),
            detail=outcome.error.value,
        )
    logger.info("Room %s marked permanent by the payment integration", outcome.value.name)
    return PermanentRoomRead(name=outcome.value.name, permanent=outcome.value.permanent)
