"""HTTP representations of room directory entries."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import Privacy


class PublicRoomRead(BaseModel):
    """Listing entry for a public room that is currently live."""

    name: str
    viewers: int = Field(0, ge=0)
    title: str | None = None
    live: bool = True


class RoomInfoRead(BaseModel):
    """Public facts about a room, without secrets or VIP data."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    exists: bool = True
    privacy: Privacy = Privacy.PUBLIC
    vip_required: bool = Field(False, alias="vipRequired")
    has_owner_password: bool = Field(False, alias="hasOwnerPassword")
    live: bool = False
    viewers: int = Field(0, ge=0)
    title: str | None = None
    permanent: bool = False


class PermanentRoomRead(BaseModel):
    name: str
    permanent: bool
