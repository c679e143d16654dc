"""Database models package."""

from .base import Base
from .enums import ParticipantRole, Privacy, ReasonCode
from .rooms import RoomRecordRow

__all__ = [
    "Base",
    "RoomRecordRow",
    "ParticipantRole",
    "Privacy",
    "ReasonCode",
]
