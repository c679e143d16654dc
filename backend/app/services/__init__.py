"""Domain services: directory, sessions, admission and VIP tokens."""

from .directory import RedeemedCode, RoomDirectory
from .records import RoomRecord, VipCode
from .repository import InMemoryRoomRepository, RepositoryError, RoomRepository, SqlRoomRepository
from .results import Outcome
from .sessions import RoomSession, SessionRegistry
from .vip_tokens import VipToken, VipTokenStore

__all__ = [
    "InMemoryRoomRepository",
    "Outcome",
    "RedeemedCode",
    "RepositoryError",
    "RoomDirectory",
    "RoomRecord",
    "RoomRepository",
    "RoomSession",
    "SessionRegistry",
    "SqlRoomRepository",
    "VipCode",
    "VipToken",
    "VipTokenStore",
]
