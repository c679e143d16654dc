"""Process-wide server state, built once at startup."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from beacon.realtime.connections import ConnectionRegistry
from beacon.relay.tree import RelayTreeManager
from beacon.signaling.relay import SignalingRelay

from app.config import Settings, get_settings
from app.database import build_engine, build_session_factory
from app.services.directory import RoomDirectory
from app.services.repository import InMemoryRoomRepository, RoomRepository, SqlRoomRepository
from app.services.sessions import SessionRegistry
from app.services.vip_tokens import VipTokenStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServerContext:
    """Everything a signaling handler may touch.

    Handlers run one at a time under ``lock``, so none of the registries
    below need their own synchronisation.
    """

    settings: Settings
    directory: RoomDirectory
    tokens: VipTokenStore
    sessions: SessionRegistry
    trees: RelayTreeManager
    connections: ConnectionRegistry
    relay: SignalingRelay
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def build_repository(settings: Settings) -> RoomRepository:
    if settings.persistence_backend == "memory":
        logger.warning("Room directory is not persisted (PERSISTENCE_BACKEND=memory)")
        return InMemoryRoomRepository()
    engine = build_engine(settings.database_url, echo=settings.debug)
    return SqlRoomRepository(build_session_factory(engine))


def build_context(
    settings: Settings | None = None,
    repository: RoomRepository | None = None,
) -> ServerContext:
    settings = settings or get_settings()
    directory = RoomDirectory(
        repository if repository is not None else build_repository(settings),
        name_max_length=settings.room_name_max_length,
        code_length=settings.vip_code_length,
        code_attempts=settings.vip_code_max_attempts,
    )
    loaded = directory.load()
    logger.info("Room directory loaded with %d record(s)", loaded)

    connections = ConnectionRegistry()
    return ServerContext(
        settings=settings,
        directory=directory,
        tokens=VipTokenStore(settings.vip_token_ttl_seconds),
        sessions=SessionRegistry(settings.default_stream_title),
        trees=RelayTreeManager(
            max_tier=settings.relay_max_tier,
            root_capacity=settings.relay_root_capacity,
        ),
        connections=connections,
        relay=SignalingRelay(connections),
    )
