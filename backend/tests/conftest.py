"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.config import Settings
from app.main import app
from app.models import Base
from app.services.context import ServerContext, build_context
from app.services.repository import InMemoryRoomRepository


class DummyWebSocket:
    """Stand-in for a Starlette websocket that records outgoing frames."""

    def __init__(self) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []
        self.closed: tuple[int, str | None] | None = None

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("type") == event_type]


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True)


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, persistence_backend="memory", integration_secret="s3cret")


@pytest.fixture()
def repository() -> InMemoryRoomRepository:
    return InMemoryRoomRepository()


@pytest.fixture()
def context(settings, repository) -> ServerContext:
    """A fresh server context backed by an in-memory directory."""

    return build_context(settings, repository)


@pytest.fixture()
def client(context) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient serving ``context``."""

    app.state.context = context
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.state.context = None
        app.state.gateway = None


@pytest.fixture()
def websocket_factory() -> type[DummyWebSocket]:
    return DummyWebSocket
