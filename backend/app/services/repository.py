"""Storage backends for the room directory."""

from __future__ import annotations

import copy
import logging
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.database import session_scope
from app.models import RoomRecordRow

logger = logging.getLogger(__name__)

Document = dict[str, Any]


class RepositoryError(Exception):
    """Raised when the durable store cannot complete an operation."""


class RoomRepository(Protocol):
    """Key/value contract the directory depends on."""

    def get(self, name: str) -> Document | None:
        """Return the stored document for ``name`` if present."""

    def put(self, name: str, document: Document) -> None:
        """Insert or replace the document stored under ``name``."""

    def delete(self, name: str) -> None:
        """Remove a stored document, ignoring missing keys."""

    def load_all(self) -> dict[str, Document]:
        """Return every stored document keyed by room name."""


class InMemoryRoomRepository:
    """Process-local repository used by tests and ephemeral deployments."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}

    def get(self, name: str) -> Document | None:
        document = self._documents.get(name)
        return copy.deepcopy(document) if document is not None else None

    def put(self, name: str, document: Document) -> None:
        self._documents[name] = copy.deepcopy(document)

    def delete(self, name: str) -> None:
        self._documents.pop(name, None)

    def load_all(self) -> dict[str, Document]:
        return copy.deepcopy(self._documents)


class SqlRoomRepository:
    """SQLAlchemy-backed repository storing one JSON document per room."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, name: str) -> Document | None:
        try:
            with session_scope(self._session_factory) as db:
                row = db.get(RoomRecordRow, name)
                return dict(row.payload) if row is not None else None
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Failed to read room {name!r}") from exc

    def put(self, name: str, document: Document) -> None:
        try:
            with session_scope(self._session_factory) as db:
                row = db.get(RoomRecordRow, name)
                if row is None:
                    db.add(RoomRecordRow(name=name, payload=document))
                else:
                    row.payload = document
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Failed to store room {name!r}") from exc

    def delete(self, name: str) -> None:
        try:
            with session_scope(self._session_factory) as db:
                row = db.get(RoomRecordRow, name)
                if row is not None:
                    db.delete(row)
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Failed to delete room {name!r}") from exc

    def load_all(self) -> dict[str, Document]:
        try:
            with session_scope(self._session_factory) as db:
                rows = db.execute(select(RoomRecordRow)).scalars().all()
                documents = {row.name: dict(row.payload) for row in rows}
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to load the room directory") from exc
        logger.info("Loaded %d room records from the database", len(documents))
        return documents
