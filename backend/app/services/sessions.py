"""Ephemeral per-room rosters."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

logger = logging.getLogger(__name__)

DEFAULT_STREAM_TITLE = "Untitled Stream"


@dataclass(slots=True)
class SessionUser:
    name: str
    is_viewer: bool
    is_vip: bool = False
    requesting_call: bool = False
    is_relay: bool = False

    def to_public(self, socket_id: str) -> dict[str, Any]:
        return {
            "id": socket_id,
            "name": self.name,
            "isViewer": self.is_viewer,
            "isVip": self.is_vip,
            "requestingCall": self.requesting_call,
            "isRelay": self.is_relay,
        }


@dataclass(slots=True)
class RoomSession:
    """Live roster of one room.

    ``owner_id`` is either ``None`` or the key of a member of ``users``.
    """

    name: str
    owner_id: str | None = None
    locked: bool = False
    stream_title: str = DEFAULT_STREAM_TITLE
    users: dict[str, SessionUser] = field(default_factory=dict)

    def is_owner(self, socket_id: str | None) -> bool:
        return socket_id is not None and self.owner_id == socket_id

    def member_ids(self) -> list[str]:
        return list(self.users)

    def snapshot(self) -> dict[str, Any]:
        return {
            "users": [user.to_public(socket_id) for socket_id, user in self.users.items()],
            "ownerId": self.owner_id,
            "locked": self.locked,
            "streamTitle": self.stream_title,
        }


@dataclass(slots=True, frozen=True)
class Departure:
    user: SessionUser
    was_owner: bool
    session_closed: bool


class SessionRegistry:
    """Holds every active :class:`RoomSession`, keyed by room name."""

    def __init__(self, default_title: str = DEFAULT_STREAM_TITLE) -> None:
        self._default_title = default_title
        self._sessions: dict[str, RoomSession] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[RoomSession]:
        return iter(list(self._sessions.values()))

    def get(self, name: str) -> RoomSession | None:
        return self._sessions.get(name)

    def get_or_create(self, name: str) -> RoomSession:
        session = self._sessions.get(name)
        if session is None:
            session = RoomSession(name=name, stream_title=self._default_title)
            self._sessions[name] = session
            logger.info("Session opened for room %s", name)
        return session

    def join(
        self,
        socket_id: str,
        name: str,
        *,
        display_name: str,
        is_viewer: bool,
        is_vip: bool = False,
        is_relay: bool = False,
    ) -> RoomSession:
        """Add a member; the first host into an ownerless room takes control."""

        session = self.get_or_create(name)
        session.users[socket_id] = SessionUser(
            name=display_name,
            is_viewer=is_viewer,
            is_vip=is_vip,
            is_relay=is_relay,
        )
        if not is_viewer and session.owner_id is None:
            session.owner_id = socket_id
            logger.info("Room %s is now owned by %s", name, socket_id)
        return session

    def leave(self, socket_id: str, name: str) -> Departure | None:
        """Remove a member; ownership is released, never handed on."""

        session = self._sessions.get(name)
        if session is None:
            return None
        user = session.users.pop(socket_id, None)
        if user is None:
            return None
        was_owner = session.owner_id == socket_id
        if was_owner:
            session.owner_id = None
            logger.info("Owner %s left room %s; ownership released", socket_id, name)
        closed = not session.users
        if closed:
            self._sessions.pop(name, None)
            logger.info("Session closed for room %s", name)
        return Departure(user=user, was_owner=was_owner, session_closed=closed)

    def promote(self, name: str, current_owner_id: str, target_id: str) -> bool:
        # Allowed while the room is locked: only the owner can get here.
        session = self._sessions.get(name)
        if session is None or not session.is_owner(current_owner_id):
            return False
        if target_id == current_owner_id or target_id not in session.users:
            return False
        session.owner_id = target_id
        return True

    def lock(self, name: str, owner_id: str, locked: bool) -> bool:
        session = self._sessions.get(name)
        if session is None or not session.is_owner(owner_id):
            return False
        session.locked = bool(locked)
        return True

    def kick(self, name: str, owner_id: str, target_id: str) -> Departure | None:
        session = self._sessions.get(name)
        if session is None or not session.is_owner(owner_id) or target_id == owner_id:
            return None
        return self.leave(target_id, name)

    def set_title(self, name: str, owner_id: str, title: str) -> bool:
        session = self._sessions.get(name)
        if session is None or not session.is_owner(owner_id):
            return False
        session.stream_title = title
        return True

    def request_call(self, name: str, socket_id: str) -> bool:
        session = self._sessions.get(name)
        user = session.users.get(socket_id) if session is not None else None
        if user is None:
            return False
        user.requesting_call = True
        return True
