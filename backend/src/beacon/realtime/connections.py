"""Live websocket connections addressed by socket id."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import signaling_connections

logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send JSON through ``websocket``, swallowing disconnect errors.

    Returns True if the message was handed to the socket, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


@dataclass(slots=True)
class ClientConnection:
    """Per-socket state that lives exactly as long as the connection."""

    websocket: WebSocket
    socket_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    room: str | None = None
    name: str | None = None
    is_viewer: bool = False
    is_vip: bool = False
    is_relay: bool = False
    host_auth_rooms: set[str] = field(default_factory=set)
    vip_rooms: set[str] = field(default_factory=set)

    def is_authenticated_for(self, room: str) -> bool:
        return room in self.host_auth_rooms

    def has_vip_grant(self, room: str) -> bool:
        return room in self.vip_rooms

    def reset_membership(self) -> None:
        self.room = None
        self.name = None
        self.is_viewer = False
        self.is_vip = False
        self.is_relay = False


class ConnectionRegistry:
    """Track active connections so events can be routed by socket id."""

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def register(self, connection: ClientConnection) -> None:
        self._connections[connection.socket_id] = connection
        signaling_connections.labels("signal").inc()

    def unregister(self, socket_id: str) -> ClientConnection | None:
        connection = self._connections.pop(socket_id, None)
        if connection is not None:
            signaling_connections.labels("signal").dec()
        return connection

    def get(self, socket_id: str | None) -> ClientConnection | None:
        if socket_id is None:
            return None
        return self._connections.get(socket_id)

    def is_live(self, socket_id: str | None) -> bool:
        connection = self.get(socket_id)
        return (
            connection is not None
            and connection.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, socket_id: str | None, payload: dict[str, Any]) -> bool:
        connection = self.get(socket_id)
        if connection is None:
            return False
        return await safe_send_json(connection.websocket, payload)

    async def broadcast(
        self,
        socket_ids: Iterable[str],
        payload: dict[str, Any],
        *,
        exclude: Iterable[str] | None = None,
    ) -> None:
        exclude_set = set(exclude or [])
        for socket_id in list(socket_ids):
            if socket_id in exclude_set:
                continue
            await self.send(socket_id, payload)

    async def close(self, socket_id: str, *, code: int = 1000, reason: str | None = None) -> None:
        connection = self.get(socket_id)
        if connection is None:
            return
        if connection.websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await connection.websocket.close(code=code, reason=reason)
        except RuntimeError as e:
            logger.debug("Failed to close websocket %s: %s", socket_id, e)
