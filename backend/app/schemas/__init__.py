"""Pydantic schemas for websocket messages and HTTP payloads."""

from .messages import ClientMessage, DeviceInfo, SignalMessage, parse_client_message
from .rooms import PermanentRoomRead, PublicRoomRead, RoomInfoRead

__all__ = [
    "ClientMessage",
    "DeviceInfo",
    "PermanentRoomRead",
    "PublicRoomRead",
    "RoomInfoRead",
    "SignalMessage",
    "parse_client_message",
]
