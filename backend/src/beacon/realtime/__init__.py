"""Websocket connection bookkeeping."""

from .connections import ClientConnection, ConnectionRegistry, safe_send_json

__all__ = ["ClientConnection", "ConnectionRegistry", "safe_send_json"]
