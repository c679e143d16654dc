"""Signaling websocket endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState
from pydantic import ValidationError

from beacon.realtime.connections import ClientConnection, safe_send_json

from app.models.enums import ReasonCode
from app.monitoring.metrics import signaling_events_total
from app.schemas.messages import parse_client_message
from app.services.context import ServerContext
from app.services.gateway import SignalingGateway

router = APIRouter(prefix="/ws", tags=["ws"])
logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            idle_long_enough = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if idle_long_enough:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


def _gateway(websocket: WebSocket) -> SignalingGateway:
    state = websocket.app.state
    gateway = getattr(state, "gateway", None)
    if gateway is None or gateway.ctx is not state.context:
        gateway = SignalingGateway(state.context)
        state.gateway = gateway
    return gateway


def _validation_detail(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
        for error in exc.errors()
    ]


async def _send_error(websocket: WebSocket, detail: Any, ack: Any = None) -> None:
    body: dict[str, Any] = {"error": ReasonCode.INVALID_REQUEST.value, "detail": detail}
    if ack is not None:
        await safe_send_json(websocket, {"type": "ack", "ack": ack, "ok": False, **body})
    else:
        await safe_send_json(websocket, {"type": "error", **body})


async def _handle_frame(
    context: ServerContext,
    gateway: SignalingGateway,
    connection: ClientConnection,
    raw_message: str,
) -> None:
    websocket = connection.websocket
    try:
        payload = json.loads(raw_message)
    except json.JSONDecodeError:
        await _send_error(websocket, "Invalid message format")
        return
    if not isinstance(payload, dict):
        await _send_error(websocket, "Message payload must be a JSON object")
        return

    ack = payload.get("ack")
    try:
        message = parse_client_message(payload)
    except ValidationError as exc:
        signaling_events_total.labels("invalid", "rejected").inc()
        await _send_error(websocket, _validation_detail(exc), ack)
        return

    async with context.lock:
        reply = await gateway.dispatch(connection, message)
    if message.ack is not None and reply is not None:
        await safe_send_json(websocket, {"type": "ack", "ack": message.ack, **reply})


@router.websocket("/signal")
async def websocket_signal(websocket: WebSocket) -> None:
    """Room control, admission, relay placement and WebRTC negotiation."""

    context: ServerContext = websocket.app.state.context
    gateway = _gateway(websocket)
    settings = context.settings

    await websocket.accept()
    connection = ClientConnection(websocket=websocket)
    async with context.lock:
        context.connections.register(connection)
    logger.debug("Signaling connection %s opened", connection.socket_id)
    await safe_send_json(websocket, {"type": "welcome", "id": connection.socket_id})

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            await _handle_frame(context, gateway, connection, raw_message)
    finally:
        async with context.lock:
            await gateway.disconnect(connection)
        logger.debug("Signaling connection %s closed", connection.socket_id)
