"""Best-effort forwarding of WebRTC negotiation payloads.

Payloads are opaque: the relay never inspects SDP or ICE contents, it
only stamps the sender and routes by target socket id. Messages for a
target that is not connected are dropped without buffering.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from app.monitoring.metrics import signaling_events_total

from ..realtime.connections import ConnectionRegistry

logger = logging.getLogger(__name__)

BROADCAST_KINDS = frozenset({"offer", "answer", "ice-candidate"})
CALL_KINDS = frozenset({"call-offer", "call-answer", "call-ice", "call-end", "ring-user"})
RELAY_KINDS = frozenset({"relay-offer", "relay-answer", "relay-ice"})
SIGNAL_KINDS = BROADCAST_KINDS | CALL_KINDS | RELAY_KINDS

# Routing fields consumed by the relay itself; everything else is payload.
_ROUTING_KEYS = frozenset({"type", "ack", "targetId", "target_id", "to", "from"})


def build_signal_envelope(
    kind: str, sender_id: str, payload: Mapping[str, Any]
) -> dict[str, Any]:
    """Normalise an outgoing signalling message."""

    body: dict[str, Any] = {"type": kind, "from": sender_id}
    for key, value in payload.items():
        if key in _ROUTING_KEYS:
            continue
        body[key] = value
    return body


class SignalingRelay:
    """Forward negotiation payloads between live connections."""

    def __init__(self, connections: ConnectionRegistry) -> None:
        self._connections = connections

    async def forward(
        self,
        kind: str,
        sender_id: str,
        target_id: str | None,
        payload: Mapping[str, Any],
    ) -> bool:
        if kind not in SIGNAL_KINDS:
            raise ValueError(f"Unsupported signal kind: {kind}")
        if not target_id or not self._connections.is_live(target_id):
            signaling_events_total.labels(kind, "dropped").inc()
            logger.debug("Dropping %s from %s: target %s is not connected", kind, sender_id, target_id)
            return False
        delivered = await self._connections.send(
            target_id, build_signal_envelope(kind, sender_id, payload)
        )
        signaling_events_total.labels(kind, "forwarded" if delivered else "dropped").inc()
        return delivered
