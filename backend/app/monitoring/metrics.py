"""Metric definitions for the signaling server."""

from __future__ import annotations

from .registry import registry


signaling_connections = registry.gauge(
    "signaling_active_connections",
    "Number of websocket connections currently attached to this process.",
    label_names=("scope",),
)

signaling_events_total = registry.counter(
    "signaling_events_total",
    "Client events processed by the signaling gateway.",
    label_names=("event", "outcome"),
)

admission_decisions_total = registry.counter(
    "admission_decisions_total",
    "Join attempts by requested role and resulting role or rejection reason.",
    label_names=("role", "outcome"),
)

relay_placements_total = registry.counter(
    "relay_placements_total",
    "Relay tree placement events.",
    label_names=("outcome",),
)

directory_persist_failures_total = registry.counter(
    "directory_persist_failures_total",
    "Room directory writes that could not be persisted and were rolled back.",
    label_names=("operation",),
)

rooms_active = registry.gauge(
    "signaling_active_rooms",
    "Number of rooms with a live session.",
)
