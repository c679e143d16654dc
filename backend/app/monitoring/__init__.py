"""Metric registry and definitions for the signaling server."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
