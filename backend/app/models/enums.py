from __future__ import annotations

from enum import Enum


class Privacy(str, Enum):
    """Who may watch a room without further checks."""

    PUBLIC = "public"
    PRIVATE = "private"


class ParticipantRole(str, Enum):
    """Role granted to a connection by the admission controller."""

    HOST = "host"
    VIEWER = "viewer"
    VIP = "vip"


class ReasonCode(str, Enum):
    """Failure reasons reported back through request acknowledgements."""

    ALREADY_EXISTS = "ALREADY_EXISTS"
    NOT_FOUND = "NOT_FOUND"
    INVALID_NAME = "INVALID_NAME"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    LOCKED = "LOCKED"
    VIP_USERNAME_REQUIRED = "VIP_USERNAME_REQUIRED"
    VIP_CODE_REQUIRED = "VIP_CODE_REQUIRED"
    INVALID_OR_EXHAUSTED = "INVALID_OR_EXHAUSTED"
    NO_CAPACITY = "NO_CAPACITY"
    CODE_SPACE_EXHAUSTED = "CODE_SPACE_EXHAUSTED"
    NOT_OWNER = "NOT_OWNER"
    INVALID_REQUEST = "INVALID_REQUEST"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
