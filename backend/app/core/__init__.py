"""Core utilities for the Beacon backend."""

from .names import (
    generate_vip_code,
    names_match,
    normalize_display_name,
    normalize_room_name,
    normalize_title,
    normalize_vip_code,
)
from .security import get_password_hash, verify_password

__all__ = [
    "generate_vip_code",
    "names_match",
    "normalize_display_name",
    "normalize_room_name",
    "normalize_title",
    "normalize_vip_code",
    "get_password_hash",
    "verify_password",
]
