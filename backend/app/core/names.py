"""Normalisation helpers for room names, display names and VIP codes."""

from __future__ import annotations

import secrets
import unicodedata
from typing import Callable

VIP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def _clean(value: object) -> str:
    if not isinstance(value, str):
        return ""
    return unicodedata.normalize("NFKC", value).strip()


def normalize_room_name(value: object, max_length: int = 50) -> str:
    """Return the canonical room key, or an empty string when unusable.

    Names longer than ``max_length`` are rejected rather than truncated so
    two distinct requests can never collapse onto the same room.
    """

    cleaned = _clean(value)
    if not cleaned or len(cleaned) > max_length:
        return ""
    return cleaned


def normalize_display_name(value: object, fallback: str, max_length: int = 30) -> str:
    cleaned = _clean(value) or fallback
    return cleaned[:max_length]


def names_match(left: str, right: str) -> bool:
    """Case-insensitive display name comparison used for the VIP roster."""

    return _clean(left).casefold() == _clean(right).casefold()


def normalize_vip_code(value: object) -> str:
    return _clean(value).upper()


def normalize_title(value: object, default: str, max_length: int = 100) -> str:
    cleaned = _clean(value)
    return cleaned[:max_length] if cleaned else default


def generate_vip_code(
    length: int = 6, choice: Callable[[str], str] = secrets.choice
) -> str:
    """Generate a code from an alphabet without look-alike characters (0/O, 1/I)."""

    return "".join(choice(VIP_CODE_ALPHABET) for _ in range(length))
