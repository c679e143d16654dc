"""Password hashing and opaque token helpers."""

from __future__ import annotations

import secrets

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_password_hash(password: str) -> str:
    """Hash a room password for storing in the directory."""

    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verify a plain password against its stored hash.

    Malformed hashes count as a mismatch rather than an error.
    """

    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def new_vip_token() -> str:
    return secrets.token_urlsafe(24)
