"""Single-use VIP grant tokens issued after a code redemption."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from app.core.security import new_vip_token


@dataclass(slots=True, frozen=True)
class VipToken:
    token: str
    room_name: str
    issued_at: float


class VipTokenStore:
    """Room-scoped tokens that expire after a fixed TTL.

    Expiry is evaluated lazily when a token is presented or a new one is
    issued; there is no background sweep.
    """

    def __init__(
        self,
        ttl_seconds: float = 15 * 60,
        *,
        clock: Callable[[], float] = time.time,
        token_factory: Callable[[], str] = new_vip_token,
    ) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._token_factory = token_factory
        self._tokens: dict[str, VipToken] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._tokens)

    def issue(self, room_name: str) -> VipToken:
        now = self._clock()
        self._prune(now)
        token = self._token_factory()
        while token in self._tokens:
            token = self._token_factory()
        entry = VipToken(token=token, room_name=room_name, issued_at=now)
        self._tokens[token] = entry
        return entry

    def _prune(self, now: float) -> None:
        expired = [key for key, entry in self._tokens.items() if now - entry.issued_at > self._ttl]
        for key in expired:
            del self._tokens[key]

    def consume(self, token: str | None, room_name: str) -> bool:
        """Spend ``token`` for ``room_name``; returns whether it was valid.

        A token presented for another room is left in place so its rightful
        room can still accept it.
        """

        if not token:
            return False
        entry = self._tokens.get(token)
        if entry is None:
            return False
        if self._clock() - entry.issued_at > self._ttl:
            self._tokens.pop(token, None)
            return False
        if entry.room_name != room_name:
            return False
        self._tokens.pop(token, None)
        return True
