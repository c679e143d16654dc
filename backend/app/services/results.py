"""Result values returned by the domain services instead of raising."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from app.models.enums import ReasonCode

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Outcome(Generic[T]):
    """Success flag plus either a value or a reason code."""

    ok: bool
    value: T | None = None
    error: ReasonCode | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ReasonCode) -> "Outcome[T]":
        return cls(ok=False, error=error)

    def to_reply(self, **extra: Any) -> dict[str, Any]:
        """Render the acknowledgement body sent back to the client."""

        body: dict[str, Any] = {"ok": self.ok}
        if self.error is not None:
            body["error"] = self.error.value
        body.update(extra)
        return body
