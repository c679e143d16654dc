"""Directory entries and their document form."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.core.names import names_match
from app.models.enums import Privacy


@dataclass(slots=True)
class VipCode:
    """Usage bookkeeping for one redeemable code.

    ``max_uses`` of ``None`` marks a multi-use code: redemptions are only
    counted and ``uses_left`` stays ``None``.
    """

    max_uses: int | None
    uses_left: int | None
    used: int = 0

    @property
    def multi_use(self) -> bool:
        return self.max_uses is None

    @property
    def redeemable(self) -> bool:
        return self.multi_use or (self.uses_left or 0) > 0

    @classmethod
    def issue(cls, max_uses: int | None) -> "VipCode":
        if max_uses is None or max_uses <= 0:
            return cls(max_uses=None, uses_left=None)
        return cls(max_uses=int(max_uses), uses_left=int(max_uses))

    def consume(self) -> None:
        if not self.multi_use:
            self.uses_left = max(0, (self.uses_left or 0) - 1)
        self.used += 1

    def to_public(self, code: str) -> dict[str, Any]:
        return {
            "code": code,
            "maxUses": self.max_uses,
            "usesLeft": self.uses_left,
            "used": self.used,
            "multiUse": self.multi_use,
        }


@dataclass(slots=True)
class RoomRecord:
    name: str
    owner_password_hash: str | None = None
    privacy: Privacy = Privacy.PUBLIC
    vip_required: bool = False
    vip_users: list[str] = field(default_factory=list)
    vip_codes: dict[str, VipCode] = field(default_factory=dict)
    live: bool = False
    viewer_count: int = 0
    title: str | None = None
    permanent: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_password(self) -> bool:
        return bool(self.owner_password_hash)

    @property
    def vip_gated(self) -> bool:
        return self.privacy is Privacy.PRIVATE and self.vip_required

    def is_vip_user(self, display_name: str) -> bool:
        return any(names_match(entry, display_name) for entry in self.vip_users)

    def list_codes(self) -> list[dict[str, Any]]:
        return [meta.to_public(code) for code, meta in self.vip_codes.items()]

    def to_public(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "privacy": self.privacy.value,
            "vipRequired": self.vip_gated,
            "hasOwnerPassword": self.has_password,
            "live": self.live,
            "viewers": self.viewer_count,
            "title": self.title,
            "permanent": self.permanent,
        }

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ownerPasswordHash": self.owner_password_hash,
            "privacy": self.privacy.value,
            "vipRequired": self.vip_required,
            "vipUsers": list(self.vip_users),
            "vipCodes": {
                code: {"maxUses": meta.max_uses, "usesLeft": meta.uses_left, "used": meta.used}
                for code, meta in self.vip_codes.items()
            },
            "live": self.live,
            "viewerCount": self.viewer_count,
            "title": self.title,
            "permanent": self.permanent,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "RoomRecord":
        try:
            privacy = Privacy(document.get("privacy") or Privacy.PUBLIC.value)
        except ValueError:
            privacy = Privacy.PUBLIC

        codes: dict[str, VipCode] = {}
        for code, meta in (document.get("vipCodes") or {}).items():
            if not isinstance(meta, dict):
                continue
            max_uses = meta.get("maxUses")
            uses_left = meta.get("usesLeft")
            codes[str(code)] = VipCode(
                max_uses=int(max_uses) if max_uses is not None else None,
                uses_left=int(uses_left) if uses_left is not None and max_uses is not None else None,
                used=int(meta.get("used") or 0),
            )

        created_raw = document.get("createdAt")
        try:
            created_at = datetime.fromisoformat(created_raw) if created_raw else None
        except (TypeError, ValueError):
            created_at = None

        return cls(
            name=str(document["name"]),
            owner_password_hash=document.get("ownerPasswordHash") or None,
            privacy=privacy,
            vip_required=bool(document.get("vipRequired")) and privacy is Privacy.PRIVATE,
            vip_users=[str(user) for user in document.get("vipUsers") or []],
            vip_codes=codes,
            live=bool(document.get("live")),
            viewer_count=max(0, int(document.get("viewerCount") or 0)),
            title=document.get("title"),
            permanent=bool(document.get("permanent")),
            created_at=created_at or datetime.now(timezone.utc),
        )
