"""Durable registry of claimed rooms."""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from app.core.names import generate_vip_code, names_match, normalize_room_name, normalize_vip_code
from app.core.security import get_password_hash, verify_password
from app.models.enums import Privacy, ReasonCode
from app.monitoring.metrics import directory_persist_failures_total
from app.services.records import RoomRecord, VipCode
from app.services.repository import RepositoryError, RoomRepository
from app.services.results import Outcome

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RedeemedCode:
    room_name: str
    code: str
    max_uses: int | None
    uses_left: int | None
    used: int


class RoomDirectory:
    """In-memory view of every room record, mirrored to a repository.

    Mutations are applied to a copy of the record and written to the
    repository under a lock; memory is only updated once the write has
    succeeded, so a failed write leaves both sides unchanged.
    """

    def __init__(
        self,
        repository: RoomRepository,
        *,
        name_max_length: int = 50,
        code_length: int = 6,
        code_attempts: int = 32,
        code_factory: Callable[[int], str] = generate_vip_code,
    ) -> None:
        self._repository = repository
        self._name_max_length = name_max_length
        self._code_length = code_length
        self._code_attempts = code_attempts
        self._code_factory = code_factory
        self._rooms: dict[str, RoomRecord] = {}
        self._code_owners: dict[str, str] = {}
        self._write_lock = threading.Lock()

    def load(self) -> int:
        """Populate memory from the repository; returns the record count."""

        documents = self._repository.load_all()
        self._rooms.clear()
        self._code_owners.clear()
        for name, document in documents.items():
            try:
                record = RoomRecord.from_document(document)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable room record %r", name)
                continue
            self._rooms[record.name] = record
            self._index_codes(None, record)
        return len(self._rooms)

    def normalize(self, name: object) -> str:
        return normalize_room_name(name, self._name_max_length)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, name: object) -> RoomRecord | None:
        record = self._rooms.get(self.normalize(name))
        return copy.deepcopy(record) if record is not None else None

    def exists(self, name: object) -> bool:
        return self.normalize(name) in self._rooms

    def list_vip_codes(self, name: object) -> list[dict[str, Any]]:
        record = self._rooms.get(self.normalize(name))
        return record.list_codes() if record is not None else []

    def list_public_rooms(self) -> list[dict[str, Any]]:
        return [
            {
                "name": record.name,
                "viewers": record.viewer_count,
                "title": record.title,
                "live": record.live,
            }
            for record in self._rooms.values()
            if record.privacy is Privacy.PUBLIC and record.live
        ]

    # ------------------------------------------------------------------
    # Creation and ownership
    # ------------------------------------------------------------------
    def create_room(
        self,
        name: object,
        password_hash: str | None = None,
        privacy: Privacy = Privacy.PUBLIC,
    ) -> Outcome[RoomRecord]:
        normalized = self.normalize(name)
        if not normalized:
            return Outcome.failure(ReasonCode.INVALID_NAME)
        if normalized in self._rooms:
            return Outcome.failure(ReasonCode.ALREADY_EXISTS)

        record = RoomRecord(
            name=normalized,
            owner_password_hash=password_hash or None,
            privacy=Privacy(privacy),
        )
        if not self._persist(record, operation="create"):
            return Outcome.failure(ReasonCode.PERSISTENCE_FAILED)
        self._rooms[normalized] = record
        logger.info("Room %s created (%s)", normalized, record.privacy.value)
        return Outcome.success(copy.deepcopy(record))

    def claim(
        self, name: object, password: str, privacy: Privacy = Privacy.PUBLIC
    ) -> Outcome[RoomRecord]:
        """Attach an owner password to a room, creating the record if needed.

        Re-claiming a protected room with its own password succeeds without
        changes. Permanent rooms can only be claimed by their password holder.
        """

        normalized = self.normalize(name)
        if not normalized:
            return Outcome.failure(ReasonCode.INVALID_NAME)
        record = self._rooms.get(normalized)
        if record is None:
            return self.create_room(normalized, get_password_hash(password), privacy)
        if record.has_password:
            if not verify_password(password, record.owner_password_hash):
                return Outcome.failure(ReasonCode.INVALID_PASSWORD)
            return Outcome.success(copy.deepcopy(record))
        if record.permanent:
            return Outcome.failure(ReasonCode.ALREADY_EXISTS)

        password_hash = get_password_hash(password)

        def apply(draft: RoomRecord) -> Outcome[RoomRecord]:
            draft.owner_password_hash = password_hash
            draft.privacy = Privacy(privacy)
            if draft.privacy is Privacy.PUBLIC:
                draft.vip_required = False
            return Outcome.success(draft)

        return self._mutate(normalized, apply, operation="claim")

    def authenticate(self, name: object, password: str | None) -> Outcome[None]:
        record = self._rooms.get(self.normalize(name))
        if record is None:
            return Outcome.failure(ReasonCode.NOT_FOUND)
        if not record.has_password:
            return Outcome.success()
        if verify_password(password or "", record.owner_password_hash):
            return Outcome.success()
        return Outcome.failure(ReasonCode.INVALID_PASSWORD)

    def enter_host(
        self, name: object, password: str | None, privacy: Privacy = Privacy.PUBLIC
    ) -> Outcome[bool]:
        """Create the room, or check the owner password of an existing one.

        The value tells whether the room was created by this call.
        """

        normalized = self.normalize(name)
        if not normalized:
            return Outcome.failure(ReasonCode.INVALID_NAME)
        if normalized not in self._rooms:
            password_hash = get_password_hash(password) if password else None
            created = self.create_room(normalized, password_hash, privacy)
            return Outcome.success(True) if created.ok else Outcome.failure(created.error)
        checked = self.authenticate(normalized, password)
        return Outcome.success(False) if checked.ok else Outcome.failure(checked.error)

    def mark_permanent(self, name: object) -> Outcome[RoomRecord]:
        def apply(draft: RoomRecord) -> Outcome[RoomRecord]:
            draft.permanent = True
            return Outcome.success(draft)

        return self._mutate(self.normalize(name), apply, operation="mark_permanent")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def update_privacy(self, name: object, privacy: Privacy) -> Outcome[RoomRecord]:
        def apply(draft: RoomRecord) -> Outcome[RoomRecord]:
            draft.privacy = Privacy(privacy)
            if draft.privacy is Privacy.PUBLIC:
                draft.vip_required = False
            return Outcome.success(draft)

        return self._mutate(self.normalize(name), apply, operation="update_privacy")

    def update_vip_required(self, name: object, vip_required: bool) -> Outcome[bool]:
        """Toggle VIP gating; public rooms are always stored as not gated."""

        def apply(draft: RoomRecord) -> Outcome[bool]:
            draft.vip_required = bool(vip_required) and draft.privacy is Privacy.PRIVATE
            return Outcome.success(draft.vip_required)

        return self._mutate(self.normalize(name), apply, operation="update_vip_required")

    def update_live(
        self,
        name: object,
        *,
        live: bool | None = None,
        viewers: int | None = None,
        title: str | None = None,
    ) -> Outcome[RoomRecord]:
        def apply(draft: RoomRecord) -> Outcome[RoomRecord]:
            if live is not None:
                draft.live = bool(live)
            if viewers is not None:
                draft.viewer_count = max(0, int(viewers))
            if title is not None:
                draft.title = title or None
            return Outcome.success(draft)

        return self._mutate(self.normalize(name), apply, operation="update_live")

    def adjust_viewer_count(self, name: object, delta: int) -> Outcome[int]:
        def apply(draft: RoomRecord) -> Outcome[int]:
            draft.viewer_count = max(0, draft.viewer_count + delta)
            return Outcome.success(draft.viewer_count)

        return self._mutate(self.normalize(name), apply, operation="adjust_viewers")

    # ------------------------------------------------------------------
    # VIP roster and codes
    # ------------------------------------------------------------------
    def add_vip_user(self, name: object, display_name: str) -> Outcome[list[str]]:
        trimmed = display_name.strip() if isinstance(display_name, str) else ""
        if not trimmed:
            return Outcome.failure(ReasonCode.INVALID_NAME)

        def apply(draft: RoomRecord) -> Outcome[list[str]]:
            if not draft.is_vip_user(trimmed):
                draft.vip_users.append(trimmed)
            return Outcome.success(list(draft.vip_users))

        return self._mutate(self.normalize(name), apply, operation="add_vip_user")

    def remove_vip_user(self, name: object, display_name: str) -> Outcome[list[str]]:
        def apply(draft: RoomRecord) -> Outcome[list[str]]:
            remaining = [user for user in draft.vip_users if not names_match(user, display_name)]
            if len(remaining) == len(draft.vip_users):
                return Outcome.failure(ReasonCode.NOT_FOUND)
            draft.vip_users = remaining
            return Outcome.success(list(remaining))

        return self._mutate(self.normalize(name), apply, operation="remove_vip_user")

    def generate_vip_code(self, name: object, max_uses: int | None = None) -> Outcome[dict[str, Any]]:
        def apply(draft: RoomRecord) -> Outcome[dict[str, Any]]:
            for _ in range(self._code_attempts):
                code = self._code_factory(self._code_length)
                if code not in self._code_owners and code not in draft.vip_codes:
                    break
            else:
                logger.error("VIP code space exhausted for room %s", draft.name)
                return Outcome.failure(ReasonCode.CODE_SPACE_EXHAUSTED)
            meta = VipCode.issue(max_uses)
            draft.vip_codes[code] = meta
            return Outcome.success(meta.to_public(code))

        return self._mutate(self.normalize(name), apply, operation="generate_vip_code")

    def revoke_vip_code(self, name: object, code: str) -> Outcome[None]:
        normalized_code = normalize_vip_code(code)

        def apply(draft: RoomRecord) -> Outcome[None]:
            if draft.vip_codes.pop(normalized_code, None) is None:
                return Outcome.failure(ReasonCode.NOT_FOUND)
            return Outcome.success()

        return self._mutate(self.normalize(name), apply, operation="revoke_vip_code")

    def redeem_code(self, code: object, room_name: object = None) -> Outcome[RedeemedCode]:
        """Consume one use of ``code`` in a single step.

        Unknown, exhausted and foreign-room codes all report
        ``INVALID_OR_EXHAUSTED``.
        """

        normalized_code = normalize_vip_code(code)
        owner = self._code_owners.get(normalized_code) if normalized_code else None
        if owner is None:
            return Outcome.failure(ReasonCode.INVALID_OR_EXHAUSTED)
        if room_name is not None and self.normalize(room_name) != owner:
            return Outcome.failure(ReasonCode.INVALID_OR_EXHAUSTED)

        def apply(draft: RoomRecord) -> Outcome[RedeemedCode]:
            meta = draft.vip_codes.get(normalized_code)
            if meta is None or not meta.redeemable:
                return Outcome.failure(ReasonCode.INVALID_OR_EXHAUSTED)
            meta.consume()
            return Outcome.success(
                RedeemedCode(
                    room_name=draft.name,
                    code=normalized_code,
                    max_uses=meta.max_uses,
                    uses_left=meta.uses_left,
                    used=meta.used,
                )
            )

        return self._mutate(owner, apply, operation="redeem_code")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _mutate(
        self,
        name: str,
        apply: Callable[[RoomRecord], Outcome[Any]],
        *,
        operation: str,
    ) -> Outcome[Any]:
        if not name:
            return Outcome.failure(ReasonCode.INVALID_NAME)
        current = self._rooms.get(name)
        if current is None:
            return Outcome.failure(ReasonCode.NOT_FOUND)

        draft = copy.deepcopy(current)
        outcome = apply(draft)
        if not outcome.ok:
            return outcome
        if not self._persist(draft, operation=operation):
            return Outcome.failure(ReasonCode.PERSISTENCE_FAILED)

        self._rooms[name] = draft
        self._index_codes(current, draft)
        if isinstance(outcome.value, RoomRecord):
            return Outcome.success(copy.deepcopy(draft))
        return outcome

    def _persist(self, record: RoomRecord, *, operation: str) -> bool:
        document = record.to_document()
        with self._write_lock:
            try:
                self._repository.put(record.name, document)
            except RepositoryError:
                directory_persist_failures_total.labels(operation).inc()
                logger.warning(
                    "Failed to persist room %s during %s; change discarded",
                    record.name,
                    operation,
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                )
                return False
        return True

    def _index_codes(self, previous: RoomRecord | None, current: RoomRecord) -> None:
        if previous is not None:
            for code in previous.vip_codes:
                if self._code_owners.get(code) == previous.name:
                    self._code_owners.pop(code, None)
        for code in current.vip_codes:
            self._code_owners[code] = current.name
