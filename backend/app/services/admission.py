"""Join admission rules.

Rules are evaluated strictly in the order of :data:`ADMISSION_RULES`; the
first rule that returns a decision wins. The order is part of the
contract: it decides which reason is reported when several checks would
fail, e.g. roster membership is always checked before code validity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from app.models.enums import ParticipantRole, Privacy, ReasonCode
from app.monitoring.metrics import admission_decisions_total
from app.services.records import RoomRecord
from app.services.sessions import RoomSession


@dataclass(slots=True, frozen=True)
class JoinRequest:
    """One join attempt.

    ``vip_granted`` marks a connection that already proved VIP access to
    this room; it still has to pass the roster check.
    """

    socket_id: str
    room_name: str
    display_name: str
    wants_host: bool
    authenticated: bool = False
    vip_code: str | None = None
    vip_token: str | None = None
    vip_granted: bool = False

    @property
    def has_vip_credential(self) -> bool:
        return bool(self.vip_code or self.vip_token)


@dataclass(slots=True, frozen=True)
class Decision:
    accept: bool
    role: ParticipantRole | None = None
    reason: ReasonCode | None = None

    @property
    def is_vip(self) -> bool:
        return self.role is ParticipantRole.VIP

    @property
    def is_host(self) -> bool:
        return self.role is ParticipantRole.HOST

    @classmethod
    def allow(cls, role: ParticipantRole) -> "Decision":
        return cls(accept=True, role=role)

    @classmethod
    def reject(cls, reason: ReasonCode) -> "Decision":
        return cls(accept=False, reason=reason)


@dataclass(slots=True)
class AdmissionState:
    """Everything a rule may look at.

    ``redeem_code`` and ``consume_token`` spend a credential and report
    whether it was valid for this room; they are only invoked by the VIP
    grant rule, after roster membership has been confirmed.
    """

    record: RoomRecord | None
    session: RoomSession | None
    redeem_code: Callable[[str], bool]
    consume_token: Callable[[str], bool]

    @property
    def privacy(self) -> Privacy:
        return self.record.privacy if self.record is not None else Privacy.PUBLIC


Rule = Callable[[JoinRequest, AdmissionState], "Decision | None"]


def _locked_room(request: JoinRequest, state: AdmissionState) -> Decision | None:
    session = state.session
    if (
        request.wants_host
        and session is not None
        and session.locked
        and not session.is_owner(request.socket_id)
    ):
        return Decision.reject(ReasonCode.LOCKED)
    return None


def _host_password(request: JoinRequest, state: AdmissionState) -> Decision | None:
    if not request.wants_host:
        return None
    if state.record is not None and state.record.has_password and not request.authenticated:
        return Decision.reject(ReasonCode.AUTH_REQUIRED)
    return Decision.allow(ParticipantRole.HOST)


def _public_viewer(request: JoinRequest, state: AdmissionState) -> Decision | None:
    if state.privacy is Privacy.PUBLIC:
        return Decision.allow(ParticipantRole.VIEWER)
    return None


def _private_without_vip(request: JoinRequest, state: AdmissionState) -> Decision | None:
    if state.record is not None and not state.record.vip_required:
        return Decision.allow(ParticipantRole.VIEWER)
    return None


def _vip_roster(request: JoinRequest, state: AdmissionState) -> Decision | None:
    if state.record is None or not state.record.is_vip_user(request.display_name):
        return Decision.reject(ReasonCode.VIP_USERNAME_REQUIRED)
    return None


def _vip_grant(request: JoinRequest, state: AdmissionState) -> Decision | None:
    if request.vip_granted:
        return Decision.allow(ParticipantRole.VIP)
    if request.vip_code and state.redeem_code(request.vip_code):
        return Decision.allow(ParticipantRole.VIP)
    if request.vip_token and state.consume_token(request.vip_token):
        return Decision.allow(ParticipantRole.VIP)
    return None


def _vip_missing(request: JoinRequest, state: AdmissionState) -> Decision | None:
    if not request.has_vip_credential:
        return Decision.reject(ReasonCode.VIP_CODE_REQUIRED)
    return Decision.reject(ReasonCode.INVALID_OR_EXHAUSTED)


ADMISSION_RULES: tuple[Rule, ...] = (
    _locked_room,
    _host_password,
    _public_viewer,
    _private_without_vip,
    _vip_roster,
    _vip_grant,
    _vip_missing,
)


def evaluate(
    request: JoinRequest,
    state: AdmissionState,
    rules: Sequence[Rule] = ADMISSION_RULES,
) -> Decision:
    for rule in rules:
        decision = rule(request, state)
        if decision is not None:
            break
    else:
        decision = Decision.reject(ReasonCode.INVALID_REQUEST)

    role = "host" if request.wants_host else "viewer"
    outcome = decision.role.value if decision.accept and decision.role else decision.reason.value
    admission_decisions_total.labels(role, outcome).inc()
    return decision
