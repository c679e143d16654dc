"""Client to server websocket messages.

Every frame is a JSON object tagged by ``type``. Field names follow the
camelCase wire format; snake_case names are accepted as well.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from app.models.enums import Privacy


def _room_field(*aliases: str) -> Any:
    return Field(default="", validation_alias=AliasChoices(*(aliases or ("room", "roomName"))))


class DeviceInfo(BaseModel):
    """Network hints a relay viewer reports about itself."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    is_mobile: bool = Field(default=False, alias="isMobile")
    connection: str | None = None
    bandwidth: float | None = Field(default=None, ge=0)

    def as_mapping(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class _ClientMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ack: int | str | None = None


class _PrivacyMixin(BaseModel):
    privacy: Privacy = Privacy.PUBLIC

    @field_validator("privacy", mode="before")
    @classmethod
    def coerce_privacy(cls, value: Any) -> str:
        return Privacy.PRIVATE.value if str(value or "").strip().lower() == "private" else Privacy.PUBLIC.value


class ClaimRoomMessage(_PrivacyMixin, _ClientMessage):
    type: Literal["claim-room"]
    room: str = _room_field("name", "roomName", "room")
    password: str = Field(min_length=1)


class AuthHostRoomMessage(_ClientMessage):
    type: Literal["auth-host-room"]
    room: str = _room_field("name", "roomName", "room")
    password: str = ""


class EnterHostRoomMessage(_PrivacyMixin, _ClientMessage):
    type: Literal["enter-host-room"]
    room: str = _room_field("roomName", "name", "room")
    password: str | None = None


class CheckRoomClaimedMessage(_ClientMessage):
    type: Literal["check-room-claimed"]
    room: str = _room_field("roomName", "room", "name")


class JoinRoomMessage(_ClientMessage):
    type: Literal["join-room"]
    room: str = _room_field()
    name: str | None = None
    is_viewer: bool = Field(default=False, alias="isViewer")
    vip_code: str | None = Field(default=None, alias="vipCode")
    vip_token: str | None = Field(default=None, alias="vipToken")


class JoinRoomRelayMessage(_ClientMessage):
    type: Literal["join-room-relay"]
    room: str = _room_field()
    name: str | None = None
    device_info: DeviceInfo | None = Field(default=None, alias="deviceInfo")
    vip_code: str | None = Field(default=None, alias="vipCode")
    vip_token: str | None = Field(default=None, alias="vipToken")


class GenerateVipCodeMessage(_ClientMessage):
    type: Literal["generate-vip-code"]
    room: str = _room_field()
    max_uses: int | None = Field(default=None, alias="maxUses")


class RevokeVipCodeMessage(_ClientMessage):
    type: Literal["revoke-vip-code"]
    room: str = _room_field("roomName", "room")
    code: str = ""


class GetVipCodesMessage(_ClientMessage):
    type: Literal["get-vip-codes"]
    room: str = _room_field("roomName", "room")


class AddVipUserMessage(_ClientMessage):
    type: Literal["add-vip-user"]
    room: str = _room_field()
    user_name: str = Field(default="", validation_alias=AliasChoices("userName", "user_name", "name"))


class RemoveVipUserMessage(AddVipUserMessage):
    type: Literal["remove-vip-user"]  # type: ignore[assignment]


class RedeemVipCodeMessage(_ClientMessage):
    type: Literal["redeem-vip-code"]
    code: str = ""
    desired_name: str | None = Field(default=None, alias="desiredName")


class UpdateRoomPrivacyMessage(_PrivacyMixin, _ClientMessage):
    type: Literal["update-room-privacy"]
    room: str = _room_field("roomName", "name", "room")


class UpdateVipRequiredMessage(_ClientMessage):
    type: Literal["update-vip-required"]
    room: str = _room_field("roomName", "room")
    vip_required: bool = Field(default=False, alias="vipRequired")


class UpdateRoomLiveMessage(_ClientMessage):
    type: Literal["update-room-live"]
    room: str = _room_field("roomName", "name", "room")
    live: bool | None = Field(default=None, validation_alias=AliasChoices("live", "isLive"))
    viewers: int | None = Field(default=None, ge=0)
    title: str | None = None


class GetRoomInfoMessage(_ClientMessage):
    type: Literal["get-room-info"]
    room: str = _room_field("roomName", "room", "name")


class ListPublicRoomsMessage(_ClientMessage):
    type: Literal["list-public-rooms"]


class PromoteToHostMessage(_ClientMessage):
    type: Literal["promote-to-host"]
    target_id: str = Field(alias="targetId")


class LockRoomMessage(_ClientMessage):
    type: Literal["lock-room"]
    locked: bool = True


class KickUserMessage(_ClientMessage):
    type: Literal["kick-user"]
    target_id: str = Field(alias="targetId")


class UpdateStreamTitleMessage(_ClientMessage):
    type: Literal["update-stream-title"]
    title: str | None = None


class RequestToCallMessage(_ClientMessage):
    type: Literal["request-to-call"]


class PingMessage(_ClientMessage):
    type: Literal["ping"]


class SignalMessage(_ClientMessage):
    """Opaque WebRTC negotiation payload routed to ``target_id``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: Literal[
        "offer",
        "answer",
        "ice-candidate",
        "call-offer",
        "call-answer",
        "call-ice",
        "call-end",
        "relay-offer",
        "relay-answer",
        "relay-ice",
        "ring-user",
    ]
    target_id: str | None = Field(default=None, validation_alias=AliasChoices("targetId", "to", "target_id"))

    @property
    def payload(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


ClientMessage = Annotated[
    Union[
        ClaimRoomMessage,
        AuthHostRoomMessage,
        EnterHostRoomMessage,
        CheckRoomClaimedMessage,
        JoinRoomMessage,
        JoinRoomRelayMessage,
        GenerateVipCodeMessage,
        RevokeVipCodeMessage,
        GetVipCodesMessage,
        AddVipUserMessage,
        RemoveVipUserMessage,
        RedeemVipCodeMessage,
        UpdateRoomPrivacyMessage,
        UpdateVipRequiredMessage,
        UpdateRoomLiveMessage,
        GetRoomInfoMessage,
        ListPublicRoomsMessage,
        PromoteToHostMessage,
        LockRoomMessage,
        KickUserMessage,
        UpdateStreamTitleMessage,
        RequestToCallMessage,
        PingMessage,
        SignalMessage,
    ],
    Field(discriminator="type"),
]

client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: Any) -> ClientMessage:
    """Validate a decoded frame; raises :class:`pydantic.ValidationError`."""

    return client_message_adapter.validate_python(data)


__all__ = [
    "AddVipUserMessage",
    "AuthHostRoomMessage",
    "CheckRoomClaimedMessage",
    "ClaimRoomMessage",
    "ClientMessage",
    "DeviceInfo",
    "EnterHostRoomMessage",
    "GenerateVipCodeMessage",
    "GetRoomInfoMessage",
    "GetVipCodesMessage",
    "JoinRoomMessage",
    "JoinRoomRelayMessage",
    "KickUserMessage",
    "ListPublicRoomsMessage",
    "LockRoomMessage",
    "PingMessage",
    "PromoteToHostMessage",
    "RedeemVipCodeMessage",
    "RemoveVipUserMessage",
    "RequestToCallMessage",
    "RevokeVipCodeMessage",
    "SignalMessage",
    "UpdateRoomLiveMessage",
    "UpdateRoomPrivacyMessage",
    "UpdateStreamTitleMessage",
    "UpdateVipRequiredMessage",
    "client_message_adapter",
    "parse_client_message",
]
