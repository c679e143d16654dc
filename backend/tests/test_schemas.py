"""Unit tests validating websocket message schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.models.enums import Privacy
from app.schemas.messages import (
    AddVipUserMessage,
    ClaimRoomMessage,
    JoinRoomMessage,
    JoinRoomRelayMessage,
    SignalMessage,
    UpdateRoomLiveMessage,
    parse_client_message,
)
from app.schemas.rooms import RoomInfoRead


def test_room_aliases_are_accepted():
    for key in ("name", "roomName", "room"):
        message = parse_client_message({"type": "claim-room", key: "demo", "password": "pw"})
        assert isinstance(message, ClaimRoomMessage)
        assert message.room == "demo"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("private", Privacy.PRIVATE), ("PRIVATE ", Privacy.PRIVATE), ("secret", Privacy.PUBLIC), (None, Privacy.PUBLIC)],
)
def test_unknown_privacy_is_treated_as_public(raw, expected):
    message = parse_client_message({"type": "claim-room", "name": "demo", "password": "pw", "privacy": raw})
    assert message.privacy is expected


def test_claim_requires_password():
    with pytest.raises(ValidationError):
        parse_client_message({"type": "claim-room", "name": "demo", "password": ""})


def test_join_room_camel_case_fields():
    message = parse_client_message(
        {"type": "join-room", "roomName": "demo", "isViewer": True, "vipCode": "abc123", "ack": 3}
    )
    assert isinstance(message, JoinRoomMessage)
    assert message.is_viewer is True
    assert message.vip_code == "abc123"
    assert message.ack == 3


def test_relay_join_device_info():
    message = parse_client_message(
        {"type": "join-room-relay", "room": "demo", "deviceInfo": {"isMobile": True, "effectiveType": "4g"}}
    )
    assert isinstance(message, JoinRoomRelayMessage)
    assert message.device_info.as_mapping()["isMobile"] is True
    assert message.device_info.as_mapping()["effectiveType"] == "4g"

    with pytest.raises(ValidationError):
        parse_client_message({"type": "join-room-relay", "room": "demo", "deviceInfo": {"bandwidth": -1}})


def test_vip_user_name_aliases():
    for key in ("userName", "user_name", "name"):
        message = parse_client_message({"type": "add-vip-user", "room": "demo", key: "Alice"})
        assert isinstance(message, AddVipUserMessage)
        assert message.user_name == "Alice"


def test_room_live_accepts_is_live_and_rejects_negative_viewers():
    message = parse_client_message({"type": "update-room-live", "roomName": "demo", "isLive": True})
    assert isinstance(message, UpdateRoomLiveMessage)
    assert message.live is True

    with pytest.raises(ValidationError):
        parse_client_message({"type": "update-room-live", "roomName": "demo", "viewers": -2})


def test_signal_payload_passes_through_untouched():
    message = parse_client_message(
        {"type": "ice-candidate", "to": "abc", "candidate": {"sdpMid": "0"}, "ack": 1}
    )
    assert isinstance(message, SignalMessage)
    assert message.target_id == "abc"
    assert message.payload == {"candidate": {"sdpMid": "0"}}


def test_targeted_host_controls_require_target():
    with pytest.raises(ValidationError):
        parse_client_message({"type": "kick-user"})
    with pytest.raises(ValidationError):
        parse_client_message({"type": "promote-to-host"})


def test_unknown_message_type_is_rejected():
    with pytest.raises(ValidationError):
        parse_client_message({"type": "self-destruct"})


def test_room_info_serializes_camel_case():
    info = RoomInfoRead(name="demo", vip_required=True, has_owner_password=True)
    dumped = info.model_dump(by_alias=True)
    assert dumped["vipRequired"] is True
    assert dumped["hasOwnerPassword"] is True
