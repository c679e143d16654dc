"""Signaling event handlers.

One :class:`SignalingGateway` serves every websocket. Each handler takes
the caller's :class:`ClientConnection` and a validated message, performs
its state transition and emits events; its return value is the
acknowledgement body for requests that carry an ``ack`` id.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from beacon.realtime.connections import ClientConnection
from beacon.signaling.relay import SIGNAL_KINDS

from app.core.names import normalize_display_name, normalize_title
from app.models.enums import ParticipantRole, Privacy, ReasonCode
from app.monitoring.metrics import rooms_active, signaling_events_total
from app.schemas import messages as m
from app.services.admission import AdmissionState, Decision, JoinRequest, evaluate
from app.services.context import ServerContext
from app.services.results import Outcome
from app.services.sessions import Departure, RoomSession

logger = logging.getLogger(__name__)

Reply = dict[str, Any]
Handler = Callable[[ClientConnection, Any], Awaitable["Reply | None"]]


def _failure(reason: ReasonCode, **extra: Any) -> Reply:
    return Outcome.failure(reason).to_reply(**extra)


def _ok(**extra: Any) -> Reply:
    return Outcome.success().to_reply(**extra)


class SignalingGateway:
    def __init__(self, context: ServerContext) -> None:
        self.ctx = context
        self._handlers: dict[str, Handler] = {
            "claim-room": self.claim_room,
            "auth-host-room": self.auth_host_room,
            "enter-host-room": self.enter_host_room,
            "check-room-claimed": self.check_room_claimed,
            "join-room": self.join_room,
            "join-room-relay": self.join_room_relay,
            "generate-vip-code": self.generate_vip_code,
            "revoke-vip-code": self.revoke_vip_code,
            "get-vip-codes": self.get_vip_codes,
            "add-vip-user": self.add_vip_user,
            "remove-vip-user": self.remove_vip_user,
            "redeem-vip-code": self.redeem_vip_code,
            "update-room-privacy": self.update_room_privacy,
            "update-vip-required": self.update_vip_required,
            "update-room-live": self.update_room_live,
            "get-room-info": self.get_room_info,
            "list-public-rooms": self.list_public_rooms,
            "promote-to-host": self.promote_to_host,
            "lock-room": self.lock_room,
            "kick-user": self.kick_user,
            "update-stream-title": self.update_stream_title,
            "request-to-call": self.request_to_call,
            "ping": self.ping,
        }
        for kind in SIGNAL_KINDS:
            self._handlers[kind] = self.forward_signal

    async def dispatch(self, connection: ClientConnection, message: Any) -> Reply | None:
        handler = self._handlers[message.type]
        reply = await handler(connection, message)
        if message.type not in SIGNAL_KINDS:
            outcome = "error" if reply is not None and reply.get("ok") is False else "ok"
            signaling_events_total.labels(message.type, outcome).inc()
        return reply

    # ------------------------------------------------------------------
    # Room ownership
    # ------------------------------------------------------------------
    async def claim_room(self, connection: ClientConnection, message: m.ClaimRoomMessage) -> Reply:
        outcome = self.ctx.directory.claim(message.room, message.password, message.privacy)
        if not outcome.ok:
            return outcome.to_reply()
        record = outcome.value
        connection.host_auth_rooms.add(record.name)
        await self._broadcast_room_update(record.name)
        return outcome.to_reply(room=record.name, privacy=record.privacy.value)

    async def auth_host_room(
        self, connection: ClientConnection, message: m.AuthHostRoomMessage
    ) -> Reply:
        room = self.ctx.directory.normalize(message.room)
        outcome = self.ctx.directory.authenticate(room, message.password)
        if outcome.ok:
            connection.host_auth_rooms.add(room)
        return outcome.to_reply()

    async def enter_host_room(
        self, connection: ClientConnection, message: m.EnterHostRoomMessage
    ) -> Reply:
        """Create-or-authenticate in one step, ahead of a host join."""

        directory = self.ctx.directory
        outcome = directory.enter_host(message.room, message.password, message.privacy)
        if not outcome.ok:
            return outcome.to_reply()
        record = directory.get(message.room)
        if record is not None and record.has_password:
            connection.host_auth_rooms.add(record.name)
        return outcome.to_reply(created=outcome.value)

    async def check_room_claimed(
        self, connection: ClientConnection, message: m.CheckRoomClaimedMessage
    ) -> Reply:
        record = self.ctx.directory.get(message.room)
        return _ok(claimed=record is not None, hasPassword=bool(record and record.has_password))

    # ------------------------------------------------------------------
    # Joining
    # ------------------------------------------------------------------
    def _admit(
        self,
        connection: ClientConnection,
        room: str,
        display_name: str,
        *,
        wants_host: bool,
        vip_code: str | None,
        vip_token: str | None,
        redeemed: list[str],
    ) -> Decision:
        directory = self.ctx.directory

        def redeem(code: str) -> bool:
            outcome = directory.redeem_code(code, room)
            if outcome.ok:
                redeemed.append(outcome.value.code)
            return outcome.ok

        request = JoinRequest(
            socket_id=connection.socket_id,
            room_name=room,
            display_name=display_name,
            wants_host=wants_host,
            authenticated=connection.is_authenticated_for(room),
            vip_code=vip_code,
            vip_token=vip_token,
            vip_granted=connection.has_vip_grant(room),
        )
        state = AdmissionState(
            record=directory.get(room),
            session=self.ctx.sessions.get(room),
            redeem_code=redeem,
            consume_token=lambda token: self.ctx.tokens.consume(token, room),
        )
        return evaluate(request, state)

    def _display_name(self, connection: ClientConnection, value: str | None) -> str:
        return normalize_display_name(
            value,
            f"User-{connection.socket_id[:4]}",
            self.ctx.settings.display_name_max_length,
        )

    def _enter_session(
        self,
        connection: ClientConnection,
        room: str,
        display_name: str,
        *,
        is_viewer: bool,
        is_vip: bool,
        is_relay: bool = False,
    ) -> RoomSession:
        session = self.ctx.sessions.join(
            connection.socket_id,
            room,
            display_name=display_name,
            is_viewer=is_viewer,
            is_vip=is_vip,
            is_relay=is_relay,
        )
        connection.room = room
        connection.name = display_name
        connection.is_viewer = is_viewer
        connection.is_vip = is_vip
        connection.is_relay = is_relay
        if is_vip:
            connection.vip_rooms.add(room)
        rooms_active.labels().set(len(self.ctx.sessions))
        if is_viewer and self.ctx.directory.exists(room):
            self.ctx.directory.adjust_viewer_count(room, 1)
        return session

    async def join_room(self, connection: ClientConnection, message: m.JoinRoomMessage) -> Reply:
        directory = self.ctx.directory
        room = directory.normalize(message.room)
        if not room:
            return _failure(ReasonCode.INVALID_NAME)
        display_name = self._display_name(connection, message.name)
        wants_host = not message.is_viewer

        redeemed: list[str] = []
        decision = self._admit(
            connection,
            room,
            display_name,
            wants_host=wants_host,
            vip_code=message.vip_code,
            vip_token=message.vip_token,
            redeemed=redeemed,
        )
        if not decision.accept:
            logger.info("Join to %s by %s rejected: %s", room, connection.socket_id, decision.reason.value)
            return _failure(decision.reason)

        if wants_host and not directory.exists(room):
            created = directory.create_room(room)
            if not created.ok:
                return created.to_reply()

        if connection.room is not None:
            await self.leave_room(connection)

        session = self._enter_session(
            connection,
            room,
            display_name,
            is_viewer=not wants_host,
            is_vip=decision.is_vip,
        )
        is_host = session.is_owner(connection.socket_id)
        await self.ctx.connections.send(
            connection.socket_id,
            {"type": "role", "isHost": is_host, "streamTitle": session.stream_title},
        )
        await self._announce_join(connection, session)

        reply = _ok(isHost=is_host, isVip=decision.is_vip)
        record = directory.get(room)
        if is_host and record is not None:
            reply.update(
                vipUsers=list(record.vip_users),
                vipCodes=record.list_codes(),
                privacy=record.privacy.value,
                vipRequired=record.vip_required,
            )
        if redeemed:
            await self._emit_vip_codes(room)
        return reply

    async def join_room_relay(
        self, connection: ClientConnection, message: m.JoinRoomRelayMessage
    ) -> Reply:
        """Join as a viewer fed through the relay tree.

        A viewer that cannot be placed is still admitted and told to pull
        the stream straight from the host.
        """

        room = self.ctx.directory.normalize(message.room)
        if not room:
            return _failure(ReasonCode.INVALID_NAME)
        session = self.ctx.sessions.get(room)
        if session is None or session.owner_id is None:
            return _failure(ReasonCode.NOT_FOUND)
        if session.is_owner(connection.socket_id):
            return _failure(ReasonCode.INVALID_REQUEST)
        display_name = self._display_name(connection, message.name)

        redeemed: list[str] = []
        decision = self._admit(
            connection,
            room,
            display_name,
            wants_host=False,
            vip_code=message.vip_code,
            vip_token=message.vip_token,
            redeemed=redeemed,
        )
        if not decision.accept:
            return _failure(decision.reason)

        if connection.room is not None:
            # The owner is someone else, so this session outlives the leave.
            await self.leave_room(connection)
            session = self.ctx.sessions.get(room)

        trees = self.ctx.trees
        if not trees.has(room):
            trees.create(room, session.owner_id)
        device_info = message.device_info.as_mapping() if message.device_info else None
        placement = trees.insert(room, connection.socket_id, device_info)

        session = self._enter_session(
            connection,
            room,
            display_name,
            is_viewer=True,
            is_vip=decision.is_vip,
            is_relay=placement.ok,
        )
        send = self.ctx.connections.send
        if placement.ok:
            assigned = placement.value
            await send(
                connection.socket_id,
                {
                    "type": "parent-assigned",
                    "parentId": assigned.parent_id,
                    "tier": assigned.tier,
                    "capacity": assigned.capacity,
                },
            )
            await send(
                assigned.parent_id,
                {"type": "child-connecting", "childId": connection.socket_id, "childName": display_name},
            )
        else:
            await send(
                connection.socket_id,
                {"type": "relay-fallback", "hostId": session.owner_id, "reason": placement.error.value},
            )
        await self._announce_join(connection, session)
        if redeemed:
            await self._emit_vip_codes(room)

        reply = _ok(isHost=False, isVip=decision.is_vip, relay=placement.ok)
        if placement.ok:
            reply.update(
                parentId=placement.value.parent_id,
                tier=placement.value.tier,
                capacity=placement.value.capacity,
            )
        else:
            reply.update(fallback="direct", hostId=session.owner_id, reason=placement.error.value)
        return reply

    async def _announce_join(self, connection: ClientConnection, session: RoomSession) -> None:
        await self.ctx.connections.broadcast(
            session.member_ids(),
            {"type": "user-joined", "id": connection.socket_id, "name": connection.name},
            exclude=[connection.socket_id],
        )
        await self._broadcast_room_update(session.name)

    # ------------------------------------------------------------------
    # VIP management
    # ------------------------------------------------------------------
    def _owned_session(self, connection: ClientConnection, room: str | None) -> RoomSession | None:
        if not room:
            return None
        session = self.ctx.sessions.get(room)
        if session is None or not session.is_owner(connection.socket_id):
            return None
        return session

    def _target_room(self, connection: ClientConnection, value: str) -> str:
        return self.ctx.directory.normalize(value or connection.room)

    async def generate_vip_code(
        self, connection: ClientConnection, message: m.GenerateVipCodeMessage
    ) -> Reply:
        room = self._target_room(connection, message.room)
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        outcome = self.ctx.directory.generate_vip_code(room, message.max_uses)
        if not outcome.ok:
            return outcome.to_reply()
        await self._emit_vip_codes(room)
        return outcome.to_reply(**outcome.value)

    async def revoke_vip_code(
        self, connection: ClientConnection, message: m.RevokeVipCodeMessage
    ) -> Reply:
        room = self._target_room(connection, message.room)
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        outcome = self.ctx.directory.revoke_vip_code(room, message.code)
        if outcome.ok:
            await self._emit_vip_codes(room)
        return outcome.to_reply()

    async def get_vip_codes(self, connection: ClientConnection, message: m.GetVipCodesMessage) -> Reply:
        room = self._target_room(connection, message.room)
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        if not self.ctx.directory.exists(room):
            return _failure(ReasonCode.NOT_FOUND)
        return _ok(codes=self.ctx.directory.list_vip_codes(room))

    async def add_vip_user(self, connection: ClientConnection, message: m.AddVipUserMessage) -> Reply:
        room = self._target_room(connection, message.room)
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        outcome = self.ctx.directory.add_vip_user(room, message.user_name)
        if not outcome.ok:
            return outcome.to_reply()
        return outcome.to_reply(vipUsers=outcome.value)

    async def remove_vip_user(
        self, connection: ClientConnection, message: m.RemoveVipUserMessage
    ) -> Reply:
        room = self._target_room(connection, message.room)
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        outcome = self.ctx.directory.remove_vip_user(room, message.user_name)
        if not outcome.ok:
            return outcome.to_reply()
        return outcome.to_reply(vipUsers=outcome.value)

    async def redeem_vip_code(
        self, connection: ClientConnection, message: m.RedeemVipCodeMessage
    ) -> Reply:
        """Spend a code up front and hand back a token for a later join."""

        outcome = self.ctx.directory.redeem_code(message.code)
        if not outcome.ok:
            return outcome.to_reply()
        redeemed = outcome.value
        token = self.ctx.tokens.issue(redeemed.room_name)
        connection.vip_rooms.add(redeemed.room_name)
        await self._emit_vip_codes(redeemed.room_name)
        return outcome.to_reply(
            roomName=redeemed.room_name,
            role=ParticipantRole.VIP.value,
            vipToken=token.token,
            desiredName=message.desired_name,
        )

    async def _emit_vip_codes(self, room: str) -> None:
        session = self.ctx.sessions.get(room)
        if session is None or session.owner_id is None:
            return
        await self.ctx.connections.send(
            session.owner_id,
            {"type": "vip-codes-updated", "room": room, "codes": self.ctx.directory.list_vip_codes(room)},
        )

    # ------------------------------------------------------------------
    # Room configuration
    # ------------------------------------------------------------------
    async def update_room_privacy(
        self, connection: ClientConnection, message: m.UpdateRoomPrivacyMessage
    ) -> Reply:
        room = self._target_room(connection, message.room)
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        outcome = self.ctx.directory.update_privacy(room, message.privacy)
        if not outcome.ok:
            return outcome.to_reply()
        await self._broadcast_room_update(room)
        return outcome.to_reply(privacy=outcome.value.privacy.value, vipRequired=outcome.value.vip_required)

    async def update_vip_required(
        self, connection: ClientConnection, message: m.UpdateVipRequiredMessage
    ) -> Reply:
        room = self._target_room(connection, message.room)
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        outcome = self.ctx.directory.update_vip_required(room, message.vip_required)
        if not outcome.ok:
            return outcome.to_reply()
        await self._broadcast_room_update(room)
        return outcome.to_reply(vipRequired=outcome.value)

    async def update_room_live(
        self, connection: ClientConnection, message: m.UpdateRoomLiveMessage
    ) -> Reply:
        room = self._target_room(connection, message.room)
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        title = None
        if message.title is not None:
            title = message.title.strip()[: self.ctx.settings.stream_title_max_length]
        outcome = self.ctx.directory.update_live(
            room, live=message.live, viewers=message.viewers, title=title
        )
        if not outcome.ok:
            return outcome.to_reply()
        return outcome.to_reply(live=outcome.value.live, viewers=outcome.value.viewer_count)

    async def get_room_info(self, connection: ClientConnection, message: m.GetRoomInfoMessage) -> Reply:
        record = self.ctx.directory.get(message.room)
        if record is None:
            return _ok(exists=False, privacy=Privacy.PUBLIC.value, hasOwnerPassword=False, vipRequired=False)
        return _ok(exists=True, **record.to_public())

    async def list_public_rooms(
        self, connection: ClientConnection, message: m.ListPublicRoomsMessage
    ) -> Reply:
        rooms = self.ctx.directory.list_public_rooms()
        await self.ctx.connections.send(connection.socket_id, {"type": "public-rooms", "rooms": rooms})
        return _ok(rooms=rooms)

    # ------------------------------------------------------------------
    # Host controls
    # ------------------------------------------------------------------
    async def promote_to_host(
        self, connection: ClientConnection, message: m.PromoteToHostMessage
    ) -> Reply:
        room = connection.room
        session = self._owned_session(connection, room)
        if session is None:
            return _failure(ReasonCode.NOT_OWNER)
        if not self.ctx.sessions.promote(room, connection.socket_id, message.target_id):
            return _failure(ReasonCode.NOT_FOUND)

        logger.info("Room %s handed from %s to %s", room, connection.socket_id, message.target_id)
        send = self.ctx.connections.send
        await send(connection.socket_id, {"type": "role", "isHost": False})
        await send(
            message.target_id,
            {"type": "role", "isHost": True, "streamTitle": session.stream_title},
        )
        await self._reset_tree(room)
        await self._broadcast_room_update(room)
        return _ok(ownerId=message.target_id)

    async def lock_room(self, connection: ClientConnection, message: m.LockRoomMessage) -> Reply:
        room = connection.room
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        self.ctx.sessions.lock(room, connection.socket_id, message.locked)
        await self._broadcast_room_update(room)
        return _ok(locked=message.locked)

    async def kick_user(self, connection: ClientConnection, message: m.KickUserMessage) -> Reply:
        room = connection.room
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        if message.target_id == connection.socket_id:
            return _failure(ReasonCode.INVALID_REQUEST)
        departure = self.ctx.sessions.kick(room, connection.socket_id, message.target_id)
        if departure is None:
            return _failure(ReasonCode.NOT_FOUND)

        logger.info("User %s kicked from %s", message.target_id, room)
        target = self.ctx.connections.get(message.target_id)
        if target is not None:
            target.reset_membership()
            await self.ctx.connections.send(target.socket_id, {"type": "kicked", "room": room})
        await self._after_departure(room, message.target_id, departure)
        if target is not None:
            await self.ctx.connections.close(target.socket_id, code=4000, reason="kicked")
        return _ok()

    async def update_stream_title(
        self, connection: ClientConnection, message: m.UpdateStreamTitleMessage
    ) -> Reply:
        room = connection.room
        if self._owned_session(connection, room) is None:
            return _failure(ReasonCode.NOT_OWNER)
        settings = self.ctx.settings
        title = normalize_title(message.title, settings.default_stream_title, settings.stream_title_max_length)
        self.ctx.sessions.set_title(room, connection.socket_id, title)
        if self.ctx.directory.exists(room):
            self.ctx.directory.update_live(room, title=title)
        await self._broadcast_room_update(room)
        return _ok(streamTitle=title)

    async def request_to_call(
        self, connection: ClientConnection, message: m.RequestToCallMessage
    ) -> Reply:
        room = connection.room
        if not room or not self.ctx.sessions.request_call(room, connection.socket_id):
            return _failure(ReasonCode.NOT_FOUND)
        session = self.ctx.sessions.get(room)
        if session.owner_id is not None:
            await self.ctx.connections.send(
                session.owner_id,
                {"type": "call-request-received", "id": connection.socket_id, "name": connection.name},
            )
        await self._broadcast_room_update(room)
        return _ok()

    async def ping(self, connection: ClientConnection, message: m.PingMessage) -> Reply:
        await self.ctx.connections.send(connection.socket_id, {"type": "pong"})
        return _ok()

    # ------------------------------------------------------------------
    # WebRTC negotiation
    # ------------------------------------------------------------------
    async def forward_signal(self, connection: ClientConnection, message: m.SignalMessage) -> Reply:
        payload = message.payload
        if message.type in {"call-offer", "ring-user"}:
            payload["name"] = connection.name
        delivered = await self.ctx.relay.forward(
            message.type, connection.socket_id, message.target_id, payload
        )
        return _ok(delivered=delivered)

    # ------------------------------------------------------------------
    # Leaving
    # ------------------------------------------------------------------
    async def disconnect(self, connection: ClientConnection) -> None:
        if connection.room is not None:
            await self.leave_room(connection)
        self.ctx.connections.unregister(connection.socket_id)

    async def leave_room(self, connection: ClientConnection) -> None:
        room = connection.room
        connection.reset_membership()
        if room is None:
            return
        departure = self.ctx.sessions.leave(connection.socket_id, room)
        if departure is not None:
            await self._after_departure(room, connection.socket_id, departure)

    async def _after_departure(self, room: str, socket_id: str, departure: Departure) -> None:
        directory = self.ctx.directory
        if departure.user.is_viewer and directory.exists(room):
            directory.adjust_viewer_count(room, -1)

        if departure.was_owner:
            if directory.exists(room):
                directory.update_live(room, live=False)
            await self._reset_tree(room)
        else:
            await self._repair_tree(room, socket_id)

        rooms_active.labels().set(len(self.ctx.sessions))
        if departure.session_closed:
            self.ctx.trees.destroy(room)
            return
        session = self.ctx.sessions.get(room)
        if session is not None:
            await self.ctx.connections.broadcast(
                session.member_ids(), {"type": "user-left", "id": socket_id}
            )
        await self._broadcast_room_update(room)

    async def _repair_tree(self, room: str, socket_id: str) -> None:
        tree = self.ctx.trees.get(room)
        if tree is None or socket_id not in tree or socket_id == tree.root:
            return
        report = self.ctx.trees.repair(room, socket_id)
        send = self.ctx.connections.send
        for assignment in report.assignments:
            await send(
                assignment.child_id,
                {"type": "parent-changed", "newParentId": assignment.new_parent_id, "tier": assignment.tier},
            )
            await send(
                assignment.new_parent_id,
                {"type": "child-connecting", "childId": assignment.child_id},
            )
        for node_id in report.fallbacks:
            self._clear_relay_flag(room, node_id)
            await send(node_id, {"type": "relay-fallback", "hostId": tree.root, "reason": "PARENT_LOST"})

    async def _reset_tree(self, room: str) -> None:
        members = self.ctx.trees.destroy(room)
        session = self.ctx.sessions.get(room)
        host_id = session.owner_id if session is not None else None
        for node_id in members:
            self._clear_relay_flag(room, node_id)
            await self.ctx.connections.send(node_id, {"type": "relay-reset", "hostId": host_id})

    def _clear_relay_flag(self, room: str, node_id: str) -> None:
        session = self.ctx.sessions.get(room)
        if session is not None and node_id in session.users:
            session.users[node_id].is_relay = False
        connection = self.ctx.connections.get(node_id)
        if connection is not None:
            connection.is_relay = False

    async def _broadcast_room_update(self, room: str) -> None:
        session = self.ctx.sessions.get(room)
        if session is None:
            return
        record = self.ctx.directory.get(room)
        payload = {
            "type": "room-update",
            **session.snapshot(),
            "privacy": record.privacy.value if record is not None else Privacy.PUBLIC.value,
            "vipRequired": record.vip_gated if record is not None else False,
        }
        await self.ctx.connections.broadcast(session.member_ids(), payload)
