"""Room management for the vrcd control plane.

This module handles all room-related bookkeeping:
- Room allocation (room id, overlay subnet, transport and MTU defaults)
- Membership tracking (device id -> username)
- Virtual IP and session key issuance on join
- Declarative tunnel negotiation (echo only, no key exchange)
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field, replace

from .constants import (
    DEFAULT_CIPHER_SUITE,
    DEFAULT_MTU,
    DEFAULT_TRANSPORT,
    KEEPALIVE_INTERVAL_S,
    MAX_MTU,
    OVERLAY_SUBNET_FMT,
    ROOM_ID_PREFIX,
    SESSION_KEY_BYTES,
    VIRTUAL_IP_FMT,
)
from .errors import InvalidInput, NotFound
from .messages import JoinGrant, TunnelAnswer
from .util import is_blank, is_utf8_text, normalize_cipher_suite, normalize_transport


@dataclass
class RoomRecord:
    room_id: str
    name: str
    preferred_transport: str
    mtu: int
    overlay_subnet: str
    keepalive_interval_s: int = KEEPALIVE_INTERVAL_S
    members: dict[str, str] = field(default_factory=dict)

    def copy(self) -> RoomRecord:
        return replace(self, members=dict(self.members))


def _resolve_transport(value, fallback: str) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return fallback
    transport = normalize_transport(value)
    if transport is None:
        raise InvalidInput(f"unsupported transport {value!r}")
    return transport


def _resolve_mtu(value) -> int:
    if value is None or value == 0:
        return DEFAULT_MTU
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput("mtu must be an integer")
    if value < 1 or value > MAX_MTU:
        raise InvalidInput(f"mtu out of range: {value}")
    return value


class RoomRegistry:
    """Room id -> RoomRecord map. Must be used with the service lock held."""

    def __init__(self) -> None:
        self.log = logging.getLogger("vrcd.rooms")
        self._rooms: dict[str, RoomRecord] = {}

    def create(self, name: str, transport: str | None = None, mtu: int | None = None) -> RoomRecord:
        """Allocate a new room.

        The room id and overlay subnet both derive from the current room
        count, so ids are only unique while rooms are never removed.
        """
        if is_blank(name):
            raise InvalidInput("room name required")
        if not is_utf8_text(name):
            raise InvalidInput("room name must be valid UTF-8")
        preferred = _resolve_transport(transport, DEFAULT_TRANSPORT)
        room_mtu = _resolve_mtu(mtu)

        n = len(self._rooms) + 1
        room = RoomRecord(
            room_id=f"{ROOM_ID_PREFIX}{n}",
            name=name.strip(),
            preferred_transport=preferred,
            mtu=room_mtu,
            overlay_subnet=OVERLAY_SUBNET_FMT.format(n=n),
        )
        self._rooms[room.room_id] = room

        self.log.info(
            "Room created room_id=%s name=%r transport=%s mtu=%s subnet=%s",
            room.room_id,
            room.name,
            room.preferred_transport,
            room.mtu,
            room.overlay_subnet,
        )
        return room.copy()

    def get(self, room_id: str) -> RoomRecord | None:
        room = self._rooms.get(room_id) if isinstance(room_id, str) else None
        return room.copy() if room is not None else None

    def require(self, room_id: str) -> RoomRecord:
        room = self._rooms.get(room_id) if isinstance(room_id, str) else None
        if room is None:
            raise NotFound("room not found")
        return room

    def join(self, room_id: str, device_id: str, username: str) -> JoinGrant:
        room = self.require(room_id)
        if is_blank(device_id):
            raise InvalidInput("device_id required")
        if not is_utf8_text(device_id):
            raise InvalidInput("device_id must be valid UTF-8")

        # Direct translation of the member count into octets; only valid
        # while a room holds fewer than 254 members.
        count = len(room.members)
        virtual_ip = VIRTUAL_IP_FMT.format(a=count + 1, b=count + 2)
        session_key = secrets.token_hex(SESSION_KEY_BYTES)

        rejoin = device_id in room.members
        room.members[device_id] = username

        self.log.info(
            "Join room_id=%s device=%s user=%s virtual_ip=%s rejoin=%s",
            room.room_id,
            device_id,
            username,
            virtual_ip,
            rejoin,
        )
        return JoinGrant(
            virtual_ip=virtual_ip,
            session_key=session_key,
            transport=room.preferred_transport,
            keepalive_interval_s=room.keepalive_interval_s,
            overlay_subnet=room.overlay_subnet,
        )

    def bootstrap_tunnel(
        self,
        room_id: str,
        transport: str | None = None,
        cipher_suite: str | None = None,
        ephemeral_key: str = "",
    ) -> TunnelAnswer:
        room = self.require(room_id)
        negotiated = _resolve_transport(transport, room.preferred_transport)

        if cipher_suite is None or (isinstance(cipher_suite, str) and not cipher_suite.strip()):
            cipher = DEFAULT_CIPHER_SUITE
        else:
            cipher = normalize_cipher_suite(cipher_suite)
            if cipher is None:
                raise InvalidInput(f"unsupported cipher suite {cipher_suite!r}")

        if ephemeral_key and not is_utf8_text(ephemeral_key):
            raise InvalidInput("ephemeral key must be a UTF-8 string")

        return TunnelAnswer(
            transport=negotiated,
            cipher_suite=cipher,
            ephemeral_key=ephemeral_key or "",
        )

    def get_stats(self) -> dict[str, int]:
        return {
            "rooms_total": len(self._rooms),
            "memberships": sum(len(r.members) for r in self._rooms.values()),
        }

    def __len__(self) -> int:
        return len(self._rooms)

    def snapshot(self) -> dict[str, RoomRecord]:
        return {rid: room.copy() for rid, room in self._rooms.items()}

    def restore(self, rooms: dict[str, RoomRecord]) -> None:
        self._rooms = {rid: room.copy() for rid, room in rooms.items()}
