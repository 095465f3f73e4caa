"""Result types returned by control-plane operations.

Each result is a value copy; nothing here aliases service-owned state.
``to_wire()`` renders the field names used on the request interface.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenPair:
    session_token: str
    device_token: str

    def to_wire(self) -> dict:
        return {"session_token": self.session_token, "device_token": self.device_token}


@dataclass(frozen=True)
class SessionGrant:
    session_token: str

    def to_wire(self) -> dict:
        return {"session_token": self.session_token}


@dataclass(frozen=True)
class RoomInfo:
    room_id: str
    name: str
    overlay_subnet: str
    preferred_transport: str
    mtu: int

    def to_wire(self) -> dict:
        return {
            "room_id": self.room_id,
            "overlay_subnet": self.overlay_subnet,
            "preferred_transport": self.preferred_transport,
            "mtu": self.mtu,
        }


@dataclass(frozen=True)
class JoinGrant:
    virtual_ip: str
    session_key: str
    transport: str
    keepalive_interval_s: int
    overlay_subnet: str

    def to_wire(self) -> dict:
        return {
            "virtual_ip": self.virtual_ip,
            "session_key": self.session_key,
            "transport": self.transport,
            "keepalive_interval_seconds": self.keepalive_interval_s,
            "overlay_subnet": self.overlay_subnet,
        }


@dataclass(frozen=True)
class KeepaliveAck:
    sequence: int
    server_time_unix_sec: int
    recommended_delay_ms: int

    def to_wire(self) -> dict:
        return {
            "sequence": self.sequence,
            "server_time_unix_sec": self.server_time_unix_sec,
            "recommended_delay_ms": self.recommended_delay_ms,
        }


@dataclass(frozen=True)
class TunnelAnswer:
    transport: str
    cipher_suite: str
    ephemeral_key: str

    def to_wire(self) -> dict:
        return {
            "transport": self.transport,
            "cipher_suite": self.cipher_suite,
            "ephemeral_pub_key": self.ephemeral_key,
        }


@dataclass(frozen=True)
class AdminRoleUpdate:
    target_user: str
    is_admin: bool

    def to_wire(self) -> dict:
        return {"target_user": self.target_user, "is_admin": self.is_admin}
