import pytest

from vrcd.constants import CIPHER_AES_256_GCM, CIPHER_CHACHA20_POLY1305
from vrcd.errors import InvalidInput, NotFound
from vrcd.rooms import RoomRegistry


def test_create_assigns_sequential_ids_and_subnets() -> None:
    reg = RoomRegistry()
    a = reg.create("alpha")
    b = reg.create("beta", "tcp", 1350)
    assert (a.room_id, a.overlay_subnet) == ("room-1", "10.0.1.0/24")
    assert (b.room_id, b.overlay_subnet) == ("room-2", "10.0.2.0/24")
    assert b.preferred_transport == "tcp"
    assert b.mtu == 1350


def test_create_defaults() -> None:
    room = RoomRegistry().create("alpha")
    assert room.preferred_transport == "udp"
    assert room.mtu == 1400
    assert room.keepalive_interval_s == 15
    assert room.members == {}


def test_create_normalizes_transport_case() -> None:
    assert RoomRegistry().create("alpha", "TCP").preferred_transport == "tcp"


@pytest.mark.parametrize(
    "name,transport,mtu",
    [("", None, None), ("  ", None, None), ("x", "quic", None), ("x", None, -1), ("x", None, 70000), ("x", None, "1400")],
)
def test_create_rejects_invalid_input(name, transport, mtu) -> None:
    reg = RoomRegistry()
    with pytest.raises(InvalidInput):
        reg.create(name, transport, mtu)
    assert len(reg) == 0


def test_join_allocates_from_member_count() -> None:
    reg = RoomRegistry()
    room = reg.create("alpha")
    first = reg.join(room.room_id, "dev-a", "nova")
    second = reg.join(room.room_id, "dev-b", "orbit")
    assert first.virtual_ip == "10.0.1.2"
    assert second.virtual_ip == "10.0.2.3"
    assert first.session_key and second.session_key
    assert first.session_key != second.session_key
    assert first.transport == "udp"
    assert first.keepalive_interval_s == 15
    assert first.overlay_subnet == "10.0.1.0/24"
    assert reg.get(room.room_id).members == {"dev-a": "nova", "dev-b": "orbit"}


def test_rejoin_overwrites_membership() -> None:
    reg = RoomRegistry()
    room = reg.create("alpha")
    reg.join(room.room_id, "dev-a", "nova")
    reg.join(room.room_id, "dev-a", "orbit")
    assert reg.get(room.room_id).members == {"dev-a": "orbit"}
    assert reg.get_stats() == {"rooms_total": 1, "memberships": 1}


def test_join_unknown_room() -> None:
    with pytest.raises(NotFound):
        RoomRegistry().join("room-9", "dev-a", "nova")


def test_join_requires_device_id() -> None:
    reg = RoomRegistry()
    room = reg.create("alpha")
    with pytest.raises(InvalidInput):
        reg.join(room.room_id, " ", "nova")


def test_bootstrap_defaults_to_room_transport_and_default_cipher() -> None:
    reg = RoomRegistry()
    room = reg.create("pvp", "tcp")
    answer = reg.bootstrap_tunnel(room.room_id, None, None, "client-ephemeral")
    assert answer.transport == "tcp"
    assert answer.cipher_suite == CIPHER_AES_256_GCM
    assert answer.ephemeral_key == "client-ephemeral"


def test_bootstrap_echoes_offered_values() -> None:
    reg = RoomRegistry()
    room = reg.create("pvp", "udp")
    answer = reg.bootstrap_tunnel(room.room_id, "tcp", "ChaCha20-Poly1305", "k")
    assert answer.transport == "tcp"
    assert answer.cipher_suite == CIPHER_CHACHA20_POLY1305


def test_bootstrap_rejects_unknown_offers_and_rooms() -> None:
    reg = RoomRegistry()
    room = reg.create("pvp")
    with pytest.raises(InvalidInput):
        reg.bootstrap_tunnel(room.room_id, "sctp", None, "k")
    with pytest.raises(InvalidInput):
        reg.bootstrap_tunnel(room.room_id, None, "rot13", "k")
    with pytest.raises(NotFound):
        reg.bootstrap_tunnel("room-42", None, None, "k")


def test_returned_rooms_are_copies() -> None:
    reg = RoomRegistry()
    room = reg.create("alpha")
    room.members["intruder"] = "x"
    assert reg.get(room.room_id).members == {}
