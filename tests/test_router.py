import json

from vrcd.codec import CONTENT_CBOR, CONTENT_JSON, decode, encode
from vrcd.config import ControlPlaneConfig
from vrcd.router import RequestRouter
from vrcd.service import ControlPlaneService


def _router() -> RequestRouter:
    return RequestRouter(ControlPlaneService(ControlPlaneConfig()))


def _post(router: RequestRouter, path: str, body: dict) -> tuple[int, dict]:
    status, ctype, data = router.handle_payload(path, json.dumps(body).encode("utf-8"))
    assert ctype == CONTENT_JSON
    return status, json.loads(data)


def test_register_and_create_room() -> None:
    router = _router()
    status, pair = _post(
        router,
        "/auth/register",
        {"username": "nova", "password": "hunter2", "device_id": "rig-device"},
    )
    assert status == 200
    assert set(pair) == {"session_token", "device_token"}

    status, room = _post(
        router,
        "/rooms",
        {"session_token": pair["session_token"], "name": "Friday raid", "mtu": 1300},
    )
    assert status == 200
    assert room == {
        "room_id": "room-1",
        "overlay_subnet": "10.0.1.0/24",
        "preferred_transport": "udp",
        "mtu": 1300,
    }

    status, grant = _post(
        router,
        "/rooms/join",
        {"session_token": pair["session_token"], "room_id": "room-1", "device_id": "rig-device"},
    )
    assert status == 200
    assert grant["virtual_ip"] == "10.0.1.2"
    assert grant["keepalive_interval_seconds"] == 15


def test_error_statuses() -> None:
    router = _router()
    assert _post(router, "/auth/login", {"username": "gamer", "password": "nope"})[0] == 401
    assert _post(router, "/auth/register", {"username": "gamer", "password": "x"})[0] == 409
    assert _post(router, "/auth/register", {"password": "x"})[0] == 400
    assert _post(router, "/rooms/join", {"room_id": "room-7", "device_id": "d"})[0] == 404

    _, demo = _post(router, "/auth/login", {"username": "gamer", "password": "password123"})
    status, body = _post(router, "/rooms", {"session_token": demo["session_token"], "name": "x"})
    assert status == 403
    assert body["error"] == "forbidden"

    assert router.service.stats_manager.get("requests_rejected") == 5


def test_unknown_route() -> None:
    status, body = _post(_router(), "/rooms/delete", {})
    assert status == 404
    assert body["error"] == "not_found"


def test_bad_bodies() -> None:
    router = _router()
    status, _, data = router.handle_payload("/auth/login", b"{not json")
    assert status == 400
    assert json.loads(data)["error"] == "invalid_input"

    assert _post(router, "/rooms/keepalive", {"sequence": "one"})[0] == 400
    assert _post(router, "/admin/role", {"session_token": "t", "target_user": "u", "grant": 1})[0] == 400

    status, _, data = router.handle_payload("/auth/login", b"[1, 2]")
    assert status == 400


def test_cbor_requests_get_cbor_replies() -> None:
    router = _router()
    status, ctype, data = router.handle_payload(
        "/rooms/keepalive", encode({"sequence": 3}), "application/cbor; charset=binary"
    )
    assert status == 200
    assert ctype == CONTENT_CBOR
    ack = decode(data)
    assert ack["sequence"] == 3
    assert ack["recommended_delay_ms"] == 5000


def test_tunnel_bootstrap_wire_names() -> None:
    router = _router()
    _, pair = _post(router, "/auth/register", {"username": "nova", "password": "pw"})
    _post(router, "/rooms", {"session_token": pair["session_token"], "name": "r", "preferred_transport": "tcp"})

    status, answer = _post(
        router, "/tunnel/bootstrap", {"room_id": "room-1", "ephemeral_pub_key": "k1"}
    )
    assert status == 200
    assert answer == {"transport": "tcp", "cipher_suite": "aes-256-gcm", "ephemeral_pub_key": "k1"}


def test_lone_surrogates_are_invalid_input() -> None:
    router = _router()
    status, body = _post(router, "/auth/register", {"username": "nova", "password": "\ud800"})
    assert status == 400
    assert body["error"] == "invalid_input"

    status, _, _ = router.handle_payload(
        "/auth/register", b'{"username": "nova", "password": "\\ud800"}'
    )
    assert status == 400
    assert not router.service.credentials.exists("nova")
