"""HTTPS client for the vrcd request interface.

``ControlPlaneClient`` wraps the eight POST routes and returns the same
result types the service produces. Error replies are raised as the matching
``ControlPlaneError`` subclass; transport failures surface as
``requests.RequestException``.

``main`` is the ``vrcd-client`` command, a thin shell over the client for
scripting and manual testing against a running daemon.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

import requests

from .constants import DEMO_DEVICE_ID, DEMO_PASSWORD, DEMO_USERNAME
from .errors import ControlPlaneError, error_from_wire
from .messages import (
    AdminRoleUpdate,
    JoinGrant,
    KeepaliveAck,
    RoomInfo,
    SessionGrant,
    TokenPair,
    TunnelAnswer,
)

DEFAULT_SERVER_URL = "https://localhost:8443"
DEFAULT_TIMEOUT_S = 15.0


class ControlPlaneClient:
    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        *,
        ca_cert: str | Path | None = None,
        verify: bool = True,
        timeout: float = DEFAULT_TIMEOUT_S,
        session: requests.Session | None = None,
    ) -> None:
        """
        ``ca_cert`` names a PEM file to trust, typically the daemon's
        self-signed certificate. ``verify=False`` disables certificate checks
        and is meant for local development only.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.verify: bool | str = str(ca_cert) if ca_cert else verify
        self.log = logging.getLogger("vrcd.client")

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> ControlPlaneClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _post(self, path: str, body: dict) -> dict:
        payload = {k: v for k, v in body.items() if v is not None}
        resp = self.session.post(
            self.base_url + path,
            json=payload,
            timeout=self.timeout,
            verify=self.verify,
        )
        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            err = error_from_wire(resp.status_code, data)
            self.log.debug("POST %s -> %s %s", path, resp.status_code, err.kind)
            raise err
        if not isinstance(data, dict):
            raise ControlPlaneError(f"unexpected reply from {path}")
        return data

    def register(self, username: str, password: str, device_id: str | None = None) -> TokenPair:
        data = self._post(
            "/auth/register",
            {"username": username, "password": password, "device_id": device_id},
        )
        return TokenPair(session_token=data["session_token"], device_token=data["device_token"])

    def login(self, username: str, password: str) -> TokenPair:
        data = self._post("/auth/login", {"username": username, "password": password})
        return TokenPair(session_token=data["session_token"], device_token=data["device_token"])

    def refresh(self, device_token: str) -> SessionGrant:
        data = self._post("/auth/refresh", {"device_token": device_token})
        return SessionGrant(session_token=data["session_token"])

    def create_room(
        self,
        session_token: str,
        name: str,
        preferred_transport: str | None = None,
        mtu: int | None = None,
    ) -> RoomInfo:
        data = self._post(
            "/rooms",
            {
                "session_token": session_token,
                "name": name,
                "preferred_transport": preferred_transport,
                "mtu": mtu,
            },
        )
        # The reply does not echo the name.
        return RoomInfo(
            room_id=data["room_id"],
            name=name,
            overlay_subnet=data["overlay_subnet"],
            preferred_transport=data["preferred_transport"],
            mtu=data["mtu"],
        )

    def join_room(self, session_token: str, room_id: str, device_id: str) -> JoinGrant:
        data = self._post(
            "/rooms/join",
            {"session_token": session_token, "room_id": room_id, "device_id": device_id},
        )
        return JoinGrant(
            virtual_ip=data["virtual_ip"],
            session_key=data["session_key"],
            transport=data["transport"],
            keepalive_interval_s=data["keepalive_interval_seconds"],
            overlay_subnet=data["overlay_subnet"],
        )

    def keepalive(self, sequence: int) -> KeepaliveAck:
        data = self._post("/rooms/keepalive", {"sequence": sequence})
        return KeepaliveAck(
            sequence=data["sequence"],
            server_time_unix_sec=data["server_time_unix_sec"],
            recommended_delay_ms=data["recommended_delay_ms"],
        )

    def bootstrap_tunnel(
        self,
        room_id: str,
        transport: str | None = None,
        cipher_suite: str | None = None,
        ephemeral_key: str = "",
    ) -> TunnelAnswer:
        data = self._post(
            "/tunnel/bootstrap",
            {
                "room_id": room_id,
                "transport": transport,
                "cipher_suite": cipher_suite,
                "ephemeral_pub_key": ephemeral_key,
            },
        )
        return TunnelAnswer(
            transport=data["transport"],
            cipher_suite=data["cipher_suite"],
            ephemeral_key=data["ephemeral_pub_key"],
        )

    def update_admin_role(self, session_token: str, target_user: str, grant: bool) -> AdminRoleUpdate:
        data = self._post(
            "/admin/role",
            {"session_token": session_token, "target_user": target_user, "grant": bool(grant)},
        )
        return AdminRoleUpdate(target_user=data["target_user"], is_admin=data["is_admin"])


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="vrcd-client", description="Talk to a running vrcd")
    p.add_argument("--server", default=DEFAULT_SERVER_URL, help="Control plane URL")
    p.add_argument("--ca-cert", default=None, help="PEM certificate to trust (the daemon's cert.pem)")
    p.add_argument(
        "--insecure",
        action="store_true",
        help="Skip TLS certificate verification (development only)",
    )
    p.add_argument(
        "--session-token",
        default=os.environ.get("VRCD_SESSION_TOKEN", ""),
        help="Session token (default: $VRCD_SESSION_TOKEN)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    for name in ("register", "login"):
        sp = sub.add_parser(name)
        sp.add_argument("--username", default=DEMO_USERNAME)
        sp.add_argument("--password", default=DEMO_PASSWORD)
        if name == "register":
            sp.add_argument("--device-id", default=None)

    sp = sub.add_parser("refresh")
    sp.add_argument("device_token")

    sp = sub.add_parser("create-room")
    sp.add_argument("name")
    sp.add_argument("--transport", default=None)
    sp.add_argument("--mtu", type=int, default=None)

    sp = sub.add_parser("join-room")
    sp.add_argument("room_id")
    sp.add_argument("--device-id", default=DEMO_DEVICE_ID)

    sp = sub.add_parser("keepalive")
    sp.add_argument("--sequence", type=int, default=1)

    sp = sub.add_parser("bootstrap")
    sp.add_argument("room_id")
    sp.add_argument("--transport", default=None)
    sp.add_argument("--cipher-suite", default=None)
    sp.add_argument("--ephemeral-key", default="client-ephemeral")

    sp = sub.add_parser("role")
    sp.add_argument("target_user")
    sp.add_argument("--revoke", action="store_true")

    return p


def _run(client: ControlPlaneClient, args: argparse.Namespace):
    cmd = args.command
    if cmd == "register":
        return client.register(args.username, args.password, args.device_id)
    if cmd == "login":
        return client.login(args.username, args.password)
    if cmd == "refresh":
        return client.refresh(args.device_token)
    if cmd == "create-room":
        return client.create_room(args.session_token, args.name, args.transport, args.mtu)
    if cmd == "join-room":
        return client.join_room(args.session_token, args.room_id, args.device_id)
    if cmd == "keepalive":
        return client.keepalive(args.sequence)
    if cmd == "bootstrap":
        return client.bootstrap_tunnel(
            args.room_id, args.transport, args.cipher_suite, args.ephemeral_key
        )
    if cmd == "role":
        return client.update_admin_role(args.session_token, args.target_user, not args.revoke)
    raise ValueError(f"unknown command {cmd!r}")


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    with ControlPlaneClient(
        args.server, ca_cert=args.ca_cert, verify=not args.insecure
    ) as client:
        try:
            result = _run(client, args)
        except ControlPlaneError as e:
            print(json.dumps(e.to_wire()), file=sys.stderr)
            return 1
        except requests.RequestException as e:
            print(f"request failed: {e}", file=sys.stderr)
            return 1

    print(json.dumps(result.to_wire(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
