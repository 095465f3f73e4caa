from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from .codec import decode_body, encode_body
from .errors import ControlPlaneError, InvalidInput
from .util import is_utf8_text

if TYPE_CHECKING:
    from .service import ControlPlaneService


def _str(body: dict, key: str, *, required: bool = True) -> str | None:
    value = body.get(key)
    if value is None or value == "":
        if required:
            raise InvalidInput(f"{key} required")
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{key} must be a string")
    if not is_utf8_text(value):
        raise InvalidInput(f"{key} must be valid UTF-8")
    return value


def _int(body: dict, key: str) -> int | None:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{key} must be an integer")
    return value


class RequestRouter:
    """
    Maps decoded requests onto control-plane operations.

    This class is responsible for:
    - Decoding request bodies (JSON, or CBOR when asked for)
    - Pulling the operation's fields out of the body
    - Calling exactly one ControlPlaneService operation
    - Encoding the result or a typed error with its status code
    """

    def __init__(self, service: ControlPlaneService) -> None:
        self.service = service
        self.log = logging.getLogger("vrcd.router")
        self.routes: dict[str, Callable[[dict], dict]] = {
            "/auth/register": self._register,
            "/auth/login": self._login,
            "/auth/refresh": self._refresh,
            "/rooms": self._create_room,
            "/rooms/join": self._join_room,
            "/rooms/keepalive": self._keepalive,
            "/tunnel/bootstrap": self._bootstrap_tunnel,
            "/admin/role": self._update_admin_role,
        }

    def dispatch(self, path: str, body: Any) -> tuple[int, dict]:
        """Run one operation. Returns (status, response body)."""
        handler = self.routes.get(path.rstrip("/") or "/")
        if handler is None:
            return 404, {"error": "not_found", "message": f"no route {path}"}

        try:
            if not isinstance(body, dict):
                raise InvalidInput("request body must be an object")
            return 200, handler(body)
        except ControlPlaneError as e:
            self.service.stats_manager.inc("requests_rejected")
            if e.status >= 500:
                self.log.error("Request failed path=%s kind=%s: %s", path, e.kind, e.message)
            else:
                self.log.debug("Request rejected path=%s kind=%s: %s", path, e.kind, e.message)
            return e.status, e.to_wire()

    def handle_payload(
        self, path: str, payload: bytes, content_type: str | None = None
    ) -> tuple[int, str, bytes]:
        """Decode a raw request body, dispatch it and encode the reply."""
        try:
            body = decode_body(payload, content_type)
        except Exception as e:
            self.log.debug("Bad request body path=%s bytes=%s err=%s", path, len(payload), e)
            status, resp = 400, InvalidInput(f"bad request body: {e}").to_wire()
        else:
            status, resp = self.dispatch(path, body)

        reply_type, data = encode_body(resp, content_type)
        return status, reply_type, data

    def _register(self, body: dict) -> dict:
        return self.service.register(
            _str(body, "username"),
            _str(body, "password"),
            _str(body, "device_id", required=False),
        ).to_wire()

    def _login(self, body: dict) -> dict:
        return self.service.login(
            _str(body, "username"),
            _str(body, "password"),
        ).to_wire()

    def _refresh(self, body: dict) -> dict:
        return self.service.refresh(_str(body, "device_token")).to_wire()

    def _create_room(self, body: dict) -> dict:
        return self.service.create_room(
            _str(body, "session_token"),
            _str(body, "name"),
            _str(body, "preferred_transport", required=False),
            _int(body, "mtu"),
        ).to_wire()

    def _join_room(self, body: dict) -> dict:
        return self.service.join_room(
            _str(body, "session_token", required=False) or "",
            _str(body, "room_id"),
            _str(body, "device_id"),
        ).to_wire()

    def _keepalive(self, body: dict) -> dict:
        sequence = _int(body, "sequence")
        return self.service.keepalive(0 if sequence is None else sequence).to_wire()

    def _bootstrap_tunnel(self, body: dict) -> dict:
        return self.service.bootstrap_tunnel(
            _str(body, "room_id"),
            _str(body, "transport", required=False),
            _str(body, "cipher_suite", required=False),
            _str(body, "ephemeral_pub_key", required=False) or "",
        ).to_wire()

    def _update_admin_role(self, body: dict) -> dict:
        grant = body.get("grant", False)
        if not isinstance(grant, bool):
            raise InvalidInput("grant must be a boolean")
        return self.service.update_admin_role(
            _str(body, "session_token"),
            _str(body, "target_user"),
            grant,
        ).to_wire()
