from __future__ import annotations

import logging
import secrets

from .constants import TOKEN_BYTES, TOKEN_ISSUE_ATTEMPTS
from .errors import Unauthorized
from .util import short_token


def new_token(nbytes: int = TOKEN_BYTES) -> str:
    return secrets.token_hex(nbytes)


class TokenRegistry:
    """
    Issues and resolves bearer tokens.

    Two independent namespaces, both token -> username:
    - session tokens: short-lived, in memory only, never persisted
    - device tokens: longer-lived, persisted, used to mint new sessions

    Tokens carry no expiry. All methods must be called with the service
    lock held.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("vrcd.tokens")
        self._sessions: dict[str, str] = {}
        self._devices: dict[str, str] = {}

    def _issue(self, space: dict[str, str], username: str) -> str:
        token = new_token()
        for _ in range(TOKEN_ISSUE_ATTEMPTS - 1):
            if token not in space:
                break
            token = new_token()
        # After the retries a collision shadows the older mapping.
        space[token] = username
        return token

    def issue_session(self, username: str) -> str:
        token = self._issue(self._sessions, username)
        self.log.debug("Issued session token=%s user=%s", short_token(token), username)
        return token

    def issue_device(self, username: str) -> str:
        token = self._issue(self._devices, username)
        self.log.debug("Issued device token=%s user=%s", short_token(token), username)
        return token

    def resolve_session(self, token: str | None) -> str:
        username = self._sessions.get(token) if isinstance(token, str) and token else None
        if username is None:
            raise Unauthorized("session invalid")
        return username

    def resolve_device(self, token: str | None) -> str:
        username = self._devices.get(token) if isinstance(token, str) and token else None
        if username is None:
            raise Unauthorized("device token invalid")
        return username

    def refresh(self, device_token: str | None) -> str:
        username = self.resolve_device(device_token)
        return self.issue_session(username)

    def get_stats(self) -> dict[str, int]:
        return {
            "sessions": len(self._sessions),
            "device_tokens": len(self._devices),
        }

    def device_tokens(self) -> dict[str, str]:
        return dict(self._devices)

    def load_device_tokens(self, bindings: dict[str, str]) -> None:
        self._devices = dict(bindings)

    def snapshot(self) -> tuple[dict[str, str], dict[str, str]]:
        return dict(self._sessions), dict(self._devices)

    def restore(self, snap: tuple[dict[str, str], dict[str, str]]) -> None:
        sessions, devices = snap
        self._sessions = dict(sessions)
        self._devices = dict(devices)
