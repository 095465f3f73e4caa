"""Authorization policy for privileged control-plane operations."""

from __future__ import annotations

import logging

from .credentials import CredentialStore
from .errors import Forbidden, NotFound


class AuthorizationPolicy:
    """
    Decides whether a user may perform a privileged operation.

    Handles:
    - Room creation checks
    - Role management checks
    - Granting and revoking the admin flag

    Privilege is the admin flag on the user's credential record. The first
    registered user receives it at registration.
    """

    def __init__(self, credentials: CredentialStore) -> None:
        self.credentials = credentials
        self.log = logging.getLogger("vrcd.policy")

    def can_create_room(self, username: str | None) -> bool:
        if not username:
            return False
        return self.credentials.is_admin(username)

    def can_manage_roles(self, username: str | None) -> bool:
        """Role management uses the same admin-only predicate as room creation."""
        return self.can_create_room(username)

    def require_room_creator(self, username: str) -> None:
        if not self.can_create_room(username):
            raise Forbidden("admin role required to create rooms")

    def grant_or_revoke(self, acting: str, target: str, grant: bool) -> bool:
        """Set the target's admin flag. Returns the target's new flag."""
        if not self.can_manage_roles(acting):
            raise Forbidden("admin role required to manage roles")
        if not isinstance(target, str) or not self.credentials.exists(target):
            raise NotFound("user not found")

        new_flag = self.credentials.set_admin(target, bool(grant))
        self.log.info(
            "Admin role %s target=%s by=%s",
            "granted" if new_flag else "revoked",
            target,
            acting,
        )
        return new_flag
