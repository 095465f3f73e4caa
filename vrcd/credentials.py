"""Credential storage for the control plane.

This module owns username -> credential records:
- Registration with per-user random salt and scrypt password hashing
- Password verification
- Admin flag changes
- Seeding of the demo account

It knows nothing about sessions or rooms.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
import secrets
from dataclasses import dataclass, replace

from .constants import SALT_BYTES, SCRYPT_DKLEN, SCRYPT_N, SCRYPT_P, SCRYPT_R
from .errors import Conflict, InvalidInput, NotFound, Unauthorized
from .util import is_blank, is_utf8_text, normalize_username


@dataclass
class UserRecord:
    username: str
    salt: str
    password_hash: str
    device_id: str
    is_admin: bool = False
    seeded: bool = False


def new_salt() -> str:
    return base64.b64encode(os.urandom(SALT_BYTES)).decode("ascii")


def hash_password(password: str, salt: str) -> str:
    dk = hashlib.scrypt(
        password.encode("utf-8"),
        salt=base64.b64decode(salt.encode("ascii")),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=SCRYPT_DKLEN,
    )
    return base64.b64encode(dk).decode("ascii")


def check_password(password: str, record: UserRecord) -> bool:
    try:
        candidate = hash_password(password, record.salt)
    except (ValueError, UnicodeError):
        return False
    return hmac.compare_digest(candidate, record.password_hash)


def generate_device_id() -> str:
    return f"device-{secrets.token_hex(3)}"


class CredentialStore:
    """Username -> UserRecord map. Must be used with the service lock held."""

    def __init__(self) -> None:
        self.log = logging.getLogger("vrcd.credentials")
        self._users: dict[str, UserRecord] = {}

    def register(
        self, username: str, password: str, device_id: str | None = None
    ) -> UserRecord:
        """Create a user record.

        The first registered user becomes admin. Seeded demo accounts do not
        count towards that check.
        """
        name = normalize_username(username)
        if name is None:
            if is_blank(username):
                raise InvalidInput("username and password required")
            raise InvalidInput("username may not contain whitespace, NUL or invalid UTF-8")
        if is_blank(password):
            raise InvalidInput("username and password required")
        if not is_utf8_text(password):
            raise InvalidInput("password must be valid UTF-8")

        if name in self._users:
            raise Conflict("user already exists")

        if device_id is not None and not is_utf8_text(device_id):
            raise InvalidInput("device_id must be a UTF-8 string")
        device = device_id.strip() if device_id and device_id.strip() else generate_device_id()

        first = self.registered_count() == 0
        salt = new_salt()
        record = UserRecord(
            username=name,
            salt=salt,
            password_hash=hash_password(password, salt),
            device_id=device,
            is_admin=first,
        )
        self._users[name] = record

        self.log.info(
            "Registered user=%s device=%s admin=%s", name, device, record.is_admin
        )
        return replace(record)

    def seed(self, username: str, password: str, device_id: str) -> UserRecord:
        """Insert the demo account. Replaces any existing record of that name."""
        salt = new_salt()
        record = UserRecord(
            username=username,
            salt=salt,
            password_hash=hash_password(password, salt),
            device_id=device_id,
            is_admin=False,
            seeded=True,
        )
        self._users[username] = record
        self.log.info("Seeded demo user=%s device=%s", username, device_id)
        return replace(record)

    def verify(self, username: str, password: str) -> UserRecord:
        if not isinstance(username, str) or not isinstance(password, str):
            raise Unauthorized("invalid credentials")
        record = self._users.get(username)
        if record is None or not check_password(password, record):
            raise Unauthorized("invalid credentials")
        return replace(record)

    def set_admin(self, username: str, grant: bool) -> bool:
        record = self._users.get(username)
        if record is None:
            raise NotFound("user not found")
        record.is_admin = bool(grant)
        return record.is_admin

    def get(self, username: str) -> UserRecord | None:
        record = self._users.get(username)
        return replace(record) if record is not None else None

    def exists(self, username: str) -> bool:
        return username in self._users

    def is_admin(self, username: str) -> bool:
        record = self._users.get(username)
        return bool(record and record.is_admin)

    def usernames(self) -> list[str]:
        return sorted(self._users)

    def registered_count(self) -> int:
        return sum(1 for u in self._users.values() if not u.seeded)

    def __len__(self) -> int:
        return len(self._users)

    def snapshot(self) -> dict[str, UserRecord]:
        return {name: replace(rec) for name, rec in self._users.items()}

    def restore(self, users: dict[str, UserRecord]) -> None:
        self._users = {name: replace(rec) for name, rec in users.items()}
