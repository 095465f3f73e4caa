"""Durable snapshot storage for the control plane.

The snapshot is a single TOML document with three tables:

    [users."<username>"]      credential records
    [device_tokens]           device token -> username
    [rooms."<room id>"]       room records, with a nested members table

Session tokens are never written. Saves go to a ``.tmp`` sibling which is
fsynced and then renamed over the target, so a crash leaves either the
previous snapshot or the new one on disk.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tomlkit import document, dumps, parse, table
from tomlkit.exceptions import TOMLKitError

from .constants import DEFAULT_MTU, DEFAULT_TRANSPORT, KEEPALIVE_INTERVAL_S
from .credentials import UserRecord
from .errors import CorruptState, IOFailure
from .rooms import RoomRecord
from .util import expand_path


@dataclass
class PersistentState:
    users: dict[str, UserRecord] = field(default_factory=dict)
    device_tokens: dict[str, str] = field(default_factory=dict)
    rooms: dict[str, RoomRecord] = field(default_factory=dict)


def _table(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise CorruptState(f"[{name}] must be a table")
    return section


def _text(entry: dict[str, Any], key: str, where: str, default: str | None = None) -> str:
    value = entry.get(key, default)
    if not isinstance(value, str):
        raise CorruptState(f"{where}: {key} must be a string")
    return value


def _int(entry: dict[str, Any], key: str, where: str, default: int) -> int:
    value = entry.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise CorruptState(f"{where}: {key} must be an integer")
    return value


def _bool(entry: dict[str, Any], key: str, where: str) -> bool:
    value = entry.get(key, False)
    if not isinstance(value, bool):
        raise CorruptState(f"{where}: {key} must be a boolean")
    return value


def decode_state(data: dict[str, Any]) -> PersistentState:
    state = PersistentState()

    for username, entry in _table(data, "users").items():
        where = f"users.{username}"
        if not isinstance(entry, dict):
            raise CorruptState(f"{where} must be a table")
        state.users[username] = UserRecord(
            username=username,
            salt=_text(entry, "salt", where),
            password_hash=_text(entry, "password_hash", where),
            device_id=_text(entry, "device_id", where, ""),
            is_admin=_bool(entry, "is_admin", where),
            seeded=_bool(entry, "seeded", where),
        )

    for token, username in _table(data, "device_tokens").items():
        if not isinstance(username, str):
            raise CorruptState("device_tokens values must be usernames")
        state.device_tokens[token] = username

    for room_id, entry in _table(data, "rooms").items():
        where = f"rooms.{room_id}"
        if not isinstance(entry, dict):
            raise CorruptState(f"{where} must be a table")
        members = entry.get("members", {})
        if not isinstance(members, dict) or not all(
            isinstance(v, str) for v in members.values()
        ):
            raise CorruptState(f"{where}.members must map device ids to usernames")
        state.rooms[room_id] = RoomRecord(
            room_id=room_id,
            name=_text(entry, "name", where),
            preferred_transport=_text(entry, "preferred_transport", where, DEFAULT_TRANSPORT),
            mtu=_int(entry, "mtu", where, DEFAULT_MTU),
            overlay_subnet=_text(entry, "overlay_subnet", where),
            keepalive_interval_s=_int(entry, "keepalive_interval_s", where, KEEPALIVE_INTERVAL_S),
            members=dict(members),
        )

    return state


def encode_state(state: PersistentState) -> str:
    doc = document()

    users = table()
    for username in sorted(state.users):
        rec = state.users[username]
        user_tbl = table()
        user_tbl["salt"] = rec.salt
        user_tbl["password_hash"] = rec.password_hash
        user_tbl["device_id"] = rec.device_id
        user_tbl["is_admin"] = bool(rec.is_admin)
        user_tbl["seeded"] = bool(rec.seeded)
        users[username] = user_tbl
    doc["users"] = users

    tokens = table()
    for token in sorted(state.device_tokens):
        tokens[token] = state.device_tokens[token]
    doc["device_tokens"] = tokens

    rooms = table()
    for room_id in sorted(state.rooms):
        room = state.rooms[room_id]
        room_tbl = table()
        room_tbl["name"] = room.name
        room_tbl["preferred_transport"] = room.preferred_transport
        room_tbl["mtu"] = int(room.mtu)
        room_tbl["overlay_subnet"] = room.overlay_subnet
        room_tbl["keepalive_interval_s"] = int(room.keepalive_interval_s)
        members = table()
        for device_id in sorted(room.members):
            members[device_id] = room.members[device_id]
        room_tbl["members"] = members
        rooms[room_id] = room_tbl
    doc["rooms"] = rooms

    return dumps(doc)


class PersistenceManager:
    """Loads and atomically saves the control-plane snapshot."""

    def __init__(self, path: str | None) -> None:
        self.log = logging.getLogger("vrcd.persistence")
        self.path: Path | None = Path(expand_path(str(path))) if path else None
        self._write_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.path is not None

    @staticmethod
    def _tmp_sibling(path: Path) -> Path:
        return path.with_name(path.name + ".tmp")

    def tmp_path(self) -> Path | None:
        return self._tmp_sibling(self.path) if self.path is not None else None

    def load(self) -> PersistentState:
        if self.path is None or not self.path.exists():
            return PersistentState()

        try:
            text = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise CorruptState(f"decode state: {e}") from e
        except OSError as e:
            raise IOFailure(f"read state: {e}") from e

        try:
            data = parse(text).unwrap()
        except (TOMLKitError, ValueError) as e:
            raise CorruptState(f"decode state: {e}") from e

        state = decode_state(data)
        self.log.info(
            "Loaded state path=%s users=%s device_tokens=%s rooms=%s",
            self.path,
            len(state.users),
            len(state.device_tokens),
            len(state.rooms),
        )
        return state

    def save(self, state: PersistentState) -> None:
        if self.path is None:
            return
        tmp = self._tmp_sibling(self.path)

        try:
            encoded = encode_state(state).encode("utf-8")
        except (ValueError, TOMLKitError) as e:
            raise IOFailure(f"encode state: {e}") from e

        with self._write_lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp, "wb") as f:
                    f.write(encoded)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp, 0o600)
                os.replace(tmp, self.path)
            except OSError as e:
                raise IOFailure(f"persist state: {e}") from e
            finally:
                # Gone after a successful replace; otherwise a partial write.
                try:
                    tmp.unlink(missing_ok=True)
                except OSError:
                    pass

            self._sync_dir()

        self.log.debug("Saved state path=%s bytes=%s", self.path, len(encoded))

    def _sync_dir(self) -> None:
        # Makes the rename itself durable; not supported everywhere.
        if self.path is None or not hasattr(os, "O_DIRECTORY"):
            return
        try:
            fd = os.open(self.path.parent, os.O_RDONLY | os.O_DIRECTORY)
        except OSError:
            return
        try:
            os.fsync(fd)
        except OSError:
            pass
        finally:
            os.close(fd)
