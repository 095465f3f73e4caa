from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator

from .config import ControlPlaneConfig
from .constants import RECOMMENDED_KEEPALIVE_DELAY_MS
from .credentials import CredentialStore
from .errors import InvalidInput, IOFailure, Unauthorized
from .messages import (
    AdminRoleUpdate,
    JoinGrant,
    KeepaliveAck,
    RoomInfo,
    SessionGrant,
    TokenPair,
    TunnelAnswer,
)
from .persistence import PersistenceManager, PersistentState
from .policy import AuthorizationPolicy
from .rooms import RoomRegistry
from .stats import StatsManager
from .tokens import TokenRegistry
from .util import short_token


class ControlPlaneService:
    """Single entry point for every control-plane operation.

    All stores are owned here and only touched with ``_state_lock`` held.
    Mutating operations write the durable snapshot before returning; if that
    write fails the stores are put back to their state before the call and
    IOFailure is raised.
    """

    def __init__(self, config: ControlPlaneConfig | None = None) -> None:
        self.config = config or ControlPlaneConfig()
        self.log = logging.getLogger("vrcd.service")

        # Request handler threads call in concurrently; one coarse lock
        # serializes every read and write across all stores.
        self._state_lock = threading.RLock()

        self.credentials = CredentialStore()
        self.tokens = TokenRegistry()
        self.rooms = RoomRegistry()
        self.policy = AuthorizationPolicy(self.credentials)
        self.persistence = PersistenceManager(self.config.state_path)
        self.stats_manager = StatsManager(self)

        with self._state_lock:
            self._load_initial_state()
        self.stats_manager.set_start_time()

    def _load_initial_state(self) -> None:
        if self.persistence.enabled:
            # CorruptState propagates: never serve partially-trusted state.
            state = self.persistence.load()
            self.credentials.restore(state.users)
            self.tokens.load_device_tokens(state.device_tokens)
            self.rooms.restore(state.rooms)
            if len(self.credentials) == 0:
                self._seed_demo_user()
        else:
            self._seed_demo_user()

        self.log.info(
            "State ready persist=%s users=%s rooms=%s",
            self.persistence.path or "-",
            len(self.credentials),
            len(self.rooms),
        )

    def _seed_demo_user(self) -> None:
        if not self.config.seed_demo_user:
            return
        self.credentials.seed(
            self.config.demo_username,
            self.config.demo_password,
            self.config.demo_device_id,
        )

    def _capture(self) -> tuple[Any, ...]:
        return (
            self.credentials.snapshot(),
            self.tokens.snapshot(),
            self.rooms.snapshot(),
        )

    def _restore(self, snap: tuple[Any, ...]) -> None:
        users, tokens, rooms = snap
        self.credentials.restore(users)
        self.tokens.restore(tokens)
        self.rooms.restore(rooms)

    def _persist_locked(self) -> None:
        if not self.persistence.enabled:
            return
        state = PersistentState(
            users=self.credentials.snapshot(),
            device_tokens=self.tokens.device_tokens(),
            rooms=self.rooms.snapshot(),
        )
        try:
            self.persistence.save(state)
        except IOFailure as e:
            self.stats_manager.inc("persist_failures")
            self.log.error("Persist failed, rolling back: %s", e)
            raise
        self.stats_manager.inc("persist_writes")

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        """Apply a change and make it durable, or leave no trace of it.

        Must be entered with the state lock held.
        """
        snap = self._capture()
        try:
            yield
            self._persist_locked()
        except Exception:
            self._restore(snap)
            raise

    # Operations

    def register(
        self, username: str, password: str, device_id: str | None = None
    ) -> TokenPair:
        with self._state_lock:
            with self._mutation():
                record = self.credentials.register(username, password, device_id)
                session_token = self.tokens.issue_session(record.username)
                device_token = self.tokens.issue_device(record.username)
            self.stats_manager.inc("registrations")
        return TokenPair(session_token=session_token, device_token=device_token)

    def login(self, username: str, password: str) -> TokenPair:
        with self._state_lock:
            try:
                record = self.credentials.verify(username, password)
            except Unauthorized:
                self.stats_manager.inc("logins_failed")
                self.log.warning("Login failed user=%r", username)
                raise
            with self._mutation():
                session_token = self.tokens.issue_session(record.username)
                device_token = self.tokens.issue_device(record.username)
            self.stats_manager.inc("logins")
        self.log.info("Login user=%s session=%s", record.username, short_token(session_token))
        return TokenPair(session_token=session_token, device_token=device_token)

    def refresh(self, device_token: str) -> SessionGrant:
        # Sessions are not durable, so a refresh has nothing to persist.
        with self._state_lock:
            session_token = self.tokens.refresh(device_token)
            self.stats_manager.inc("refreshes")
        return SessionGrant(session_token=session_token)

    def create_room(
        self,
        session_token: str,
        name: str,
        preferred_transport: str | None = None,
        mtu: int | None = None,
    ) -> RoomInfo:
        with self._state_lock:
            username = self.tokens.resolve_session(session_token)
            self.policy.require_room_creator(username)
            with self._mutation():
                room = self.rooms.create(name, preferred_transport, mtu)
            self.stats_manager.inc("rooms_created")
        self.log.info("Room %s created by user=%s", room.room_id, username)
        return RoomInfo(
            room_id=room.room_id,
            name=room.name,
            overlay_subnet=room.overlay_subnet,
            preferred_transport=room.preferred_transport,
            mtu=room.mtu,
        )

    def join_room(self, session_token: str, room_id: str, device_id: str) -> JoinGrant:
        with self._state_lock:
            # A missing room is reported regardless of session validity.
            self.rooms.require(room_id)
            username = self.tokens.resolve_session(session_token)
            with self._mutation():
                grant = self.rooms.join(room_id, device_id, username)
            self.stats_manager.inc("joins")
        return grant

    def keepalive(self, sequence: int) -> KeepaliveAck:
        if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 0:
            raise InvalidInput("sequence must be a non-negative integer")
        self.stats_manager.inc("keepalives")
        return KeepaliveAck(
            sequence=sequence,
            server_time_unix_sec=int(time.time()),
            recommended_delay_ms=RECOMMENDED_KEEPALIVE_DELAY_MS,
        )

    def bootstrap_tunnel(
        self,
        room_id: str,
        transport: str | None = None,
        cipher_suite: str | None = None,
        ephemeral_key: str = "",
    ) -> TunnelAnswer:
        with self._state_lock:
            answer = self.rooms.bootstrap_tunnel(room_id, transport, cipher_suite, ephemeral_key)
            self.stats_manager.inc("tunnel_bootstraps")
        return answer

    def update_admin_role(
        self, session_token: str, target_user: str, grant: bool
    ) -> AdminRoleUpdate:
        if not isinstance(grant, bool):
            raise InvalidInput("grant must be a boolean")
        with self._state_lock:
            acting = self.tokens.resolve_session(session_token)
            with self._mutation():
                is_admin = self.policy.grant_or_revoke(acting, target_user, grant)
            self.stats_manager.inc("role_changes")
        return AdminRoleUpdate(target_user=target_user, is_admin=is_admin)

    def format_stats(self) -> str:
        return self.stats_manager.format_stats()
