"""Statistics tracking and reporting for the control plane."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import ControlPlaneService


class StatsManager:
    """
    Manages control-plane statistics collection and reporting.

    Tracks counters for:
    - Registrations, logins and refreshes
    - Room creation and joins
    - Role changes
    - Keepalives and tunnel bootstraps
    - Persistence writes and failures
    - Rejected requests
    """

    def __init__(self, service: ControlPlaneService) -> None:
        self.service = service
        self.log = service.log

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "registrations": 0,
            "logins": 0,
            "logins_failed": 0,
            "refreshes": 0,
            "rooms_created": 0,
            "joins": 0,
            "role_changes": 0,
            "keepalives": 0,
            "tunnel_bootstraps": 0,
            "persist_writes": 0,
            "persist_failures": 0,
            "requests_rejected": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        with self.service._state_lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self.service._state_lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self.service._state_lock:
            return dict(self._counters)

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        now_mono = time.monotonic()
        started_mono = self.started_monotonic
        uptime_s = (now_mono - started_mono) if started_mono is not None else 0.0

        with self.service._state_lock:
            token_stats = self.service.tokens.get_stats()
            room_stats = self.service.rooms.get_stats()
            users_total = len(self.service.credentials)
            c = dict(self._counters)

        lines: list[str] = []
        lines.append(f"vrcd {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(
            f"users={users_total} sessions={token_stats['sessions']} "
            f"device_tokens={token_stats['device_tokens']}"
        )
        lines.append(
            f"rooms={room_stats['rooms_total']} memberships={room_stats['memberships']}"
        )
        lines.append(
            "auth: registrations={} logins={} logins_failed={} refreshes={} role_changes={}".format(
                c.get("registrations", 0),
                c.get("logins", 0),
                c.get("logins_failed", 0),
                c.get("refreshes", 0),
                c.get("role_changes", 0),
            )
        )
        lines.append(
            "rooms: created={} joins={} tunnel_bootstraps={} keepalives={}".format(
                c.get("rooms_created", 0),
                c.get("joins", 0),
                c.get("tunnel_bootstraps", 0),
                c.get("keepalives", 0),
            )
        )
        lines.append(
            "persist: writes={} failures={} rejected={}".format(
                c.get("persist_writes", 0),
                c.get("persist_failures", 0),
                c.get("requests_rejected", 0),
            )
        )

        return "\n".join(lines)
