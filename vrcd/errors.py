"""Typed failures raised by control-plane operations.

Each failure carries a stable ``kind`` (used on the wire) and the status code
the request listener should answer with.
"""

from __future__ import annotations


class ControlPlaneError(Exception):
    kind = "internal"
    status = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_wire(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class InvalidInput(ControlPlaneError):
    """Malformed or missing request fields; rejected before touching state."""

    kind = "invalid_input"
    status = 400


class Unauthorized(ControlPlaneError):
    """Bad credentials or an unresolvable token."""

    kind = "unauthorized"
    status = 401


class Forbidden(ControlPlaneError):
    """A resolved identity that lacks the required privilege."""

    kind = "forbidden"
    status = 403


class NotFound(ControlPlaneError):
    kind = "not_found"
    status = 404


class Conflict(ControlPlaneError):
    kind = "conflict"
    status = 409


class IOFailure(ControlPlaneError):
    """Durable state could not be written (retryable by the caller)."""

    kind = "io_failure"
    status = 500


class CorruptState(ControlPlaneError):
    """The on-disk state could not be decoded. Fatal at startup."""

    kind = "corrupt_state"
    status = 500


_BY_KIND: dict[str, type[ControlPlaneError]] = {
    cls.kind: cls
    for cls in (InvalidInput, Unauthorized, Forbidden, NotFound, Conflict, IOFailure, CorruptState)
}


def error_from_wire(status: int, body) -> ControlPlaneError:
    """Rebuild the typed error from an ``{"error", "message"}`` reply."""
    kind = body.get("error") if isinstance(body, dict) else None
    message = body.get("message") if isinstance(body, dict) else None
    if not isinstance(message, str) or not message:
        message = f"server returned {status}"

    cls = _BY_KIND.get(kind) if isinstance(kind, str) else None
    if cls is not None:
        return cls(message)

    err = ControlPlaneError(message)
    err.kind = kind if isinstance(kind, str) and kind else "internal"
    err.status = status
    return err
