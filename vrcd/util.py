from __future__ import annotations

import os

from .constants import CIPHER_SUITES, TRANSPORTS


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def normalize_username(value) -> str | None:
    if not isinstance(value, str):
        return None
    if not value or not value.strip():
        return None

    # Usernames are case-sensitive and may not carry whitespace anywhere,
    # including leading/trailing or embedded newlines.
    if any(ch.isspace() for ch in value):
        return None
    if "\x00" in value:
        return None

    try:
        value.encode("utf-8", "strict")
    except UnicodeError:
        return None

    return value


def is_blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def is_utf8_text(value) -> bool:
    """False for non-strings and for strings holding lone surrogates."""
    if not isinstance(value, str):
        return False
    try:
        value.encode("utf-8", "strict")
    except UnicodeError:
        return False
    return True


def normalize_transport(value) -> str | None:
    if not isinstance(value, str):
        return None
    s = value.strip().lower()
    return s if s in TRANSPORTS else None


def normalize_cipher_suite(value) -> str | None:
    if not isinstance(value, str):
        return None
    s = value.strip().lower()
    return s if s in CIPHER_SUITES else None


def short_token(token: str | None, *, prefix: int = 8) -> str:
    if not token:
        return "-"
    return token[: min(prefix, len(token))]
