"""Request and response body codecs.

Bodies are JSON unless the request says ``Content-Type: application/cbor``,
in which case both directions use CBOR.
"""

from __future__ import annotations

import json
from typing import Any

import cbor2

CONTENT_JSON = "application/json"
CONTENT_CBOR = "application/cbor"


def encode(obj) -> bytes:
    return cbor2.dumps(obj)


def decode(b: bytes):
    return cbor2.loads(b)


def is_cbor(content_type: str | None) -> bool:
    return (content_type or "").split(";")[0].strip().lower() == CONTENT_CBOR


def decode_body(payload: bytes, content_type: str | None = None) -> Any:
    """Decode a request or response body. An empty body decodes to ``{}``."""
    if not payload:
        return {}
    if is_cbor(content_type):
        return decode(payload)
    return json.loads(payload.decode("utf-8"))


def encode_body(obj: Any, content_type: str | None = None) -> tuple[str, bytes]:
    """Encode ``obj`` in the format named by ``content_type``. Returns (content type, bytes)."""
    if is_cbor(content_type):
        return CONTENT_CBOR, encode(obj)
    return CONTENT_JSON, json.dumps(obj).encode("utf-8")
