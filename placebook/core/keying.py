from __future__ import annotations

import base64
import hashlib
import uuid
from typing import Any, Dict

import orjson


def _orjson_dumps(obj: Any) -> bytes:
    return orjson.dumps(
        obj,
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
    )


def sha256_b32(data: bytes) -> str:
    h = hashlib.sha256(data).digest()
    # URL-safe base32-ish: we use base64 urlsafe with no padding for brevity
    return base64.urlsafe_b64encode(h).decode("ascii").rstrip("=")


def new_id() -> str:
    """Opaque row id (places, caches, trips, saved places)."""
    return uuid.uuid4().hex


def payload_digest(payload: Dict[str, Any]) -> str:
    """
    Content digest of an upstream place payload.

    Keys are sorted and None values dropped so the same upstream document
    always hashes the same, regardless of field order or absent extras.
    """
    cleaned = {k: v for k, v in payload.items() if v is not None}
    return sha256_b32(_orjson_dumps(cleaned))
