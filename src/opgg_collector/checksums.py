"""
Deterministic checksums for cached payloads (content comparison on re-fetch).
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any


def stable_json_dumps(obj: Any) -> str:
    """Serialize to JSON with sorted keys for deterministic output."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=_json_default)


def _json_default(o: Any) -> Any:
    if isinstance(o, datetime):
        return o.isoformat()
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def sha256_hex(text: str) -> str:
    """Return SHA-256 hash of text as hex string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def payload_checksum(payload: Any) -> str:
    """Checksum of a JSON-compatible payload, independent of key order."""
    return sha256_hex(stable_json_dumps(payload))
