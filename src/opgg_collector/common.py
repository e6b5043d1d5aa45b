"""Regions, timestamp parsing and shared constants."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

KNOWN_REGIONS = ("eune", "euw", "na", "lan", "oce", "ru", "jp", "br", "tr", "las", "kr")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_region(value: str) -> Optional[str]:
    """Return the normalized region code, or None if unknown."""
    region = (value or "").strip().lower()
    if region not in KNOWN_REGIONS:
        return None
    return region


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; aware datetimes are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: str) -> datetime:
    """Parse ISO 8601 or epoch milliseconds into an aware datetime. Raises ValueError."""
    s = (value or "").strip()
    if not s:
        raise ValueError("timestamp must be a non-empty string")
    if s.lstrip("-").isdigit():
        return datetime.fromtimestamp(int(s) / 1000, tz=timezone.utc)
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"timestamp must be ISO8601 or epoch milliseconds: {e!s}") from e
    return ensure_utc(dt)
