"""
Error taxonomy for collection runs.

ParseError and TransportError abort a collection (except during the refresh
step, which degrades); the warnings flag cache inconsistencies that are logged
and survived.
"""

from __future__ import annotations

from typing import Optional


class OpggCollectorError(Exception):
    """Base error carrying the remote operation context."""

    def __init__(
        self,
        message: str,
        *,
        region: Optional[str] = None,
        account: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.region = region
        self.account = account
        self.operation = operation

    def __str__(self) -> str:
        context = [
            f"{k}={v}"
            for k, v in (("region", self.region), ("account", self.account), ("operation", self.operation))
            if v
        ]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ParseError(OpggCollectorError):
    """Remote response shape unexpected (page format changed or schema drift)."""


class TransportError(OpggCollectorError):
    """Network-level failure: connection, timeout or non-success status."""


class CacheConsistencyWarning(UserWarning):
    """A match id referenced by player metadata is missing from storage."""


class MatchContentMismatchWarning(UserWarning):
    """A match id was fetched again with content differing from the stored record."""
