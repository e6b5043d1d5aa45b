"""Remote source: op.gg payload schemas and the HTTP client."""

from .schema import (
    BootstrapPayload,
    MatchPage,
    MatchRecord,
    Participant,
    PlayerSnapshot,
    RefreshStatus,
    Summoner,
    TierInfo,
)

__all__ = [
    "BootstrapPayload",
    "MatchPage",
    "MatchRecord",
    "Participant",
    "PlayerSnapshot",
    "RefreshStatus",
    "Summoner",
    "TierInfo",
]
