"""
Per-player cache metadata and the fold that derives it from matches and snapshots.

Folds return new PlayerCacheMeta objects so the in-memory index only changes
after the matching database write has committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, Optional

from opgg_collector.common import EPOCH
from opgg_collector.remote.schema import MatchRecord, Participant, PlayerSnapshot


@dataclass
class PlayerCacheMeta:
    last_updated_at: Optional[datetime] = None  # None if no snapshot was ever cached
    last_game_created_at: datetime = EPOCH
    game_ids: set[str] = field(default_factory=set)
    rank_value: int = 0
    rank_observed_at: datetime = EPOCH

    def copy(self) -> "PlayerCacheMeta":
        return replace(self, game_ids=set(self.game_ids))

    @property
    def games_count(self) -> int:
        return len(self.game_ids)


def _start(current: Optional[PlayerCacheMeta]) -> PlayerCacheMeta:
    return current.copy() if current is not None else PlayerCacheMeta()


def fold_match(
    current: Optional[PlayerCacheMeta],
    record: MatchRecord,
    participant: Participant,
) -> PlayerCacheMeta:
    """Account one match for one participant."""
    meta = _start(current)
    meta.game_ids.add(record.id)
    if record.created_at > meta.last_game_created_at:
        meta.last_game_created_at = record.created_at
    if participant.tier_info is not None and record.created_at >= meta.rank_observed_at:
        meta.rank_value = participant.tier_info.rank_value
        meta.rank_observed_at = record.created_at
    return meta


def fold_snapshot(current: Optional[PlayerCacheMeta], snapshot: PlayerSnapshot) -> PlayerCacheMeta:
    """Account one account snapshot."""
    meta = _start(current)
    if snapshot.updated_at is not None:
        meta.last_updated_at = snapshot.updated_at
    latest = snapshot.latest_rank()
    if latest is not None and latest.tier_info is not None and latest.created_at >= meta.rank_observed_at:
        meta.rank_value = latest.tier_info.rank_value
        meta.rank_observed_at = latest.created_at
    return meta


def fold_all(
    matches: Iterable[MatchRecord],
    snapshots: Iterable[PlayerSnapshot],
) -> Dict[str, PlayerCacheMeta]:
    """Rebuild the whole index. Order of inputs does not matter."""
    metas: Dict[str, PlayerCacheMeta] = {}
    for snapshot in snapshots:
        metas[snapshot.name] = fold_snapshot(metas.get(snapshot.name), snapshot)
    for record in matches:
        for participant in record.participants:
            name = participant.summoner.name
            metas[name] = fold_match(metas.get(name), record, participant)
    return metas
