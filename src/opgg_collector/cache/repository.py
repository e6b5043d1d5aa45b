"""
Cache repository: rows of match records, player snapshots and player metadata.

No commits are performed here; the store owns transaction boundaries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from opgg_collector.cache.meta import PlayerCacheMeta
from opgg_collector.common import ensure_utc
from opgg_collector.models.cache import (
    CacheIndexState,
    CachedMatch,
    CachedPlayerSnapshot,
    PlayerMetaRow,
)
from opgg_collector.remote.schema import MatchRecord, PlayerSnapshot

# Stay well below SQLite's bound-parameter limit.
_IN_CHUNK = 500


def to_db_time(value: datetime) -> datetime:
    """SQLite drops tzinfo, so everything is stored as UTC."""
    return ensure_utc(value).astimezone(timezone.utc)


def from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def _meta_from_row(row: PlayerMetaRow) -> PlayerCacheMeta:
    return PlayerCacheMeta(
        last_updated_at=from_db_time(row.last_updated_at),
        last_game_created_at=ensure_utc(row.last_game_created_at),
        game_ids=set(json.loads(row.game_ids_json)),
        rank_value=row.rank_value,
        rank_observed_at=ensure_utc(row.rank_observed_at),
    )


class CacheRepository:
    """Repository for the cache tables (no base class; custom API)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- matches ---

    async def get_match_row(self, match_id: str) -> Optional[CachedMatch]:
        return await self.session.get(CachedMatch, match_id)

    async def add_match(self, record: MatchRecord, payload_json: str, payload_checksum: str) -> None:
        self.session.add(
            CachedMatch(
                match_id=record.id,
                created_at=to_db_time(record.created_at),
                is_remake=record.is_remake,
                cached_at_utc=datetime.now(timezone.utc),
                payload_json=payload_json,
                payload_checksum=payload_checksum,
            )
        )

    async def get_match_rows(self, match_ids: Sequence[str]) -> Dict[str, CachedMatch]:
        """Rows for the given ids; ids without a row are absent from the result."""
        rows: Dict[str, CachedMatch] = {}
        ids = list(match_ids)
        for start in range(0, len(ids), _IN_CHUNK):
            chunk = ids[start:start + _IN_CHUNK]
            result = await self.session.execute(select(CachedMatch).where(CachedMatch.match_id.in_(chunk)))
            for row in result.scalars():
                rows[row.match_id] = row
        return rows

    async def list_match_ids(self) -> List[str]:
        result = await self.session.execute(select(CachedMatch.match_id))
        return list(result.scalars().all())

    async def list_matches(self) -> List[MatchRecord]:
        """Every cached match, oldest first."""
        result = await self.session.execute(select(CachedMatch.payload_json).order_by(CachedMatch.created_at))
        return [MatchRecord.model_validate_json(payload) for payload in result.scalars()]

    # --- snapshots ---

    async def get_snapshot_row(self, name: str) -> Optional[CachedPlayerSnapshot]:
        return await self.session.get(CachedPlayerSnapshot, name)

    async def upsert_snapshot(self, snapshot: PlayerSnapshot, payload_json: str, payload_checksum: str) -> None:
        """Insert or replace the snapshot row for this name (latest wins)."""
        now = datetime.now(timezone.utc)
        updated_at = to_db_time(snapshot.updated_at) if snapshot.updated_at else None
        existing = await self.session.get(CachedPlayerSnapshot, snapshot.name)
        if existing:
            existing.summoner_id = snapshot.summoner_id
            existing.region = snapshot.region or existing.region
            existing.updated_at = updated_at
            existing.cached_at_utc = now
            existing.payload_json = payload_json
            existing.payload_checksum = payload_checksum
            self.session.add(existing)
        else:
            self.session.add(
                CachedPlayerSnapshot(
                    name=snapshot.name,
                    summoner_id=snapshot.summoner_id,
                    region=snapshot.region or "",
                    updated_at=updated_at,
                    cached_at_utc=now,
                    payload_json=payload_json,
                    payload_checksum=payload_checksum,
                )
            )

    async def list_snapshot_names(self) -> List[str]:
        result = await self.session.execute(select(CachedPlayerSnapshot.name))
        return list(result.scalars().all())

    async def list_snapshots(self) -> List[PlayerSnapshot]:
        result = await self.session.execute(select(CachedPlayerSnapshot.payload_json))
        return [PlayerSnapshot.model_validate_json(payload) for payload in result.scalars()]

    # --- player metadata ---

    async def load_meta(self) -> Dict[str, PlayerCacheMeta]:
        result = await self.session.execute(select(PlayerMetaRow))
        return {row.name: _meta_from_row(row) for row in result.scalars()}

    async def upsert_meta(self, metas: Dict[str, PlayerCacheMeta]) -> None:
        for name, meta in metas.items():
            row = await self.session.get(PlayerMetaRow, name)
            if row is None:
                row = PlayerMetaRow(name=name)
            row.last_updated_at = to_db_time(meta.last_updated_at) if meta.last_updated_at else None
            row.last_game_created_at = to_db_time(meta.last_game_created_at)
            row.rank_value = meta.rank_value
            row.rank_observed_at = to_db_time(meta.rank_observed_at)
            row.game_ids_json = json.dumps(sorted(meta.game_ids))
            self.session.add(row)

    async def replace_meta(self, metas: Dict[str, PlayerCacheMeta]) -> None:
        await self.session.execute(delete(PlayerMetaRow))
        await self.session.flush()
        await self.upsert_meta(metas)

    # --- index markers ---

    async def get_index_state(self, key: str) -> Optional[str]:
        row = await self.session.get(CacheIndexState, key)
        return row.value if row is not None else None

    async def set_index_state(self, key: str, value: str) -> None:
        row = await self.session.get(CacheIndexState, key)
        if row is None:
            self.session.add(CacheIndexState(key=key, value=value))
        else:
            row.value = value
            self.session.add(row)

