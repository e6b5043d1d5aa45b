"""
Per-region cache of match records and player snapshots.

Player metadata (last refresh, newest game, game ids, rank value) is kept in
memory and mirrored to the database in the same transaction as the record that
changed it. The mirrored index is only trusted while its validity marker is
present; otherwise it is rebuilt by folding every stored match and snapshot.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Dict, List, Optional, Set

from opgg_collector.cache.meta import PlayerCacheMeta, fold_all, fold_match, fold_snapshot
from opgg_collector.cache.repository import CacheRepository
from opgg_collector.checksums import payload_checksum, stable_json_dumps
from opgg_collector.core.config import Settings, get_settings
from opgg_collector.core.database import DatabaseManager
from opgg_collector.errors import CacheConsistencyWarning, MatchContentMismatchWarning
from opgg_collector.ops.events import log_cache_index_rebuilt
from opgg_collector.remote.schema import MatchRecord, PlayerSnapshot

logger = logging.getLogger(__name__)

META_INDEX_KEY = "player_meta"
META_INDEX_VALID = "valid"


class CacheStore:
    """Cache for one region. Open with ``await CacheStore.open(region)``."""

    def __init__(self, region: str, db: DatabaseManager) -> None:
        self.region = region
        self._db = db
        self._match_ids: Set[str] = set()
        self._snapshot_names: Set[str] = set()
        self._meta: Dict[str, PlayerCacheMeta] = {}
        self._casefolded: Dict[str, str] = {}

    @classmethod
    async def open(
        cls,
        region: str,
        database_url: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> "CacheStore":
        settings = settings or get_settings()
        url = database_url or settings.database_url_for(region)
        db = DatabaseManager(url)
        await db.init()
        store = cls(region, db)
        try:
            await store._load()
        except Exception:
            await db.dispose()
            raise
        logger.debug("Using cache for region %s: %s", region, url)
        return store

    async def close(self) -> None:
        await self._db.dispose()

    async def __aenter__(self) -> "CacheStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _load(self) -> None:
        async with self._db.session() as session:
            repo = CacheRepository(session)
            self._match_ids = set(await repo.list_match_ids())
            self._snapshot_names = set(await repo.list_snapshot_names())
            index_state = await repo.get_index_state(META_INDEX_KEY)
            if index_state == META_INDEX_VALID:
                self._set_meta(await repo.load_meta())
                return
        await self.rebuild_index()

    async def rebuild_index(self) -> None:
        """Recompute all player metadata from stored matches and snapshots."""
        logger.info("Regenerating player metadata index for region %s...", self.region)
        async with self._db.session() as session:
            repo = CacheRepository(session)
            matches = await repo.list_matches()
            snapshots = await repo.list_snapshots()
            metas = fold_all(matches, snapshots)
            await repo.replace_meta(metas)
            await repo.set_index_state(META_INDEX_KEY, META_INDEX_VALID)
        self._set_meta(metas)
        log_cache_index_rebuilt(self.region, len(matches), len(snapshots), len(metas))

    def _set_meta(self, metas: Dict[str, PlayerCacheMeta]) -> None:
        self._meta = metas
        self._casefolded = {name.casefold(): name for name in metas}

    def _commit_meta(self, metas: Dict[str, PlayerCacheMeta]) -> None:
        for name, meta in metas.items():
            self._meta[name] = meta
            self._casefolded.setdefault(name.casefold(), name)

    # --- players ---

    def get_player_meta(self, name: str) -> Optional[PlayerCacheMeta]:
        return self._meta.get(name)

    def resolve_name(self, name: str) -> Optional[str]:
        """Known display name for name, matching case-insensitively as a fallback."""
        if name in self._meta:
            return name
        return self._casefolded.get(name.casefold())

    def player_names(self) -> List[str]:
        return list(self._meta)

    def has_snapshot(self, name: str) -> bool:
        return name in self._snapshot_names

    async def get_snapshot(self, name: str) -> Optional[PlayerSnapshot]:
        """Cached snapshot for name, or None if not stored."""
        if name not in self._snapshot_names:
            return None
        async with self._db.session() as session:
            row = await CacheRepository(session).get_snapshot_row(name)
        if row is None:
            return None
        return PlayerSnapshot.model_validate_json(row.payload_json)

    async def put_snapshot(self, snapshot: PlayerSnapshot) -> None:
        """Persist a snapshot; region must already be stamped by the caller."""
        if not snapshot.region:
            raise ValueError("Expected region to be filled after downloading")
        if snapshot.region != self.region:
            raise ValueError(f"Snapshot region {snapshot.region!r} does not match cache region {self.region!r}")
        payload = snapshot.to_payload()
        meta = fold_snapshot(self._meta.get(snapshot.name), snapshot)
        async with self._db.session() as session:
            repo = CacheRepository(session)
            await repo.upsert_snapshot(snapshot, stable_json_dumps(payload), payload_checksum(payload))
            await repo.upsert_meta({snapshot.name: meta})
        self._snapshot_names.add(snapshot.name)
        self._commit_meta({snapshot.name: meta})

    # --- matches ---

    @property
    def match_count(self) -> int:
        return len(self._match_ids)

    def has_match(self, match_id: str) -> bool:
        return match_id in self._match_ids

    async def get_match(self, match_id: str) -> Optional[MatchRecord]:
        if match_id not in self._match_ids:
            return None
        async with self._db.session() as session:
            row = await CacheRepository(session).get_match_row(match_id)
        if row is None:
            return None
        return MatchRecord.model_validate_json(row.payload_json)

    async def put_match(self, record: MatchRecord) -> None:
        """Persist a match and account it in every participant's metadata.

        A record already stored under the same id is kept; differing content is
        reported with MatchContentMismatchWarning.
        """
        payload = record.to_payload()
        checksum = payload_checksum(payload)
        async with self._db.session() as session:
            repo = CacheRepository(session)
            existing = await repo.get_match_row(record.id)
            if existing is None:
                await repo.add_match(record, stable_json_dumps(payload), checksum)
            else:
                if existing.payload_checksum != checksum:
                    message = f"Cached match '{record.id}' differs from re-fetched content; keeping cached version"
                    logger.warning(message)
                    warnings.warn(message, MatchContentMismatchWarning, stacklevel=2)
                record = MatchRecord.model_validate_json(existing.payload_json)

            metas: Dict[str, PlayerCacheMeta] = {}
            for participant in record.participants:
                name = participant.summoner.name
                metas[name] = fold_match(metas.get(name) or self._meta.get(name), record, participant)
            await repo.upsert_meta(metas)
        self._match_ids.add(record.id)
        self._commit_meta(metas)

    async def get_matches_for_player(self, name: str) -> Optional[List[MatchRecord]]:
        """Cached matches of a known player, newest first; None if the player is unknown."""
        meta = self._meta.get(name)
        if meta is None:
            return None
        async with self._db.session() as session:
            rows = await CacheRepository(session).get_match_rows(sorted(meta.game_ids))
        games: List[MatchRecord] = []
        for match_id in meta.game_ids:
            row = rows.get(match_id)
            if row is None:
                message = f"Failed finding cached game ID: '{match_id}' for user: '{name}'"
                logger.warning(message)
                warnings.warn(message, CacheConsistencyWarning, stacklevel=2)
                continue
            games.append(MatchRecord.model_validate_json(row.payload_json))
        games.sort(key=lambda g: (g.created_at, g.id), reverse=True)
        return games
