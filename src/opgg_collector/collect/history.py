"""
Incremental match-history collection for one account.

The collector short-circuits to the cache when the account was captured before
and no refresh is wanted; otherwise it loads the profile page, optionally asks
for a remote refresh, and pages backwards through the match list until it meets
data the cache already holds (the cache fence), the requested window is filled,
or the remote history ends. Fetched records are persisted as they arrive, so a
failure half-way leaves every earlier page cached.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from opgg_collector.cache.store import CacheStore
from opgg_collector.collect.refresh import RefreshCoordinator, RefreshPolicy, Sleep
from opgg_collector.common import EPOCH, ensure_utc
from opgg_collector.ops.events import (
    log_bootstrap_loaded,
    log_collect_end,
    log_collect_start,
    log_page_fetched,
    log_pagination_stop,
)
from opgg_collector.remote.client import PAGE_SIZE, RemoteSource
from opgg_collector.remote.schema import MatchPage, MatchRecord

logger = logging.getLogger(__name__)

DEFAULT_GAME_TYPE = "soloranked"


@dataclass
class CollectionOptions:
    """Per-call options. since and max_count both limit the returned window."""

    refresh: RefreshPolicy = field(default_factory=RefreshPolicy.never)
    game_type: str = DEFAULT_GAME_TYPE
    since: Optional[datetime] = None
    max_count: Optional[int] = None
    cache: Optional[CacheStore] = None


def newest_first(games: Iterable[MatchRecord]) -> List[MatchRecord]:
    return sorted(games, key=lambda g: (g.created_at, g.id), reverse=True)


def merge_by_id(fetched: Iterable[MatchRecord], cached: Iterable[MatchRecord]) -> List[MatchRecord]:
    """Union by id; the cached copy wins over a freshly fetched one."""
    merged = {g.id: g for g in fetched}
    merged.update((g.id, g) for g in cached)
    return list(merged.values())


def apply_window(
    games: Iterable[MatchRecord],
    since: Optional[datetime],
    max_count: Optional[int],
) -> List[MatchRecord]:
    """Newest first, keeping games created at or after since, at most max_count of them."""
    ordered = newest_first(games)
    if since is not None:
        ordered = [g for g in ordered if g.created_at >= since]
    if max_count is not None:
        ordered = ordered[:max(0, max_count)]
    return ordered


class HistoryCollector:
    """Collects one account's history per call; holds no per-account state."""

    def __init__(
        self,
        source: RemoteSource,
        *,
        sleep: Sleep = asyncio.sleep,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._source = source
        self._refresh = RefreshCoordinator(source, sleep=sleep)
        self._page_size = page_size

    async def collect(
        self,
        region: str,
        name: str,
        options: Optional[CollectionOptions] = None,
    ) -> List[MatchRecord]:
        """Return the account's games newest first, deduplicated by id."""
        options = options or CollectionOptions()
        cache = options.cache
        if cache is not None and cache.region != region:
            raise ValueError(f"Cache for region {cache.region!r} cannot be used for region {region!r}")
        since = ensure_utc(options.since) if options.since is not None else None

        t_start = log_collect_start(region, name, options.refresh.describe())
        logger.debug("Beginning to collect history for account '%s', region %s", name, region.upper())

        meta = None
        if cache is not None:
            cached_name = cache.resolve_name(name) or name
            meta = cache.get_player_meta(cached_name)
            last_updated_at = meta.last_updated_at if meta is not None else None
            if cache.has_snapshot(cached_name) and not options.refresh.should_refresh(last_updated_at):
                logger.debug("Account '%s' is cached and no update was requested", cached_name)
                games = await cache.get_matches_for_player(cached_name) or []
                result = apply_window(games, since, options.max_count)
                log_collect_end(region, name, _elapsed(t_start), len(result), 0, "cache")
                return result

        bootstrap = await self._source.fetch_bootstrap(region, name)
        snapshot = bootstrap.snapshot.model_copy(update={"region": region})
        summoner_id = bootstrap.summoner_id
        log_bootstrap_loaded(region, snapshot.name, summoner_id, len(bootstrap.first_page.records))

        if cache is not None and snapshot.name != name:
            meta = cache.get_player_meta(snapshot.name) or meta
        # Everything at or before the fence is already cached for this account. A player
        # only seen as someone else's participant has no snapshot and no fence yet.
        cache_fence = EPOCH
        if cache is not None and meta is not None and cache.has_snapshot(snapshot.name):
            cache_fence = meta.last_game_created_at

        if cache is not None:
            await cache.put_snapshot(snapshot)

        last_known_update = snapshot.updated_at or (meta.last_updated_at if meta is not None else None)
        outcome = await self._refresh.run(region, summoner_id, options.refresh, last_known_update)

        pages_fetched = 0
        if outcome.refreshed:
            # Embedded games predate the refresh.
            page = await self._source.fetch_match_page(
                region, summoner_id, None, options.game_type, self._page_size
            )
            pages_fetched += 1
        else:
            page = bootstrap.first_page

        fetched: Dict[str, MatchRecord] = {}
        while True:
            reached_fence = await self._absorb(page, fetched, cache, cache_fence)
            log_page_fetched(region, summoner_id, len(page.records), len(fetched))
            if pages_fetched == 0:
                # The embedded page only ends paging at the cache fence.
                reason = "cache_fence" if reached_fence else None
            else:
                reason = self._stop_reason(page, fetched, reached_fence, options.max_count, since)
            if reason is not None:
                log_pagination_stop(region, summoner_id, reason, len(fetched))
                break
            page = await self._source.fetch_match_page(
                region, summoner_id, page.next_cursor, options.game_type, self._page_size
            )
            pages_fetched += 1

        if cache is not None:
            cached = await cache.get_matches_for_player(snapshot.name) or []
            games = merge_by_id(fetched.values(), cached)
        else:
            games = merge_by_id(fetched.values(), [])

        result = apply_window(games, since, options.max_count)
        log_collect_end(region, name, _elapsed(t_start), len(result), pages_fetched, "remote")
        return result

    @staticmethod
    async def _absorb(
        page: MatchPage,
        fetched: Dict[str, MatchRecord],
        cache: Optional[CacheStore],
        cache_fence: datetime,
    ) -> bool:
        """Collect and persist a page; True if it reached the cache fence."""
        reached_fence = False
        for record in page.records:
            fetched.setdefault(record.id, record)
            behind_fence = record.created_at <= cache_fence
            reached_fence = reached_fence or behind_fence
            if cache is not None and not (behind_fence and cache.has_match(record.id)):
                await cache.put_match(record)
        return reached_fence

    def _stop_reason(
        self,
        page: MatchPage,
        fetched: Dict[str, MatchRecord],
        reached_fence: bool,
        max_count: Optional[int],
        since: Optional[datetime],
    ) -> Optional[str]:
        if reached_fence:
            return "cache_fence"
        if max_count is not None and len(fetched) >= max_count:
            return "max_count"
        if len(page.records) < self._page_size:
            return "end_of_history"
        oldest = page.oldest_created_at
        if since is not None and oldest is not None and oldest <= since:
            return "since"
        if not page.next_cursor:
            return "no_cursor"
        return None


def _elapsed(t_start: float) -> float:
    return time.perf_counter() - t_start


async def collect_history(
    source: RemoteSource,
    region: str,
    name: str,
    options: Optional[CollectionOptions] = None,
) -> List[MatchRecord]:
    """Collect one account's history with a throwaway collector."""
    return await HistoryCollector(source).collect(region, name, options)
