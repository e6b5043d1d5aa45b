"""
Spider: crawl from one account to the accounts it played with, collecting each
one's history into the region cache.

The next account is the unvisited one with the highest priority under the
chosen order. State is written after every account so a crawl can continue
where it stopped.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from opgg_collector.cache.store import CacheStore
from opgg_collector.collect.history import CollectionOptions, HistoryCollector
from opgg_collector.collect.refresh import RefreshPolicy, Sleep
from opgg_collector.errors import OpggCollectorError
from opgg_collector.ops.events import log_spider_progress

logger = logging.getLogger(__name__)

ORDER_CHOICES = (
    "low",  # lower rank first
    "high",  # higher rank first
    "close",  # rank closest to the starting account first
    "active",  # most recent last game first
    "inactive",  # oldest last game first
    "connected",  # most cached games first
    "random",
)

DEFAULT_STATE_PATH = "spiderState.json"


class SpiderState(BaseModel):
    region: str
    start_account: str
    start_account_rank_value: int = 0
    start_timestamp: datetime
    order: str = "random"
    accounts_priorities: Dict[str, float] = Field(default_factory=dict)
    accounts_visited: List[str] = Field(default_factory=list)
    games_count: int = 0


def save_spider_state(state: SpiderState, path: str | Path = DEFAULT_STATE_PATH) -> None:
    Path(path).write_text(state.model_dump_json(indent=2), encoding="utf-8")


def load_spider_state(path: str | Path = DEFAULT_STATE_PATH) -> Optional[SpiderState]:
    """Saved state, or None if missing or corrupted."""
    p = Path(path)
    if not p.is_file():
        return None
    try:
        return SpiderState.model_validate_json(p.read_text(encoding="utf-8"))
    except (ValidationError, OSError) as e:
        logger.warning("Spider state at %s is unreadable: %s", p, e)
        return None


def priority_function(
    order: str,
    cache: CacheStore,
    state: SpiderState,
    rng: random.Random,
) -> Callable[[str], float]:
    """Higher value means visited sooner."""

    def rank(account: str) -> int:
        meta = cache.get_player_meta(account)
        return meta.rank_value if meta is not None else 0

    def last_game(account: str) -> float:
        meta = cache.get_player_meta(account)
        return meta.last_game_created_at.timestamp() if meta is not None else 0.0

    def games(account: str) -> int:
        meta = cache.get_player_meta(account)
        return meta.games_count if meta is not None else 0

    if order == "low":
        return lambda account: -rank(account)
    if order == "high":
        return lambda account: rank(account)
    if order == "close":
        return lambda account: -abs(rank(account) - state.start_account_rank_value)
    if order == "active":
        return last_game
    if order == "inactive":
        return lambda account: -last_game(account)
    if order == "connected":
        return games
    if order == "random":
        return lambda account: rng.random()
    raise ValueError(f"Unknown spider order: {order!r}")


def pick_next(priorities: Dict[str, float], visited: set[str]) -> Optional[str]:
    best: Optional[str] = None
    best_priority = float("-inf")
    for account, priority in priorities.items():
        if account in visited:
            continue
        if priority > best_priority:
            best, best_priority = account, priority
    return best


class Spider:
    def __init__(
        self,
        collector: HistoryCollector,
        cache: CacheStore,
        state: SpiderState,
        *,
        state_path: Optional[str | Path] = DEFAULT_STATE_PATH,
        delay_seconds: float = 0.0,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        if state.region != cache.region:
            raise ValueError(f"Spider state region {state.region!r} does not match cache region {cache.region!r}")
        self.state = state
        self._collector = collector
        self._cache = cache
        self._state_path = state_path
        self._delay_seconds = delay_seconds
        self._sleep = sleep
        self._priority = priority_function(state.order, cache, state, rng or random.Random())

    def _next_account(self, visited: set[str]) -> Optional[str]:
        if self.state.start_account not in visited:
            return self.state.start_account
        return pick_next(self.state.accounts_priorities, visited)

    async def run(self, max_accounts: Optional[int] = None) -> SpiderState:
        """Visit accounts until none are left or max_accounts were visited in this run."""
        state = self.state
        visited = set(state.accounts_visited)
        options = CollectionOptions(refresh=RefreshPolicy.older_than(state.start_timestamp), cache=self._cache)
        visited_now = 0

        account = self._next_account(visited)
        while account:
            if max_accounts is not None and visited_now >= max_accounts:
                break
            log_spider_progress(state.region, len(visited), len(state.accounts_priorities), state.games_count, account)

            try:
                games = await self._collector.collect(state.region, account, options)
            except OpggCollectorError as e:
                logger.warning("Collecting account '%s' failed, skipping it: %s", account, e)
                games = []
            visited.add(account)
            state.accounts_visited.append(account)
            visited_now += 1
            state.games_count = self._cache.match_count

            if account == state.start_account:
                meta = self._cache.get_player_meta(account)
                if meta is not None:
                    state.start_account_rank_value = meta.rank_value

            for game in games:
                for name in game.participant_names():
                    state.accounts_priorities[name] = self._priority(name)

            if self._state_path is not None:
                save_spider_state(state, self._state_path)

            account = self._next_account(visited)
            if account and self._delay_seconds > 0:
                # let the remote service rest between accounts
                await self._sleep(self._delay_seconds)

        return state
