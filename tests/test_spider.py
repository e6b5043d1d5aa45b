"""Spider: next-account orderings, state persistence and the crawl loop."""

from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from fakes import FakeSource, RecordingSleep, make_match, sqlite_url, tier
from opgg_collector.cache.store import CacheStore
from opgg_collector.collect.history import HistoryCollector
from opgg_collector.crawl.spider import (
    ORDER_CHOICES,
    Spider,
    SpiderState,
    load_spider_state,
    pick_next,
    priority_function,
    save_spider_state,
)
from opgg_collector.errors import ParseError

LONG_AGO = datetime(2000, 1, 1, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def cache(tmp_path):
    store = await CacheStore.open("euw", database_url=sqlite_url(tmp_path / "euw.sqlite"))
    yield store
    await store.close()


def _state(**overrides) -> SpiderState:
    values = {"region": "euw", "start_account": "Alpha", "start_timestamp": LONG_AGO}
    values.update(overrides)
    return SpiderState(**values)


def test_pick_next_skips_visited():
    priorities = {"a": 1.0, "b": 3.0, "c": 2.0}
    assert pick_next(priorities, {"b"}) == "c"
    assert pick_next(priorities, set()) == "b"
    assert pick_next(priorities, {"a", "b", "c"}) is None
    assert pick_next({}, set()) is None


@pytest.mark.asyncio
async def test_orderings_pick_different_accounts(cache):
    # Low: ranked GOLD, one game at 10. Mid: IRON, one game at 50. High: DIAMOND, three games 20..30.
    await cache.put_match(make_match("l1", 10, [("Low", tier("GOLD", 4))]))
    await cache.put_match(make_match("m1", 50, [("Mid", tier("IRON", 4))]))
    for i, minutes in enumerate((20, 25, 30)):
        await cache.put_match(make_match(f"h{i}", minutes, [("High", tier("DIAMOND", 4))]))
    state = _state(start_account_rank_value=1500)
    accounts = ("Low", "Mid", "High")

    def best(order: str) -> str:
        priority = priority_function(order, cache, state, random.Random(1))
        return pick_next({a: priority(a) for a in accounts}, set())

    assert best("low") == "Mid"
    assert best("high") == "High"
    assert best("close") == "Low"
    assert best("active") == "Mid"
    assert best("inactive") == "Low"
    assert best("connected") == "High"
    assert best("random") in accounts


@pytest.mark.asyncio
async def test_unknown_order_is_rejected(cache):
    assert "connected" in ORDER_CHOICES
    with pytest.raises(ValueError):
        priority_function("alphabetical", cache, _state(), random.Random())


def test_state_save_and_load(tmp_path):
    path = tmp_path / "spiderState.json"
    assert load_spider_state(path) is None

    state = _state(order="close", accounts_priorities={"Beta": 2.0}, accounts_visited=["Alpha"], games_count=7)
    save_spider_state(state, path)
    assert load_spider_state(path).model_dump() == state.model_dump()

    path.write_text("{not json", encoding="utf-8")
    assert load_spider_state(path) is None


@pytest.mark.asyncio
async def test_spider_region_must_match_cache(cache):
    with pytest.raises(ValueError):
        Spider(HistoryCollector(FakeSource()), cache, _state(region="kr"), state_path=None)


class _SourceWithBrokenAccount(FakeSource):
    async def fetch_bootstrap(self, region, name):
        if name == "Delta":
            raise ParseError("profile page changed", region=region, account=name, operation="bootstrap")
        return await super().fetch_bootstrap(region, name)


@pytest.mark.asyncio
async def test_spider_crawls_by_order_and_continues(cache, tmp_path):
    source = _SourceWithBrokenAccount()
    source.add_account(
        "Alpha", [make_match("m1", 0, [("Alpha", None), ("Bravo", tier("GOLD", 1)), ("Charlie", tier("SILVER", 1))])]
    )
    source.add_account("Bravo", [make_match("m2", 5, [("Bravo", tier("GOLD", 1)), ("Delta", None)])])
    source.add_account("Charlie", [make_match("m3", 9, [("Charlie", tier("SILVER", 1))])])
    state_path = tmp_path / "spiderState.json"
    sleep = RecordingSleep()

    spider = Spider(
        HistoryCollector(source),
        cache,
        _state(order="high"),
        state_path=state_path,
        delay_seconds=0.5,
        sleep=sleep,
    )
    state = await spider.run(max_accounts=2)

    assert state.accounts_visited == ["Alpha", "Bravo"]
    assert state.games_count == 2
    assert set(state.accounts_priorities) == {"Alpha", "Bravo", "Charlie", "Delta"}
    assert sleep.delays == [0.5, 0.5]
    assert source.calls_to("request_refresh") == 0
    assert load_spider_state(state_path).model_dump() == state.model_dump()

    resumed = Spider(HistoryCollector(source), cache, load_spider_state(state_path), state_path=state_path)
    state = await resumed.run()

    assert state.accounts_visited == ["Alpha", "Bravo", "Charlie", "Delta"]
    assert state.games_count == 3
    assert load_spider_state(state_path).accounts_visited == state.accounts_visited
