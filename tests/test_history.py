"""History collection: cache short-circuit, pagination stops, windowing and durability."""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio

from fakes import BASE_TIME, FakeSource, RecordingSleep, make_match, make_snapshot, sqlite_url
from opgg_collector.cache.store import CacheStore
from opgg_collector.collect.history import (
    CollectionOptions,
    HistoryCollector,
    apply_window,
    collect_history,
    merge_by_id,
)
from opgg_collector.collect.refresh import RefreshPolicy
from opgg_collector.errors import TransportError
from opgg_collector.remote.schema import RefreshStatus

PAGE = 3


def _ten_games():
    # minutes 0, 10, ..., 90
    return [make_match(f"g{m}", m, [("Alpha", None), (f"Foe{m}", None)]) for m in range(0, 100, 10)]


def _source(games=None) -> FakeSource:
    source = FakeSource(page_size=PAGE)
    source.add_account("Alpha", _ten_games() if games is None else games)
    return source


def _collector(source: FakeSource) -> HistoryCollector:
    return HistoryCollector(source, sleep=RecordingSleep(), page_size=PAGE)


def _ids(games):
    return [g.id for g in games]


@pytest_asyncio.fixture
async def cache(tmp_path):
    store = await CacheStore.open("euw", database_url=sqlite_url(tmp_path / "euw.sqlite"))
    yield store
    await store.close()


def test_apply_window_since_then_max_count():
    games = _ten_games()
    since = BASE_TIME + timedelta(minutes=50)
    assert _ids(apply_window(games, since, None)) == ["g90", "g80", "g70", "g60", "g50"]
    assert _ids(apply_window(games, None, 2)) == ["g90", "g80"]
    assert _ids(apply_window(games, since, 2)) == ["g90", "g80"]
    assert apply_window(games, None, 0) == []


def test_merge_by_id_prefers_cached_copy():
    fetched = [make_match("g1", 0, note="fresh"), make_match("g2", 5)]
    cached = [make_match("g1", 0, note="cached")]
    merged = {g.id: g for g in merge_by_id(fetched, cached)}
    assert set(merged) == {"g1", "g2"}
    assert merged["g1"].to_payload()["note"] == "cached"


@pytest.mark.asyncio
async def test_full_history_without_cache_pages_to_the_end():
    source = _source()
    games = await _collector(source).collect("euw", "Alpha")
    assert _ids(games) == [f"g{m}" for m in range(90, -1, -10)]
    # bootstrap holds 90..70, then 60..40, 30..10, and the short page [0]
    assert source.calls_to("bootstrap") == 1
    assert source.calls_to("match_page") == 3
    assert source.calls_to("request_refresh") == 0


@pytest.mark.asyncio
async def test_since_limits_pages_and_result():
    source = _source()
    options = CollectionOptions(since=BASE_TIME + timedelta(minutes=50))
    games = await _collector(source).collect("euw", "Alpha", options)
    assert _ids(games) == ["g90", "g80", "g70", "g60", "g50"]
    assert source.calls_to("match_page") == 1


@pytest.mark.asyncio
async def test_short_first_page_costs_exactly_one_page_request():
    source = FakeSource(page_size=20)
    source.add_account("Alpha", [make_match(f"g{m}", m) for m in range(5)])
    games = await HistoryCollector(source, sleep=RecordingSleep()).collect("euw", "Alpha")
    assert len(games) == 5
    assert source.calls_to("match_page") == 1


@pytest.mark.asyncio
async def test_max_count_still_requests_one_page_past_the_embedded_one():
    source = _source()
    games = await _collector(source).collect("euw", "Alpha", CollectionOptions(max_count=2))
    assert _ids(games) == ["g90", "g80"]
    assert source.calls_to("match_page") == 1


@pytest.mark.asyncio
async def test_empty_history():
    source = _source(games=[])
    assert await _collector(source).collect("euw", "Alpha") == []
    assert source.calls_to("match_page") == 1


@pytest.mark.asyncio
async def test_second_collect_is_served_from_cache(cache):
    source = _source()
    collector = _collector(source)
    first = await collector.collect("euw", "Alpha", CollectionOptions(cache=cache))
    calls_after_first = len(source.calls)

    second = await collector.collect("euw", "Alpha", CollectionOptions(cache=cache))
    assert len(source.calls) == calls_after_first
    assert _ids(second) == _ids(first)
    assert cache.match_count == 10
    assert cache.has_snapshot("Alpha")


@pytest.mark.asyncio
async def test_cached_account_found_case_insensitively(cache):
    source = _source()
    collector = _collector(source)
    await collector.collect("euw", "Alpha", CollectionOptions(cache=cache))
    calls_after_first = len(source.calls)
    games = await collector.collect("euw", "alpha", CollectionOptions(cache=cache, max_count=1))
    assert _ids(games) == ["g90"]
    assert len(source.calls) == calls_after_first


@pytest.mark.asyncio
async def test_refresh_stops_paging_at_cache_fence(cache):
    source = _source()
    collector = _collector(source)
    await collector.collect("euw", "Alpha", CollectionOptions(cache=cache))

    new_games = [make_match(f"g{m}", m, [("Alpha", None)]) for m in (100, 110)]
    source.add_account("Alpha", _ten_games() + new_games, updated_minutes=120)
    pages_before = source.calls_to("match_page")

    games = await collector.collect("euw", "Alpha", CollectionOptions(refresh=RefreshPolicy.always(), cache=cache))
    assert source.calls_to("request_refresh") == 1
    # a single fresh page 110, 100, 90 reaches the fence at 90
    assert source.calls_to("match_page") - pages_before == 1
    assert _ids(games)[:3] == ["g110", "g100", "g90"]
    assert len(games) == 12
    assert cache.get_player_meta("Alpha").last_updated_at == BASE_TIME + timedelta(minutes=120)


@pytest.mark.asyncio
async def test_failed_refresh_falls_back_to_embedded_page(cache):
    source = _source()
    source.refresh_statuses = [RefreshStatus(done=False, delay_ms=10)]  # status poll then runs dry
    games = await _collector(source).collect(
        "euw", "Alpha", CollectionOptions(refresh=RefreshPolicy.always(), cache=cache, max_count=3)
    )
    assert _ids(games) == ["g90", "g80", "g70"]
    assert source.calls_to("match_page") == 1


@pytest.mark.asyncio
async def test_cached_copy_wins_in_result(cache):
    await cache.put_snapshot(make_snapshot("Alpha"))
    await cache.put_match(make_match("g50", 50, [("Alpha", None), ("Foe50", None)], note="cached"))
    source = _source(games=[make_match(f"g{m}", m, [("Alpha", None)], note="fresh") for m in (70, 60, 50, 40)])

    options = CollectionOptions(refresh=RefreshPolicy.always(), cache=cache)
    games = await _collector(source).collect("euw", "Alpha", options)
    by_id = {g.id: g for g in games}
    assert by_id["g50"].to_payload()["note"] == "cached"
    assert by_id["g70"].to_payload()["note"] == "fresh"
    # the fresh first page 70, 60, 50 reaches the fence at 50; 40 is never fetched
    assert "g40" not in by_id
    assert source.calls_to("match_page") == 1


@pytest.mark.asyncio
async def test_player_seen_only_in_other_games_is_collected_in_full(cache):
    shared = make_match("shared", 60, [("Alpha", None), ("Beta", None)])
    source = FakeSource(page_size=PAGE)
    source.add_account("Alpha", [shared, make_match("a50", 50, [("Alpha", None)])])
    beta_games = [make_match(f"b{m}", m, [("Beta", None)]) for m in (0, 10, 20, 30, 40, 50, 70)]
    source.add_account("Beta", beta_games + [shared])
    collector = _collector(source)

    await collector.collect("euw", "Alpha", CollectionOptions(cache=cache))
    assert cache.get_player_meta("Beta").last_game_created_at == shared.created_at

    games = await collector.collect("euw", "Beta", CollectionOptions(cache=cache))
    assert _ids(games) == ["b70", "shared", "b50", "b40", "b30", "b20", "b10", "b0"]
    assert cache.get_player_meta("Beta").games_count == 8


@pytest.mark.asyncio
async def test_pagination_error_keeps_earlier_pages_cached(cache, tmp_path):
    source = _source()
    source.fail_page_after = 1
    with pytest.raises(TransportError):
        await _collector(source).collect("euw", "Alpha", CollectionOptions(cache=cache))

    cached_ids = {f"g{m}" for m in range(90, 30, -10)}
    assert all(cache.has_match(i) for i in cached_ids)
    assert not cache.has_match("g30")

    async with await CacheStore.open("euw", database_url=sqlite_url(tmp_path / "euw.sqlite")) as reopened:
        assert all(reopened.has_match(i) for i in cached_ids)
        assert reopened.get_player_meta("Alpha").games_count == 6


@pytest.mark.asyncio
async def test_cache_for_other_region_is_rejected(cache):
    with pytest.raises(ValueError):
        await _collector(_source()).collect("kr", "Alpha", CollectionOptions(cache=cache))


@pytest.mark.asyncio
async def test_collect_history_helper():
    source = FakeSource()
    source.add_account("Alpha", _ten_games())
    games = await collect_history(source, "euw", "Alpha")
    assert len(games) == 10
