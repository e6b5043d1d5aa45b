"""
Structured ops events for collection milestones.
Log-level + structured event dict; deterministic keys (no random ids).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

OPS_LOGGER_NAME = "opgg_collector.ops_events"


def _logger() -> logging.Logger:
    return logging.getLogger(OPS_LOGGER_NAME)


def _event(event_type: str, level: int = logging.INFO, **kwargs: Any) -> None:
    """Emit a structured ops event (deterministic keys; no random ids)."""
    msg = f"ops_event={event_type} " + " ".join(f"{k}={v!r}" for k, v in sorted(kwargs.items()))
    _logger().log(level, msg, extra={"ops_event_type": event_type, "ops_event": {**kwargs}})


def log_collect_start(region: str, account: str, refresh: str) -> float:
    """Log collection start; return start time for duration calculation."""
    _event("collect_start", region=region, account=account, refresh=refresh)
    return time.perf_counter()


def log_collect_end(
    region: str,
    account: str,
    duration_seconds: float,
    games: int,
    pages_fetched: int,
    source: str,
) -> None:
    """Log collection end. source is 'cache' for short-circuited runs, else 'remote'."""
    _event(
        "collect_end",
        region=region,
        account=account,
        duration_seconds=round(duration_seconds, 4),
        games=games,
        pages_fetched=pages_fetched,
        source=source,
    )


def log_bootstrap_loaded(region: str, account: str, summoner_id: str, embedded_games: int) -> None:
    _event(
        "bootstrap_loaded",
        level=logging.DEBUG,
        region=region,
        account=account,
        summoner_id=summoner_id,
        embedded_games=embedded_games,
    )


def log_refresh_decision(region: str, summoner_id: str, refresh: bool, last_known_update: Optional[str]) -> None:
    _event(
        "refresh_decision",
        level=logging.DEBUG,
        region=region,
        summoner_id=summoner_id,
        refresh=refresh,
        last_known_update=last_known_update,
    )


def log_refresh_result(region: str, summoner_id: str, state: str, request_sent: bool) -> None:
    _event("refresh_result", region=region, summoner_id=summoner_id, state=state, request_sent=request_sent)


def log_page_fetched(region: str, summoner_id: str, records: int, total: int) -> None:
    _event("page_fetched", level=logging.DEBUG, region=region, summoner_id=summoner_id, records=records, total=total)


def log_pagination_stop(region: str, summoner_id: str, reason: str, total: int) -> None:
    _event("pagination_stop", level=logging.DEBUG, region=region, summoner_id=summoner_id, reason=reason, total=total)


def log_cache_index_rebuilt(region: str, matches: int, snapshots: int, players: int) -> None:
    _event("cache_index_rebuilt", region=region, matches=matches, snapshots=snapshots, players=players)


def log_spider_progress(region: str, visited: int, met: int, games: int, next_account: str) -> None:
    _event("spider_progress", region=region, visited=visited, met=met, games=games, next_account=next_account)
