"""
Command line: collect one account's history, or crawl accounts with the spider.

    opgg-collector history euw "Some Name" -u 10 -n 50
    opgg-collector spider euw "Some Name" --order close --max-accounts 100
    opgg-collector spider continue
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from opgg_collector import __version__
from opgg_collector.cache.store import CacheStore
from opgg_collector.collect.history import DEFAULT_GAME_TYPE, CollectionOptions, HistoryCollector
from opgg_collector.collect.refresh import RefreshPolicy
from opgg_collector.common import KNOWN_REGIONS, parse_region, parse_timestamp
from opgg_collector.core.config import get_settings
from opgg_collector.core.logging import setup_logging
from opgg_collector.crawl.spider import (
    DEFAULT_STATE_PATH,
    ORDER_CHOICES,
    Spider,
    SpiderState,
    load_spider_state,
)
from opgg_collector.errors import OpggCollectorError
from opgg_collector.remote.client import OpggClient

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_MINUTES = 10


def _region(value: str) -> str:
    region = parse_region(value)
    if region is None:
        raise argparse.ArgumentTypeError(
            f"Unknown region. Supported regions: {', '.join(r.upper() for r in KNOWN_REGIONS)}."
        )
    return region


def _timestamp(value: str) -> datetime:
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def refresh_policy_from_minutes(minutes: Optional[int], now: Optional[datetime] = None) -> RefreshPolicy:
    """None means never; otherwise refresh data older than the given number of minutes."""
    if minutes is None:
        return RefreshPolicy.never()
    now = now or datetime.now(timezone.utc)
    return RefreshPolicy.older_than(now - timedelta(minutes=minutes))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opgg-collector",
        description="Collect ranked match history from op.gg into a local per-region cache.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-d", "--debug", action="store_true", help="output extra debugging")
    sub = parser.add_subparsers(dest="command", required=True)

    history = sub.add_parser("history", help="collect match history for one account")
    history.add_argument("region", type=_region, help="region on which the account is registered")
    history.add_argument("account", help="account display name")
    history.add_argument(
        "-u",
        "--update",
        nargs="?",
        type=int,
        const=DEFAULT_UPDATE_MINUTES,
        metavar="MINUTES",
        help="request update before collecting, only if data is older than MINUTES (default %(const)s)",
    )
    history.add_argument(
        "--no-update",
        dest="update",
        action="store_const",
        const=None,
        help="never request an update, use the data the service already has",
    )
    history.set_defaults(update=DEFAULT_UPDATE_MINUTES)
    history.add_argument("-a", "--after", type=_timestamp, help="collect only matches created at or after timestamp")
    history.add_argument("-n", "--max-count", type=int, help="limit number of matches collected")
    history.add_argument("-q", "--queue", default=DEFAULT_GAME_TYPE, help="game type filter (default %(default)s)")
    history.add_argument("-o", "--output", default="games.json", help="output JSON file (default %(default)s)")

    spider = sub.add_parser("spider", help="crawl accounts starting from one, collecting each")
    spider.add_argument("region", help="region to crawl, or 'continue' to resume from saved state")
    spider.add_argument("account", nargs="?", help="account to start the crawl with")
    spider.add_argument("--order", choices=ORDER_CHOICES, default="random", help="order of choosing next accounts")
    spider.add_argument("--max-accounts", type=int, help="stop after visiting this many accounts")
    spider.add_argument("--state", default=DEFAULT_STATE_PATH, help="spider state file (default %(default)s)")
    return parser


async def run_history(args: argparse.Namespace) -> int:
    settings = get_settings()
    cache = await CacheStore.open(args.region, settings=settings)
    try:
        async with OpggClient(settings) as client:
            games = await HistoryCollector(client).collect(
                args.region,
                args.account,
                CollectionOptions(
                    refresh=refresh_policy_from_minutes(args.update),
                    game_type=args.queue,
                    since=args.after,
                    max_count=args.max_count,
                    cache=cache,
                ),
            )
    finally:
        await cache.close()
    Path(args.output).write_text(json.dumps([g.to_payload() for g in games]), encoding="utf-8")
    print(f"Done. {len(games)} games written to {args.output}")
    return 0


async def run_spider(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.region == "continue":
        state = load_spider_state(args.state)
        if state is None:
            print("Cannot continue as spider state is not found or corrupted.", file=sys.stderr)
            return 1
        print(f"Continuing spider action, region: {state.region.upper()}")
    else:
        region = parse_region(args.region)
        if region is None:
            print(f"Unknown region. Supported regions: {', '.join(r.upper() for r in KNOWN_REGIONS)}.", file=sys.stderr)
            return 2
        if not args.account:
            print("No starting account given, please specify an account.", file=sys.stderr)
            return 2
        state = SpiderState(
            region=region,
            start_account=args.account,
            start_timestamp=datetime.now(timezone.utc) - timedelta(minutes=DEFAULT_UPDATE_MINUTES),
            order=args.order,
        )

    cache = await CacheStore.open(state.region, settings=settings)
    try:
        async with OpggClient(settings) as client:
            spider = Spider(
                HistoryCollector(client),
                cache,
                state,
                state_path=args.state,
                delay_seconds=settings.request_delay_seconds,
            )
            state = await spider.run(max_accounts=args.max_accounts)
    finally:
        await cache.close()
    print(f"Accounts visited: {len(state.accounts_visited)} | Total games: {state.games_count}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(get_settings(), debug=args.debug)
    runner = run_history if args.command == "history" else run_spider
    try:
        return asyncio.run(runner(args))
    except OpggCollectorError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
