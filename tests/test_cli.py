"""CLI argument handling, refresh policy mapping and error exit codes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from opgg_collector import cli
from opgg_collector.collect.refresh import RefreshMode
from opgg_collector.errors import TransportError


def test_history_arguments():
    args = cli.build_parser().parse_args(["history", "EUW", "Some Name", "-n", "50", "-a", "2024-03-01T00:00:00Z"])
    assert args.region == "euw"
    assert args.account == "Some Name"
    assert args.update == 10
    assert args.max_count == 50
    assert args.after == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert args.queue == "soloranked"
    assert args.output == "games.json"


def test_update_flag_without_value_defaults_to_ten_minutes():
    parser = cli.build_parser()
    assert parser.parse_args(["history", "kr", "x", "-u"]).update == 10
    assert parser.parse_args(["history", "kr", "x", "-u", "45"]).update == 45


def test_no_update_disables_refresh():
    args = cli.build_parser().parse_args(["history", "kr", "x", "--no-update"])
    assert args.update is None
    assert cli.refresh_policy_from_minutes(args.update).mode is RefreshMode.NEVER


def test_unknown_region_is_usage_error():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["history", "mars", "x"])


def test_spider_arguments():
    args = cli.build_parser().parse_args(["spider", "continue"])
    assert args.region == "continue"
    assert args.account is None
    assert args.order == "random"
    args = cli.build_parser().parse_args(["spider", "euw", "x", "--order", "close", "--max-accounts", "3"])
    assert args.order == "close" and args.max_accounts == 3


def test_refresh_policy_from_minutes():
    now = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
    assert cli.refresh_policy_from_minutes(None).mode is RefreshMode.NEVER
    policy = cli.refresh_policy_from_minutes(10, now)
    assert policy.mode is RefreshMode.OLDER_THAN
    assert policy.threshold == now - timedelta(minutes=10)


def test_collector_error_exits_with_one(monkeypatch, capsys):
    async def failing(args):
        raise TransportError("HTTP 503: busy", region="euw", account="x", operation="bootstrap")

    monkeypatch.setattr(cli, "run_history", failing)
    assert cli.main(["history", "euw", "x"]) == 1
    err = capsys.readouterr().err
    assert "HTTP 503" in err and "operation=bootstrap" in err


def test_spider_continue_without_state(tmp_path, capsys):
    assert cli.main(["spider", "continue", "--state", str(tmp_path / "missing.json")]) == 1
    assert "not found or corrupted" in capsys.readouterr().err
