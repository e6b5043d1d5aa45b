"""Rank ordering: tier bands, divisions, apex tiers by league points."""

from __future__ import annotations

import pytest

from opgg_collector.ranks import APEX_BASE, RANK_TIERS, rank_value


def test_unranked_is_zero():
    assert rank_value(None) == 0
    assert rank_value("UNRANKED") == 0
    assert rank_value("unranked", 2, 50) == 0


def test_divisional_values():
    assert rank_value("IRON", 4) == 400
    assert rank_value("IRON", 1) == 700
    assert rank_value("BRONZE", 4) == 800
    assert rank_value("gold", 2) == 1800
    assert rank_value("DIAMOND", 1) == 3100


def test_apex_tiers_share_range_ordered_by_lp():
    assert APEX_BASE == 3200
    assert rank_value("MASTER", None, 0) == 3200
    assert rank_value("CHALLENGER", None, 1200) == 4400
    assert rank_value("GRANDMASTER", 1, 300) == rank_value("MASTER", 1, 300)


def test_strictly_increasing_across_tiers_and_divisions():
    values = []
    for t in RANK_TIERS[:7]:
        for division in (4, 3, 2, 1):
            values.append(rank_value(t, division))
    values.append(rank_value("MASTER", lp=0))
    assert values == sorted(values)
    assert len(set(values)) == len(values)
    assert all(v > 0 for v in values)


def test_unknown_tier_is_assertion_failure():
    with pytest.raises(AssertionError):
        rank_value("WOOD", 1)


def test_divisional_tier_requires_division():
    with pytest.raises(AssertionError):
        rank_value("GOLD")
    with pytest.raises(AssertionError):
        rank_value("GOLD", 5)
