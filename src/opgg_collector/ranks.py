"""
Rank ordering: map tier + division (+ league points for apex tiers) to one comparable integer.

Divisional tiers occupy bands of width 400 above unranked (0); within a band
division 4 is lowest and division 1 highest. Master, grandmaster and challenger
share one range above every divisional band and are ordered by league points.
"""

from __future__ import annotations

from typing import Optional

UNRANKED = "UNRANKED"

DIVISIONAL_TIERS = ("IRON", "BRONZE", "SILVER", "GOLD", "PLATINUM", "EMERALD", "DIAMOND")
APEX_TIERS = ("MASTER", "GRANDMASTER", "CHALLENGER")
RANK_TIERS = DIVISIONAL_TIERS + APEX_TIERS

TIER_BAND_WIDTH = 400
DIVISION_STEP = 100
APEX_BASE = (len(DIVISIONAL_TIERS) + 1) * TIER_BAND_WIDTH


def is_known_tier(tier: Optional[str]) -> bool:
    return tier is None or tier.upper() in RANK_TIERS or tier.upper() == UNRANKED


def rank_value(tier: Optional[str], division: Optional[int] = None, lp: Optional[int] = None) -> int:
    """Return the ordering value of a rank; strictly increasing with skill."""
    if tier is None or tier.upper() == UNRANKED:
        return 0
    key = tier.upper()
    if key in APEX_TIERS:
        return APEX_BASE + max(0, lp or 0)
    if key not in DIVISIONAL_TIERS:
        raise AssertionError(f"Unknown rank tier: {tier!r}")
    if division not in (1, 2, 3, 4):
        raise AssertionError(f"Division must be 1-4 for tier {key}, got {division!r}")
    band = (DIVISIONAL_TIERS.index(key) + 1) * TIER_BAND_WIDTH
    return band + (4 - division) * DIVISION_STEP
