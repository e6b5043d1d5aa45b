"""
Schemas for op.gg payloads, decoded at the client boundary.

Only the fields the collector relies on are modelled; every other remote field
is kept as an extra so a decode -> persist -> load cycle preserves the record.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from opgg_collector.common import ensure_utc
from opgg_collector.ranks import DIVISIONAL_TIERS, is_known_tier, rank_value

# Static reference catalogs embedded in the profile page; not part of a player snapshot.
STATIC_DATA_KEYS = (
    "championsById",
    "itemsById",
    "runesById",
    "runePagesById",
    "spellsById",
    "seasons",
    "seasonsById",
)


def _coerce_str(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class TierInfo(BaseModel):
    """Rank at one point in time. tier is None for unranked players.

    An unknown tier fails validation, which surfaces as a ParseError for the
    whole response carrying it.
    """

    model_config = ConfigDict(extra="allow")

    tier: Optional[str] = None
    division: Optional[int] = None
    lp: Optional[int] = None

    @field_validator("tier")
    @classmethod
    def _known_tier(cls, v: Optional[str]) -> Optional[str]:
        if not is_known_tier(v):
            raise ValueError(f"unknown rank tier: {v!r}")
        return v

    @model_validator(mode="after")
    def _division_for_divisional_tier(self) -> "TierInfo":
        if self.tier and self.tier.upper() in DIVISIONAL_TIERS and self.division not in (1, 2, 3, 4):
            raise ValueError(f"tier {self.tier} requires division 1-4, got {self.division!r}")
        return self

    @property
    def rank_value(self) -> int:
        return rank_value(self.tier, self.division, self.lp)


class Summoner(BaseModel):
    """Participant or account identity."""

    model_config = ConfigDict(extra="allow")

    summoner_id: str
    name: str

    @field_validator("summoner_id", mode="before")
    @classmethod
    def _coerce_summoner_id(cls, v: Any) -> Any:
        return _coerce_str(v)


class Participant(BaseModel):
    model_config = ConfigDict(extra="allow")

    summoner: Summoner
    tier_info: Optional[TierInfo] = None


class MatchRecord(BaseModel):
    """One completed game; opaque apart from id, creation time, remake flag and participants."""

    model_config = ConfigDict(extra="allow")

    id: str
    created_at: datetime
    is_remake: bool = False
    participants: List[Participant] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return _coerce_str(v)

    @field_validator("created_at")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def participant_names(self) -> List[str]:
        return [p.summoner.name for p in self.participants]

    def to_payload(self) -> Dict[str, Any]:
        """JSON-compatible dict including every preserved remote field."""
        return self.model_dump(mode="json")


class LpHistoryEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    created_at: datetime
    tier_info: Optional[TierInfo] = None
    elo_point: Optional[int] = None

    @field_validator("created_at")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class PlayerSnapshot(BaseModel):
    """Full profile pull for one account (static catalogs stripped)."""

    model_config = ConfigDict(extra="allow")

    summoner_id: str
    name: str
    region: Optional[str] = None
    updated_at: Optional[datetime] = None
    renewable_at: Optional[datetime] = None
    lp_histories: List[LpHistoryEntry] = Field(default_factory=list)

    @field_validator("summoner_id", mode="before")
    @classmethod
    def _coerce_summoner_id(cls, v: Any) -> Any:
        return _coerce_str(v)

    @field_validator("updated_at", "renewable_at")
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @field_validator("lp_histories", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def latest_rank(self) -> Optional[LpHistoryEntry]:
        """Most recent rank history entry, or None if the account has none."""
        if not self.lp_histories:
            return None
        return max(self.lp_histories, key=lambda e: e.created_at)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class MatchPage(BaseModel):
    """One page of the cursor-based match list, newest first."""

    records: List[MatchRecord] = Field(default_factory=list)
    next_cursor: Optional[str] = None

    @property
    def oldest_created_at(self) -> Optional[datetime]:
        if not self.records:
            return None
        return min(r.created_at for r in self.records)


class RefreshStatus(BaseModel):
    """Normalized refresh job state (request or status poll)."""

    done: bool
    delay_ms: int = 0
    renewable_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None

    @property
    def terminal(self) -> bool:
        # renewable_at means the service will not refresh again before then
        return self.done or self.renewable_at is not None


class BootstrapPayload(BaseModel):
    """Everything extracted from the profile page in one request."""

    summoner_id: str
    snapshot: PlayerSnapshot
    first_page: MatchPage
    static_data: Dict[str, Any] = Field(default_factory=dict)


# --- wire envelopes ---


class GamesMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    first_game_created_at: Optional[str] = None
    last_game_created_at: Optional[str] = None


class GamesEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: List[MatchRecord] = Field(default_factory=list)
    meta: GamesMeta = Field(default_factory=GamesMeta)

    @field_validator("data", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_page(self) -> MatchPage:
        return MatchPage(records=self.data, next_cursor=self.meta.last_game_created_at)


class RenewalData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    finish: bool = False
    delay: int = 0
    renewable_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None


class RenewalEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: RenewalData

    def to_status(self) -> RefreshStatus:
        return RefreshStatus(
            done=self.data.finish,
            delay_ms=max(0, self.data.delay),
            renewable_at=ensure_utc(self.data.renewable_at) if self.data.renewable_at else None,
            last_updated_at=ensure_utc(self.data.last_updated_at) if self.data.last_updated_at else None,
        )


class PageProps(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: Dict[str, Any]
    games: GamesEnvelope


class NextProps(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    page_props: PageProps = Field(alias="pageProps")


class NextData(BaseModel):
    """Embedded `__NEXT_DATA__` document of the profile page."""

    model_config = ConfigDict(extra="ignore")

    props: NextProps

    def to_bootstrap(self) -> BootstrapPayload:
        raw = dict(self.props.page_props.data)
        static_data = {k: raw.pop(k) for k in STATIC_DATA_KEYS if k in raw}
        snapshot = PlayerSnapshot.model_validate(raw)
        return BootstrapPayload(
            summoner_id=snapshot.summoner_id,
            snapshot=snapshot,
            first_page=self.props.page_props.games.to_page(),
            static_data=static_data,
        )
