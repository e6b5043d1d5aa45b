"""
Cache tables: match records and player snapshots as JSON payloads, plus the
derived per-player metadata index and its validity marker.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CachedMatch(Base):
    """One match record per id (immutable once written)."""

    __tablename__ = "cached_matches"

    match_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    is_remake: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cached_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    payload_checksum: Mapped[str] = mapped_column(String(64), nullable=False)


class CachedPlayerSnapshot(Base):
    """Latest profile snapshot per display name (latest write wins)."""

    __tablename__ = "cached_player_snapshots"

    name: Mapped[str] = mapped_column(String(128), primary_key=True)
    summoner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    region: Mapped[str] = mapped_column(String(16), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cached_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    payload_checksum: Mapped[str] = mapped_column(String(64), nullable=False)


class PlayerMetaRow(Base):
    """Mirror of PlayerCacheMeta; a cache of a fold over the two tables above."""

    __tablename__ = "player_cache_meta"

    name: Mapped[str] = mapped_column(String(128), primary_key=True)
    last_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_game_created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rank_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank_observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    game_ids_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")


class CacheIndexState(Base):
    """Key/value markers; a missing player_meta row means the index must be rebuilt."""

    __tablename__ = "cache_index_state"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String(64), nullable=False)
