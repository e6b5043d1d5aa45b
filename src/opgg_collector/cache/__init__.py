"""Local per-region cache: match records, player snapshots and derived player metadata."""

from .meta import PlayerCacheMeta
from .store import CacheStore

__all__ = ["CacheStore", "PlayerCacheMeta"]
