from .base import Base
from .cache import CacheIndexState, CachedMatch, CachedPlayerSnapshot, PlayerMetaRow

__all__ = [
    "Base",
    "CacheIndexState",
    "CachedMatch",
    "CachedPlayerSnapshot",
    "PlayerMetaRow",
]
