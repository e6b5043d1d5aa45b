"""History collection: refresh coordination and incremental, cache-aware paging."""

from .history import CollectionOptions, HistoryCollector, collect_history
from .refresh import RefreshCoordinator, RefreshOutcome, RefreshPolicy, RefreshState

__all__ = [
    "CollectionOptions",
    "HistoryCollector",
    "RefreshCoordinator",
    "RefreshOutcome",
    "RefreshPolicy",
    "RefreshState",
    "collect_history",
]
