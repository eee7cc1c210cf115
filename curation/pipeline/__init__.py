"""Pipeline package - matching, overrides, aggregation and the counts cache."""

from .aggregate import (
    Counts,
    aggregate,
    QualifiedStatus,
    ProgressResult,
    progress_percent,
    is_qualified,
    calculate_progress,
)
from .overrides import resolve
from .matcher import Matcher, PartitionedMatches, exclude_ids
from .cache import (
    CacheState,
    CountsSnapshot,
    RefreshLocks,
    read_snapshot,
    snapshot_state,
    invalidate,
    write_snapshot,
    get_refresh_locks,
    reset_refresh_locks,
)
from .runner import (
    PipelineResult,
    FreshRead,
    CachedRead,
    context_for,
    check_references,
    run_pipeline,
    fresh_read,
    cached_read,
    refresh,
)

__all__ = [
    # Aggregation
    "Counts",
    "aggregate",
    "QualifiedStatus",
    "ProgressResult",
    "progress_percent",
    "is_qualified",
    "calculate_progress",
    # Overrides
    "resolve",
    # Matching
    "Matcher",
    "PartitionedMatches",
    "exclude_ids",
    # Cache
    "CacheState",
    "CountsSnapshot",
    "RefreshLocks",
    "read_snapshot",
    "snapshot_state",
    "invalidate",
    "write_snapshot",
    "get_refresh_locks",
    "reset_refresh_locks",
    # Pipeline
    "PipelineResult",
    "FreshRead",
    "CachedRead",
    "context_for",
    "check_references",
    "run_pipeline",
    "fresh_read",
    "cached_read",
    "refresh",
]
