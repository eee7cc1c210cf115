"""
Counts snapshot cache.

The snapshot lives on the collection row (``cached_*`` columns plus
``cached_at``). It is only ever written whole, in one transaction, while
holding the collection's refresh lock; readers therefore see either the
previous or the new snapshot.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from curation.core.errors import StoreError
from curation.store.models import Collection
from .aggregate import Counts

logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class CountsSnapshot:
    """Counts paired with the time they were computed."""

    counts: Counts
    at: datetime


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def read_snapshot(collection: Collection) -> CountsSnapshot | None:
    """Return the stored snapshot, or None if never computed or invalidated."""
    if collection.cached_at is None:
        return None
    return CountsSnapshot(
        counts=Counts(
            matched=collection.cached_matched_count,
            published=collection.cached_published_count,
            pending=collection.cached_pending_count,
            draft=collection.cached_draft_count,
        ),
        at=_as_utc(collection.cached_at),
    )


def snapshot_state(
    snapshot: CountsSnapshot | None,
    ttl_seconds: int,
    now: datetime | None = None,
) -> CacheState:
    """Classify a snapshot as FRESH or STALE.

    Args:
        snapshot: The stored snapshot (None when missing or invalidated)
        ttl_seconds: Maximum snapshot age; 0 or less disables expiry
        now: Current time (defaults to UTC now)
    """
    if snapshot is None:
        return CacheState.STALE
    if ttl_seconds <= 0:
        return CacheState.FRESH
    now = now or datetime.now(timezone.utc)
    if _as_utc(now) - snapshot.at > timedelta(seconds=ttl_seconds):
        return CacheState.STALE
    return CacheState.FRESH


def invalidate(collection: Collection) -> None:
    """Mark a collection's snapshot stale (FRESH -> STALE).

    The counts are kept for display; only the timestamp is cleared. The
    caller commits together with the mutation that caused it.
    """
    collection.cached_at = None


def write_snapshot(session: Session, collection: Collection, snapshot: CountsSnapshot) -> None:
    """Persist a snapshot in a single transaction.

    Raises:
        StoreError: If the commit fails; the previous snapshot is kept
    """
    collection.cached_matched_count = snapshot.counts.matched
    collection.cached_published_count = snapshot.counts.published
    collection.cached_pending_count = snapshot.counts.pending
    collection.cached_draft_count = snapshot.counts.draft
    collection.cached_at = snapshot.at
    try:
        session.add(collection)
        session.commit()
        session.refresh(collection)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Writing counts snapshot for %s failed: %s", collection.id, exc)
        raise StoreError(f"Writing counts snapshot failed: {exc}", operation="write_snapshot") from exc


# =============================================================================
# Per-collection refresh locks
# =============================================================================

class RefreshLocks:
    """Registry of one lock per collection id."""

    def __init__(self):
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, collection_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(collection_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[collection_id] = lock
            return lock

    @contextmanager
    def hold(self, collection_id: str) -> Iterator[None]:
        """Hold the refresh lock of one collection."""
        lock = self.get(collection_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Global lock registry
_refresh_locks = RefreshLocks()


def get_refresh_locks() -> RefreshLocks:
    """Get the global refresh lock registry."""
    return _refresh_locks


def reset_refresh_locks() -> None:
    """Reset the global lock registry (for testing)."""
    global _refresh_locks
    _refresh_locks = RefreshLocks()
