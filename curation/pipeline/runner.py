"""
The collection pipeline and its two read paths.

``run_pipeline`` is the only place counts are computed:

    RuleConfig -> RuleCompiler -> Matcher -> resolve -> aggregate

The real-time read (``fresh_read``) and the snapshot refresh
(``refresh``) both call it, so a refreshed snapshot always equals what
the detail view shows for the same inputs. ``cached_read`` never touches
the record store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from curation.compiler.compiler import compile_rule
from curation.compiler.context import CollectionContext
from curation.compiler.ir import CompiledRule, CompileWarning, WarningCode, referenced_ids
from curation.core.config import get_settings
from curation.core.errors import StoreError
from curation.rules.schema import AutoRuleConfig, CustomRuleConfig
from curation.store.models import ACTIVE_STATUSES, Collection
from curation.store.record_store import RecordStore, SQLRecordStore
from .aggregate import Counts, ProgressResult, aggregate, calculate_progress
from .cache import (
    CacheState,
    CountsSnapshot,
    RefreshLocks,
    get_refresh_locks,
    read_snapshot,
    snapshot_state,
    write_snapshot,
)
from .matcher import Matcher
from .overrides import resolve

logger = logging.getLogger(__name__)

_ACTIVE = {s.value for s in ACTIVE_STATUSES}


@dataclass
class PipelineResult:
    """Output of one pipeline run."""

    entries: list[tuple[str, str]]
    """Final ordered (recipe id, status) pairs."""

    counts: Counts
    warnings: list[CompileWarning] = field(default_factory=list)
    compiled: CompiledRule | None = None

    @property
    def recipe_ids(self) -> list[str]:
        return [recipe_id for recipe_id, _ in self.entries]


@dataclass
class FreshRead:
    result: PipelineResult
    progress: ProgressResult


@dataclass
class CachedRead:
    snapshot: CountsSnapshot | None
    counts: Counts
    """Snapshot counts; the last known counts when the snapshot was invalidated."""

    state: CacheState
    progress: ProgressResult


def context_for(collection: Collection) -> CollectionContext:
    """Take one consistent snapshot of a collection's inputs."""
    return CollectionContext(
        collection_id=collection.id,
        cuisine_id=collection.cuisine_id,
        location_id=collection.location_id,
        tag_id=collection.tag_id,
        pinned_ids=tuple(collection.pinned_recipe_ids or ()),
        excluded_ids=frozenset(collection.excluded_recipe_ids or ()),
        min_required=collection.min_required,
        target_count=collection.target_count,
    )


def check_references(predicate: Any, store: RecordStore) -> list[CompileWarning]:
    """Warn about cuisine, location or tag ids that do not exist in the store."""
    warnings = []
    for kind, ids in referenced_ids(predicate).items():
        if not ids:
            continue
        missing = sorted(ids - store.existing_ids(kind, ids))
        for missing_id in missing:
            warnings.append(
                CompileWarning(
                    code=WarningCode.UNRESOLVED_REFERENCE,
                    message=f"{kind} '{missing_id}' does not exist",
                )
            )
    return warnings


def run_pipeline(
    config: AutoRuleConfig | CustomRuleConfig | dict,
    context: CollectionContext,
    store: RecordStore,
) -> PipelineResult:
    """Compute a collection's final list and counts.

    Args:
        config: The collection's rule configuration
        context: Linked ids and override sets, read once for this run
        store: Record store to evaluate against

    Returns:
        PipelineResult with ordered entries, counts and warnings

    Raises:
        StoreError: If the record store fails
    """
    compiled = compile_rule(config, context)
    warnings = list(compiled.warnings)

    unresolved = check_references(compiled.predicate, store)
    for warning in unresolved:
        logger.warning("Collection %s: %s", context.collection_id, warning.message)
    warnings.extend(unresolved)

    matches = Matcher(store).evaluate(compiled.predicate, context.excluded_ids)
    statuses = matches.statuses()

    # Pinned ids outside the base match still need a status; unknown and
    # archived ones are dropped
    extra = [i for i in context.pinned_ids if i not in statuses and i not in context.excluded_ids]
    if extra:
        statuses.update(
            {rid: s for rid, s in store.status_of(extra).items() if s in _ACTIVE}
        )
    pinned = [i for i in context.pinned_ids if i in statuses]

    ordered = resolve(matches, pinned, context.excluded_ids)
    entries = [(recipe_id, statuses[recipe_id]) for recipe_id in ordered]

    return PipelineResult(
        entries=entries,
        counts=aggregate(entries),
        warnings=warnings,
        compiled=compiled,
    )


def _progress(counts: Counts, context: CollectionContext) -> ProgressResult:
    return calculate_progress(
        counts,
        context.min_required,
        context.target_count,
        near_threshold=get_settings().near_threshold,
    )


def fresh_read(collection: Collection, store: RecordStore) -> FreshRead:
    """Real-time read used by the detail view. Always runs the pipeline."""
    context = context_for(collection)
    result = run_pipeline(collection.rules, context, store)
    return FreshRead(result=result, progress=_progress(result.counts, context))


def cached_read(
    collection: Collection,
    ttl_seconds: int | None = None,
    now: datetime | None = None,
) -> CachedRead:
    """Snapshot read used by list views. Never queries recipes."""
    if ttl_seconds is None:
        ttl_seconds = get_settings().cache_ttl_seconds
    snapshot = read_snapshot(collection)
    context = context_for(collection)
    counts = snapshot.counts if snapshot else Counts(
        matched=collection.cached_matched_count,
        published=collection.cached_published_count,
        pending=collection.cached_pending_count,
        draft=collection.cached_draft_count,
    )
    return CachedRead(
        snapshot=snapshot,
        counts=counts,
        state=snapshot_state(snapshot, ttl_seconds, now),
        progress=_progress(counts, context),
    )


def refresh(
    session: Session,
    collection: Collection,
    locks: RefreshLocks | None = None,
) -> CountsSnapshot:
    """Recompute and persist a collection's counts snapshot.

    The new snapshot is computed completely before anything is written.
    Concurrent refreshes of the same collection are serialized.

    Raises:
        StoreError: If evaluation or the write fails; the old snapshot stays
    """
    if locks is None:
        locks = get_refresh_locks()
    with locks.hold(collection.id):
        # Re-read inside the lock so the run sees the latest overrides
        try:
            session.refresh(collection)
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Reloading collection failed: {exc}", operation="refresh") from exc
        try:
            result = run_pipeline(collection.rules, context_for(collection), SQLRecordStore(session))
        except Exception:
            logger.error("Refreshing counts for collection %s failed", collection.id)
            raise
        snapshot = CountsSnapshot(counts=result.counts, at=datetime.now(timezone.utc))
        write_snapshot(session, collection, snapshot)

    logger.info(
        "Refreshed counts for collection %s: matched=%d published=%d",
        collection.id,
        snapshot.counts.matched,
        snapshot.counts.published,
    )
    return snapshot
