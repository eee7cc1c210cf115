"""Predicate evaluation against the record store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from curation.compiler.ir import and_, ids_in, not_
from curation.compiler.optimizer import optimize_predicate
from curation.store.models import ACTIVE_STATUSES, RecipeStatus
from curation.store.record_store import MatchedRecord, RecordStore
from .aggregate import Counts


@dataclass
class PartitionedMatches:
    """Matched recipes split by lifecycle status."""

    published: list[MatchedRecord] = field(default_factory=list)
    pending: list[MatchedRecord] = field(default_factory=list)
    draft: list[MatchedRecord] = field(default_factory=list)

    def __iter__(self) -> Iterator[MatchedRecord]:
        yield from self.published
        yield from self.pending
        yield from self.draft

    def __len__(self) -> int:
        return len(self.published) + len(self.pending) + len(self.draft)

    def statuses(self) -> dict[str, str]:
        return {m.id: m.status for m in self}


def exclude_ids(predicate: Any, excluded_ids: Iterable[str]) -> Any:
    """AND a predicate with ``NOT id in excluded``."""
    excluded = sorted(set(excluded_ids))
    if not excluded:
        return predicate
    return optimize_predicate(and_(predicate, not_(ids_in(excluded))))


class Matcher:
    """Evaluates predicates through a RecordStore.

    Only draft, pending and published recipes are ever returned; archived
    recipes never take part in a collection.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def evaluate(self, predicate: Any, excluded_ids: Iterable[str] = ()) -> PartitionedMatches:
        """Find matching recipes, partitioned by status.

        Args:
            predicate: Compiled predicate
            excluded_ids: Ids filtered out at query level

        Returns:
            PartitionedMatches with id, status and created_at per recipe
        """
        matches = PartitionedMatches()
        records = self.store.list_matches(exclude_ids(predicate, excluded_ids), ACTIVE_STATUSES)
        for record in records:
            if record.status == RecipeStatus.PUBLISHED.value:
                matches.published.append(record)
            elif record.status == RecipeStatus.PENDING.value:
                matches.pending.append(record)
            elif record.status == RecipeStatus.DRAFT.value:
                matches.draft.append(record)
        return matches

    def count(self, predicate: Any, excluded_ids: Iterable[str] = ()) -> Counts:
        """Count matches per status without materializing records."""
        by_status = self.store.count_by_status(exclude_ids(predicate, excluded_ids))
        published = by_status.get(RecipeStatus.PUBLISHED.value, 0)
        pending = by_status.get(RecipeStatus.PENDING.value, 0)
        draft = by_status.get(RecipeStatus.DRAFT.value, 0)
        return Counts(
            matched=published + pending + draft,
            published=published,
            pending=pending,
            draft=draft,
        )
