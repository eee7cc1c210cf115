"""
Counts aggregation and publication-readiness calculation.

Readiness rules:
- qualified: published >= min_required (pending never counts)
- progress: published / target_count * 100, clamped to [0, 100];
  a zero target yields 0.0
- near: not qualified but progress >= the near threshold
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Iterable

from curation.store.models import RecipeStatus

DEFAULT_NEAR_THRESHOLD = 80.0


@dataclass(frozen=True)
class Counts:
    """Recipe counts of a collection's final list, by status."""

    matched: int = 0
    published: int = 0
    pending: int = 0
    draft: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def aggregate(entries: Iterable[Any]) -> Counts:
    """Count a final recipe list in a single pass.

    Args:
        entries: ``(id, status)`` pairs, or objects with a ``status`` attribute

    Returns:
        Counts with ``matched`` equal to the number of entries
    """
    matched = published = pending = draft = 0
    for entry in entries:
        status = entry[1] if isinstance(entry, tuple) else entry.status
        if isinstance(status, RecipeStatus):
            status = status.value
        matched += 1
        if status == RecipeStatus.PUBLISHED.value:
            published += 1
        elif status == RecipeStatus.PENDING.value:
            pending += 1
        elif status == RecipeStatus.DRAFT.value:
            draft += 1
    return Counts(matched=matched, published=published, pending=pending, draft=draft)


class QualifiedStatus(str, Enum):
    QUALIFIED = "qualified"
    UNQUALIFIED = "unqualified"


@dataclass(frozen=True)
class ProgressResult:
    progress: float
    qualified_status: QualifiedStatus
    near: bool = False

    @property
    def display_status(self) -> str:
        """Three-way status used by list views: qualified, near or unqualified."""
        if self.qualified_status is QualifiedStatus.QUALIFIED:
            return QualifiedStatus.QUALIFIED.value
        return "near" if self.near else QualifiedStatus.UNQUALIFIED.value


def progress_percent(published: int, target_count: int) -> float:
    """Percentage of the target reached, clamped to [0, 100]."""
    if target_count <= 0:
        return 0.0
    percent = published / target_count * 100
    return round(min(max(percent, 0.0), 100.0), 2)


def is_qualified(published: int, min_required: int) -> bool:
    return published >= min_required


def calculate_progress(
    counts: Counts,
    min_required: int,
    target_count: int,
    near_threshold: float = DEFAULT_NEAR_THRESHOLD,
) -> ProgressResult:
    """Derive progress and qualification from counts.

    Args:
        counts: Counts of the collection's final list
        min_required: Published recipes needed to qualify
        target_count: Published recipes that make progress 100
        near_threshold: Progress at which an unqualified collection is "near"

    Returns:
        ProgressResult
    """
    progress = progress_percent(counts.published, target_count)
    qualified = is_qualified(counts.published, min_required)
    return ProgressResult(
        progress=progress,
        qualified_status=QualifiedStatus.QUALIFIED if qualified else QualifiedStatus.UNQUALIFIED,
        near=not qualified and progress >= near_threshold,
    )
