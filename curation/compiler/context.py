"""Per-run collection context passed explicitly through the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CollectionContext:
    """Everything about a collection the rule engine needs for one run.

    A pipeline run reads pinned/excluded ids from this single snapshot, so
    the Matcher and the OverrideResolver always agree.
    """

    collection_id: str | None = None

    # Linked entities (bind auto rules)
    cuisine_id: str | None = None
    location_id: str | None = None
    tag_id: str | None = None

    # Manual overrides
    pinned_ids: tuple[str, ...] = ()
    excluded_ids: frozenset[str] = field(default_factory=frozenset)

    # Readiness thresholds
    min_required: int = 0
    target_count: int = 0
