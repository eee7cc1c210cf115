"""
Manual override resolution.

The final list of a collection is ``(base ∪ pinned) \\ excluded``:
pinned ids come first in their explicit order, the remaining base matches
follow newest first, and an excluded id never appears even if pinned.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence


def _sort_key(match: Any) -> tuple:
    # created_at desc, id asc as tiebreak
    created = match.created_at
    return (-created.timestamp() if created is not None else float("inf"), match.id)


def resolve(
    base_matches: Iterable[Any],
    pinned_ids: Sequence[str],
    excluded_ids: Iterable[str],
) -> list[str]:
    """Merge base matches with pinned and excluded ids.

    Args:
        base_matches: Records with ``id`` and ``created_at`` matched by the rule
        pinned_ids: Ordered pinned ids (duplicates keep their first position)
        excluded_ids: Ids that must never appear

    Returns:
        Final ordered list of recipe ids without duplicates
    """
    excluded = set(excluded_ids)
    result: list[str] = []
    seen: set[str] = set()

    for recipe_id in pinned_ids:
        if recipe_id in excluded or recipe_id in seen:
            continue
        seen.add(recipe_id)
        result.append(recipe_id)

    for match in sorted(base_matches, key=_sort_key):
        if match.id in excluded or match.id in seen:
            continue
        seen.add(match.id)
        result.append(match.id)

    return result

