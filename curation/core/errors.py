"""Exception types shared across the curation domains."""

from __future__ import annotations

from typing import Any


class CurationError(Exception):
    """Base class for curation errors."""


class RuleConfigError(CurationError):
    """A rule configuration could not be parsed into a RuleConfig.

    Carries the structured validation errors so callers can report every
    problem at once.
    """

    def __init__(self, errors: list[Any]):
        self.errors = errors
        super().__init__(f"Invalid rule configuration ({len(errors)} error(s))")


class StoreError(CurationError):
    """The record store failed (timeout, connection loss, bad query)."""

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message)


class CollectionNotFoundError(CurationError):
    """No collection exists with the given id."""

    def __init__(self, collection_id: str):
        self.collection_id = collection_id
        super().__init__(f"Collection not found: {collection_id}")


class RecipeNotFoundError(CurationError):
    """One or more recipe ids do not exist in the store."""

    def __init__(self, recipe_ids: list[str]):
        self.recipe_ids = recipe_ids
        super().__init__(f"Recipes not found: {', '.join(recipe_ids)}")


class DuplicateSlugError(CurationError):
    """Another collection already uses the slug."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Collection slug already exists: {slug}")


class InvalidOverrideError(CurationError):
    """A pinned/excluded update is not allowed (e.g. reorder adds ids)."""
