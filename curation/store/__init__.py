"""Store package - recipe/collection tables and the record store."""

from .models import (
    RecipeStatus,
    ACTIVE_STATUSES,
    CollectionStatus,
    CollectionType,
    COLLECTION_PATHS,
    Cuisine,
    Location,
    Tag,
    RecipeTag,
    Recipe,
    Collection,
)
from .query import to_sql_clause
from .record_store import MatchedRecord, RecordStore, SQLRecordStore

__all__ = [
    # Enums
    "RecipeStatus",
    "ACTIVE_STATUSES",
    "CollectionStatus",
    "CollectionType",
    "COLLECTION_PATHS",
    # Tables
    "Cuisine",
    "Location",
    "Tag",
    "RecipeTag",
    "Recipe",
    "Collection",
    # Query
    "to_sql_clause",
    # Record store
    "MatchedRecord",
    "RecordStore",
    "SQLRecordStore",
]
