"""Pydantic schemas for the collections admin API."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# =============================================================================
# Shared pieces
# =============================================================================

class CountsRead(CamelModel):
    matched: int = 0
    published: int = 0
    pending: int = 0
    draft: int = 0


class WarningRead(CamelModel):
    """A compile or reference warning."""
    code: str
    message: str
    location: Optional[dict[str, Optional[int]]] = None


class ValidationErrorRead(CamelModel):
    location: dict[str, Optional[int]]
    field: str
    message: str


class ValidationRead(CamelModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    details: list[ValidationErrorRead] = Field(default_factory=list)


# =============================================================================
# CRUD
# =============================================================================

class CollectionCreate(CamelModel):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    type: str = "theme"
    status: Literal["draft", "published", "archived"] = "draft"
    path: Optional[str] = None
    description: Optional[str] = None
    rules: dict[str, Any] = Field(
        default_factory=lambda: {"mode": "custom", "groups": [], "exclude": []},
        description="RuleConfig JSON",
    )
    cuisine_id: Optional[str] = None
    location_id: Optional[str] = None
    tag_id: Optional[str] = None
    pinned_recipe_ids: list[str] = Field(default_factory=list)
    excluded_recipe_ids: list[str] = Field(default_factory=list)
    min_required: int = Field(default=10, ge=0)
    target_count: int = Field(default=20, ge=0)
    sort_order: int = 0


class CollectionUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    slug: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = None
    status: Optional[Literal["draft", "published", "archived"]] = None
    path: Optional[str] = None
    description: Optional[str] = None
    rules: Optional[dict[str, Any]] = None
    cuisine_id: Optional[str] = None
    location_id: Optional[str] = None
    tag_id: Optional[str] = None
    pinned_recipe_ids: Optional[list[str]] = None
    excluded_recipe_ids: Optional[list[str]] = None
    min_required: Optional[int] = Field(default=None, ge=0)
    target_count: Optional[int] = Field(default=None, ge=0)
    sort_order: Optional[int] = None


class CollectionRead(CamelModel):
    id: str
    name: str
    slug: str
    path: Optional[str] = None
    description: Optional[str] = None
    type: str
    status: str
    rules: dict[str, Any]
    cuisine_id: Optional[str] = None
    location_id: Optional[str] = None
    tag_id: Optional[str] = None
    pinned_recipe_ids: list[str] = Field(default_factory=list)
    excluded_recipe_ids: list[str] = Field(default_factory=list)
    min_required: int
    target_count: int
    sort_order: int
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Read paths
# =============================================================================

class CollectionRecipe(CamelModel):
    id: str
    title: str
    status: str
    add_method: Literal["rule", "manual"]


class CollectionDetail(CollectionRead):
    """Real-time view of one collection."""
    matched_count: int
    published_count: int
    pending_count: int
    draft_count: int
    progress: float
    qualified_status: str
    near: bool
    rule_description: str
    warnings: list[WarningRead] = Field(default_factory=list)
    recipes: list[CollectionRecipe] = Field(default_factory=list)


class CollectionListItem(CamelModel):
    """Snapshot view of one collection (never recomputed on read)."""
    id: str
    type: str
    name: str
    slug: str
    path: Optional[str] = None
    status: str
    sort_order: int
    min_required: int
    target_count: int
    matched_count: int
    published_count: int
    pending_count: int
    draft_count: int
    cached_at: Optional[datetime] = None
    is_stale: bool
    progress: float
    qualified_status: str
    near: bool
    created_at: datetime
    updated_at: datetime


class CollectionListResponse(CamelModel):
    items: list[CollectionListItem]
    page: int
    page_size: int
    total: int
    total_pages: int


class QualifiedCollectionCard(CamelModel):
    id: str
    name: str
    slug: str
    path: Optional[str] = None
    type: str
    published_count: int
    target_count: int
    progress: float
    sort_order: int


# =============================================================================
# Rule tooling
# =============================================================================

class RuleTestRequest(CamelModel):
    rules: dict[str, Any]
    excluded_recipe_ids: list[str] = Field(default_factory=list)
    limit: int = Field(default=10, ge=0)


class RecipeSample(CamelModel):
    id: str
    title: str
    status: str
    cuisine_name: Optional[str] = None
    location_name: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class RuleTestResponse(CamelModel):
    counts: CountsRead
    samples: list[RecipeSample] = Field(default_factory=list)
    validation: ValidationRead
    description: str
    warnings: list[WarningRead] = Field(default_factory=list)


class PreviewRequest(CamelModel):
    rules: dict[str, Any]
    cuisine_id: Optional[str] = None
    location_id: Optional[str] = None
    tag_id: Optional[str] = None


class PreviewResponse(CamelModel):
    count: int
    has_rules: bool


# =============================================================================
# Overrides and maintenance
# =============================================================================

class RecipeIdsRequest(CamelModel):
    recipe_ids: list[str] = Field(min_length=1)


class PinRequest(RecipeIdsRequest):
    position: Literal["start", "end"] = "end"


class PinResponse(CamelModel):
    pinned_recipe_ids: list[str]
    message: str


class ExcludeResponse(CamelModel):
    excluded_recipe_ids: list[str]
    pinned_recipe_ids: list[str]
    message: str


class RefreshCountsRequest(CamelModel):
    collection_ids: Optional[list[str]] = None


class RefreshDetail(CamelModel):
    id: str
    name: str
    success: bool
    counts: Optional[CountsRead] = None
    error: Optional[str] = None


class RefreshCountsResponse(CamelModel):
    refreshed: int
    failed: int
    details: list[RefreshDetail] = Field(default_factory=list)


class SyncResponse(CamelModel):
    created: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)


# =============================================================================
# Publishing
# =============================================================================

class PublishRequest(CamelModel):
    force: bool = False


class PublishResponse(CamelModel):
    """Outcome of publishing a collection, with the live qualification check."""
    published: bool
    status: str
    qualified_status: str
    published_count: int
    min_required: int
    message: str
    warning: Optional[str] = None
