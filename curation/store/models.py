"""SQLModel table definitions for recipes, their taxonomy and collections."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecipeStatus(str, Enum):
    """Lifecycle status of a recipe."""
    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# Statuses that count toward a collection's matched total
ACTIVE_STATUSES = (RecipeStatus.PUBLISHED, RecipeStatus.PENDING, RecipeStatus.DRAFT)


class CollectionStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class CollectionType(str, Enum):
    """What a collection groups recipes by."""
    CUISINE = "cuisine"
    REGION = "region"
    SCENE = "scene"
    METHOD = "method"
    TASTE = "taste"
    CROWD = "crowd"
    OCCASION = "occasion"
    INGREDIENT = "ingredient"
    THEME = "theme"  # custom rules


COLLECTION_PATHS: dict[str, str] = {
    CollectionType.CUISINE.value: "/recipe/cuisine",
    CollectionType.REGION.value: "/recipe/region",
    CollectionType.SCENE.value: "/recipe/scene",
    CollectionType.METHOD.value: "/recipe/method",
    CollectionType.TASTE.value: "/recipe/taste",
    CollectionType.CROWD.value: "/recipe/dietary",
    CollectionType.OCCASION.value: "/recipe/occasion",
    CollectionType.INGREDIENT.value: "/recipe/ingredient",
    CollectionType.THEME.value: "/recipe/theme",
}


# =============================================================================
# Reference tables
# =============================================================================

class Cuisine(SQLModel, table=True):
    __tablename__ = "cuisines"

    id: str = Field(primary_key=True)
    name: str
    slug: str = Field(index=True)


class Location(SQLModel, table=True):
    __tablename__ = "locations"

    id: str = Field(primary_key=True)
    name: str
    slug: str = Field(index=True)


class RecipeTag(SQLModel, table=True):
    """Link table between recipes and tags."""

    __tablename__ = "recipe_tags"

    recipe_id: str = Field(foreign_key="recipes.id", primary_key=True, ondelete="CASCADE")
    tag_id: str = Field(foreign_key="tags.id", primary_key=True, ondelete="CASCADE")


class Tag(SQLModel, table=True):
    """Typed tag (scene, taste, method, crowd, occasion, ingredient)."""

    __tablename__ = "tags"

    id: str = Field(primary_key=True)
    name: str
    slug: str = Field(index=True)
    type: str = Field(index=True, description="Tag type")

    recipes: list["Recipe"] = Relationship(back_populates="tags", link_model=RecipeTag)


# =============================================================================
# Recipes
# =============================================================================

class Recipe(SQLModel, table=True):
    """A recipe record. Read-only to the rule engine."""

    __tablename__ = "recipes"

    id: str = Field(primary_key=True)
    title: str
    status: str = Field(default=RecipeStatus.DRAFT.value, index=True)

    cuisine_id: Optional[str] = Field(default=None, foreign_key="cuisines.id", index=True)
    location_id: Optional[str] = Field(default=None, foreign_key="locations.id", index=True)

    cook_time: Optional[int] = Field(default=None, description="Minutes")
    prep_time: Optional[int] = Field(default=None, description="Minutes")
    difficulty: Optional[int] = Field(default=None, description="1 (easy) to 5 (hard)")
    servings: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=_utcnow, index=True)
    updated_at: datetime = Field(default_factory=_utcnow)

    cuisine: Optional["Cuisine"] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    location: Optional["Location"] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    tags: list["Tag"] = Relationship(
        back_populates="recipes",
        link_model=RecipeTag,
        sa_relationship_kwargs={"lazy": "selectin"},
    )


# =============================================================================
# Collections
# =============================================================================

class Collection(SQLModel, table=True):
    """A named, rule-defined set of recipes with a cached counts snapshot."""

    __tablename__ = "collections"

    id: str = Field(primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    path: Optional[str] = Field(default=None, description="Public aggregate page path")
    description: Optional[str] = Field(default=None)
    type: str = Field(default=CollectionType.THEME.value, index=True)
    status: str = Field(default=CollectionStatus.DRAFT.value, index=True)
    published_at: Optional[datetime] = Field(default=None, description="Time of first publication")

    rules: dict[str, Any] = Field(
        default_factory=lambda: {"mode": "custom", "groups": [], "exclude": []},
        sa_column=Column(JSON, nullable=False),
    )

    cuisine_id: Optional[str] = Field(default=None, foreign_key="cuisines.id")
    location_id: Optional[str] = Field(default=None, foreign_key="locations.id")
    tag_id: Optional[str] = Field(default=None, foreign_key="tags.id")

    # Manual overrides; pinned order is significant
    pinned_recipe_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    excluded_recipe_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    min_required: int = Field(default=10, ge=0)
    target_count: int = Field(default=20, ge=0)
    sort_order: int = Field(default=0)

    # Counts snapshot, valid only together with cached_at
    cached_matched_count: int = Field(default=0)
    cached_published_count: int = Field(default=0)
    cached_pending_count: int = Field(default=0)
    cached_draft_count: int = Field(default=0)
    cached_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


Tag.model_rebuild()
Recipe.model_rebuild()
