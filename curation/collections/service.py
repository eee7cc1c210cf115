"""Business logic for rule-defined collections."""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import or_
from sqlmodel import Session, select

from curation.compiler.compiler import compile_rule
from curation.compiler.context import CollectionContext
from curation.compiler.ir import CompileWarning, MatchAll
from curation.core.config import get_settings
from curation.core.errors import (
    CollectionNotFoundError,
    CurationError,
    DuplicateSlugError,
    InvalidOverrideError,
    RecipeNotFoundError,
    RuleConfigError,
)
from curation.pipeline.aggregate import QualifiedStatus, progress_percent
from curation.pipeline.cache import (
    CacheState,
    CountsSnapshot,
    get_refresh_locks,
    invalidate,
    write_snapshot,
)
from curation.pipeline.matcher import Matcher, exclude_ids
from curation.pipeline.runner import cached_read, check_references, fresh_read, refresh
from curation.rules.describe import describe_rule
from curation.rules.schema import parse_rule_config, rule_config_to_dict
from curation.rules.validator import ValidationResult, validate_rule_config
from curation.store.models import (
    ACTIVE_STATUSES,
    COLLECTION_PATHS,
    Collection,
    CollectionStatus,
    CollectionType,
    Cuisine,
    Location,
    RecipeStatus,
    Tag,
)
from curation.store.record_store import SQLRecordStore
from .schemas import (
    CollectionCreate,
    CollectionDetail,
    CollectionListItem,
    CollectionListResponse,
    CollectionRead,
    CollectionRecipe,
    CollectionUpdate,
    CountsRead,
    ExcludeResponse,
    PinResponse,
    PreviewRequest,
    PreviewResponse,
    PublishResponse,
    QualifiedCollectionCard,
    RecipeSample,
    RefreshCountsResponse,
    RefreshDetail,
    RuleTestRequest,
    RuleTestResponse,
    ValidationErrorRead,
    ValidationRead,
    WarningRead,
)

logger = logging.getLogger(__name__)

# Fields whose change makes the counts snapshot stale
SNAPSHOT_INPUTS = frozenset(
    {"rules", "cuisine_id", "location_id", "tag_id", "pinned_recipe_ids", "excluded_recipe_ids"}
)

# Fields that may not be cleared through an update
REQUIRED_FIELDS = frozenset(
    {"name", "slug", "type", "status", "rules", "min_required", "target_count", "sort_order"}
)

# Defaults for collections created from cuisines, locations and tags
LINKED_TARGET_COUNT = 20
LINKED_MIN_REQUIRED = 10

# Tag types that get their own collection type
TAG_COLLECTION_TYPES = frozenset(
    {
        CollectionType.SCENE.value,
        CollectionType.METHOD.value,
        CollectionType.TASTE.value,
        CollectionType.CROWD.value,
        CollectionType.OCCASION.value,
        CollectionType.INGREDIENT.value,
    }
)


def _dedupe(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_path(collection_type: str, slug: str) -> str:
    return f"{COLLECTION_PATHS.get(collection_type, '/recipe')}/{slug}"


def to_warning_read(warning: CompileWarning) -> WarningRead:
    return WarningRead(code=warning.code.value, message=warning.message, location=warning.location)


def to_validation_read(result: ValidationResult) -> ValidationRead:
    return ValidationRead(
        valid=result.valid,
        errors=result.messages(),
        details=[ValidationErrorRead(**e.to_dict()) for e in result.errors],
    )


class CollectionService:
    """Service for collection CRUD, overrides and the two read paths."""

    def __init__(self, session: Session):
        self.session = session
        self.store = SQLRecordStore(session)
        self.settings = get_settings()

    # =========================================================================
    # CRUD
    # =========================================================================

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        return self.session.get(Collection, collection_id)

    def get_by_slug(self, slug: str) -> Optional[Collection]:
        statement = select(Collection).where(Collection.slug == slug)
        return self.session.exec(statement).first()

    def require(self, collection_id: str) -> Collection:
        collection = self.get_collection(collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)
        return collection

    def checked_rules(self, rules: dict[str, Any]) -> dict[str, Any]:
        """Validate a rule configuration and return its normalized JSON.

        Raises:
            RuleConfigError: With every violation found
        """
        result = validate_rule_config(rules)
        if not result.valid:
            raise RuleConfigError(result.errors)
        return rule_config_to_dict(parse_rule_config(rules))

    def create_collection(self, data: CollectionCreate) -> Collection:
        rules = self.checked_rules(data.rules)
        if self.get_by_slug(data.slug):
            raise DuplicateSlugError(data.slug)

        collection = Collection(
            id=uuid.uuid4().hex,
            name=data.name,
            slug=data.slug,
            path=data.path or default_path(data.type, data.slug),
            description=data.description,
            type=data.type,
            status=data.status,
            rules=rules,
            cuisine_id=data.cuisine_id,
            location_id=data.location_id,
            tag_id=data.tag_id,
            pinned_recipe_ids=_dedupe(data.pinned_recipe_ids),
            excluded_recipe_ids=_dedupe(data.excluded_recipe_ids),
            min_required=data.min_required,
            target_count=data.target_count,
            sort_order=data.sort_order,
        )
        self.session.add(collection)
        self.session.commit()
        self.session.refresh(collection)
        logger.info("Created collection %s (%s)", collection.id, collection.slug)
        return collection

    def update_collection(self, collection_id: str, data: CollectionUpdate) -> Collection:
        collection = self.require(collection_id)
        changes = data.model_dump(exclude_unset=True)

        for key in [k for k, v in changes.items() if v is None and k in REQUIRED_FIELDS]:
            del changes[key]
        if "rules" in changes:
            changes["rules"] = self.checked_rules(changes["rules"])
        if "slug" in changes and changes["slug"] != collection.slug and self.get_by_slug(changes["slug"]):
            raise DuplicateSlugError(changes["slug"])
        for key in ("pinned_recipe_ids", "excluded_recipe_ids"):
            if key in changes:
                changes[key] = _dedupe(changes[key] or [])

        stale = False
        for key, value in changes.items():
            if key in SNAPSHOT_INPUTS and getattr(collection, key) != value:
                stale = True
            setattr(collection, key, value)

        if stale:
            invalidate(collection)
        collection.updated_at = _utcnow()
        self.session.add(collection)
        self.session.commit()
        self.session.refresh(collection)
        return collection

    def delete_collection(self, collection_id: str) -> CollectionRead:
        collection = self.require(collection_id)
        deleted = CollectionRead.model_validate(collection)
        self.session.delete(collection)
        self.session.commit()
        logger.info("Deleted collection %s", collection_id)
        return deleted

    # =========================================================================
    # Read paths
    # =========================================================================

    def get_detail(self, collection_id: str) -> CollectionDetail:
        """Real-time detail view; always runs the full pipeline."""
        collection = self.require(collection_id)
        read = fresh_read(collection, self.store)

        recipe_ids = read.result.recipe_ids[: self.settings.detail_recipe_limit]
        pinned = set(collection.pinned_recipe_ids or ())
        recipes = [
            CollectionRecipe(
                id=recipe.id,
                title=recipe.title,
                status=recipe.status,
                add_method="manual" if recipe.id in pinned else "rule",
            )
            for recipe in self.store.get_many(recipe_ids)
        ]

        counts = read.result.counts
        return CollectionDetail(
            **CollectionRead.model_validate(collection).model_dump(),
            matched_count=counts.matched,
            published_count=counts.published,
            pending_count=counts.pending,
            draft_count=counts.draft,
            progress=read.progress.progress,
            qualified_status=read.progress.qualified_status.value,
            near=read.progress.near,
            rule_description=describe_rule(parse_rule_config(collection.rules)),
            warnings=[to_warning_read(w) for w in read.result.warnings],
            recipes=recipes,
        )

    def list_item(self, collection: Collection, now: Optional[datetime] = None) -> CollectionListItem:
        """Snapshot view of one collection."""
        read = cached_read(collection, self.settings.cache_ttl_seconds, now)
        return CollectionListItem(
            id=collection.id,
            type=collection.type,
            name=collection.name,
            slug=collection.slug,
            path=collection.path,
            status=collection.status,
            sort_order=collection.sort_order,
            min_required=collection.min_required,
            target_count=collection.target_count,
            matched_count=read.counts.matched,
            published_count=read.counts.published,
            pending_count=read.counts.pending,
            draft_count=read.counts.draft,
            cached_at=read.snapshot.at if read.snapshot else None,
            is_stale=read.state is CacheState.STALE,
            progress=read.progress.progress,
            qualified_status=read.progress.qualified_status.value,
            near=read.progress.near,
            created_at=collection.created_at,
            updated_at=collection.updated_at,
        )

    def list_collections(
        self,
        status: Optional[str] = None,
        type: Optional[str] = None,
        qualified: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> CollectionListResponse:
        """List collections from their snapshots.

        The qualified filter compares two columns per row, so it runs in
        memory; pagination is applied after it so totals stay consistent.
        """
        statement = select(Collection)
        if status:
            statement = statement.where(Collection.status == status)
        if type:
            statement = statement.where(Collection.type == type)
        if search:
            pattern = f"%{search}%"
            statement = statement.where(or_(Collection.name.ilike(pattern), Collection.slug.ilike(pattern)))
        statement = statement.order_by(Collection.updated_at.desc(), Collection.id)

        now = _utcnow()
        items = [self.list_item(c, now) for c in self.session.exec(statement).all()]
        if qualified is not None:
            items = [i for i in items if (i.qualified_status == "qualified") == qualified]

        page = max(1, page)
        page_size = min(max(1, page_size), 100)
        total = len(items)
        return CollectionListResponse(
            items=items[(page - 1) * page_size : page * page_size],
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size),
        )

    # =========================================================================
    # Rule tooling
    # =========================================================================

    def test_rules(self, collection_id: str, request: RuleTestRequest) -> RuleTestResponse:
        """Evaluate a candidate rule against the collection without saving it.

        Invalid rules return zero counts and the validation errors; the
        record store is not queried for them.
        """
        collection = self.require(collection_id)
        validation = validate_rule_config(request.rules)
        if not validation.valid:
            return RuleTestResponse(
                counts=CountsRead(),
                validation=to_validation_read(validation),
                description="Invalid rule configuration",
            )

        config = parse_rule_config(request.rules)
        excluded = frozenset(request.excluded_recipe_ids)
        context = CollectionContext(
            collection_id=collection.id,
            cuisine_id=collection.cuisine_id,
            location_id=collection.location_id,
            tag_id=collection.tag_id,
            excluded_ids=excluded,
        )
        compiled = compile_rule(config, context)
        warnings = list(compiled.warnings) + check_references(compiled.predicate, self.store)

        counts = Matcher(self.store).count(compiled.predicate, excluded)
        limit = min(request.limit, self.settings.sample_limit_max)
        recipes = []
        if limit > 0:
            recipes = self.store.list(
                exclude_ids(compiled.predicate, excluded),
                status=ACTIVE_STATUSES,
                limit=limit,
                order="recent",
            )

        return RuleTestResponse(
            counts=CountsRead(**counts.to_dict()),
            samples=[
                RecipeSample(
                    id=r.id,
                    title=r.title,
                    status=r.status,
                    cuisine_name=r.cuisine.name if r.cuisine else None,
                    location_name=r.location.name if r.location else None,
                    tags=[t.name for t in r.tags],
                )
                for r in recipes
            ],
            validation=to_validation_read(validation),
            description=describe_rule(config),
            warnings=[to_warning_read(w) for w in warnings],
        )

    def preview(self, request: PreviewRequest) -> PreviewResponse:
        """Count published recipes a rule would match for the given links.

        Raises:
            RuleConfigError: If the rule configuration is invalid
        """
        self.checked_rules(request.rules)
        config = parse_rule_config(request.rules)
        context = CollectionContext(
            cuisine_id=request.cuisine_id,
            location_id=request.location_id,
            tag_id=request.tag_id,
        )
        compiled = compile_rule(config, context)
        count = self.store.count(compiled.predicate, status=RecipeStatus.PUBLISHED.value)
        return PreviewResponse(count=count, has_rules=not isinstance(compiled.predicate, MatchAll))

    # =========================================================================
    # Manual overrides
    # =========================================================================

    def _require_recipes(self, recipe_ids: list[str]) -> None:
        existing = self.store.existing_ids("recipe", recipe_ids)
        missing = [i for i in _dedupe(recipe_ids) if i not in existing]
        if missing:
            raise RecipeNotFoundError(missing)

    def _save_overrides(
        self,
        collection: Collection,
        pinned: Optional[list[str]] = None,
        excluded: Optional[list[str]] = None,
    ) -> None:
        if pinned is not None:
            collection.pinned_recipe_ids = pinned
        if excluded is not None:
            collection.excluded_recipe_ids = excluded
        invalidate(collection)
        collection.updated_at = _utcnow()
        self.session.add(collection)
        self.session.commit()
        self.session.refresh(collection)

    def pin_recipes(self, collection_id: str, recipe_ids: list[str], position: str = "end") -> PinResponse:
        collection = self.require(collection_id)
        self._require_recipes(recipe_ids)

        current = list(collection.pinned_recipe_ids or [])
        new_ids = [i for i in _dedupe(recipe_ids) if i not in current]
        updated = new_ids + current if position == "start" else current + new_ids

        self._save_overrides(collection, pinned=updated)
        return PinResponse(pinned_recipe_ids=updated, message=f"Pinned {len(new_ids)} recipe(s)")

    def unpin_recipes(self, collection_id: str, recipe_ids: list[str]) -> PinResponse:
        collection = self.require(collection_id)
        remove = set(recipe_ids)
        updated = [i for i in collection.pinned_recipe_ids or [] if i not in remove]

        self._save_overrides(collection, pinned=updated)
        return PinResponse(pinned_recipe_ids=updated, message=f"Unpinned {len(recipe_ids)} recipe(s)")

    def reorder_pins(self, collection_id: str, recipe_ids: list[str]) -> PinResponse:
        """Replace the pinned order; the set of pinned ids must stay the same."""
        collection = self.require(collection_id)
        current = set(collection.pinned_recipe_ids or [])
        if len(recipe_ids) != len(set(recipe_ids)) or set(recipe_ids) != current:
            raise InvalidOverrideError(
                "Reordering cannot add or remove pinned recipes; use pin/unpin instead"
            )

        self._save_overrides(collection, pinned=list(recipe_ids))
        return PinResponse(pinned_recipe_ids=list(recipe_ids), message="Pinned order updated")

    def exclude_recipes(self, collection_id: str, recipe_ids: list[str]) -> ExcludeResponse:
        """Exclude recipes; excluded ids are also removed from the pinned list."""
        collection = self.require(collection_id)
        self._require_recipes(recipe_ids)

        current = list(collection.excluded_recipe_ids or [])
        new_ids = [i for i in _dedupe(recipe_ids) if i not in current]
        excluded = current + new_ids
        remove = set(recipe_ids)
        pinned = [i for i in collection.pinned_recipe_ids or [] if i not in remove]

        self._save_overrides(collection, pinned=pinned, excluded=excluded)
        return ExcludeResponse(
            excluded_recipe_ids=excluded,
            pinned_recipe_ids=pinned,
            message=f"Excluded {len(new_ids)} recipe(s)",
        )

    def unexclude_recipes(self, collection_id: str, recipe_ids: list[str]) -> ExcludeResponse:
        collection = self.require(collection_id)
        remove = set(recipe_ids)
        excluded = [i for i in collection.excluded_recipe_ids or [] if i not in remove]

        self._save_overrides(collection, excluded=excluded)
        return ExcludeResponse(
            excluded_recipe_ids=excluded,
            pinned_recipe_ids=list(collection.pinned_recipe_ids or []),
            message=f"Restored {len(recipe_ids)} recipe(s)",
        )

    # =========================================================================
    # Snapshot maintenance
    # =========================================================================

    def refresh_counts(self, collection_ids: Optional[list[str]] = None) -> RefreshCountsResponse:
        """Refresh the counts snapshot of the given (or all) collections.

        A failing collection keeps its previous snapshot and is reported in
        ``details``; the others are still refreshed.
        """
        statement = select(Collection).order_by(Collection.id)
        if collection_ids:
            statement = statement.where(Collection.id.in_(collection_ids))
        collections = list(self.session.exec(statement).all())

        details = []
        for collection in collections:
            collection_id, name = collection.id, collection.name
            try:
                snapshot = refresh(self.session, collection)
            except CurationError as exc:
                logger.warning("Counts refresh failed for %s: %s", collection_id, exc)
                details.append(RefreshDetail(id=collection_id, name=name, success=False, error=str(exc)))
                continue
            details.append(
                RefreshDetail(
                    id=collection_id,
                    name=name,
                    success=True,
                    counts=CountsRead(**snapshot.counts.to_dict()),
                )
            )

        refreshed = sum(1 for d in details if d.success)
        return RefreshCountsResponse(refreshed=refreshed, failed=len(details) - refreshed, details=details)

    # =========================================================================
    # Publishing
    # =========================================================================

    def publish(self, collection_id: str, force: bool = False) -> PublishResponse:
        """Publish a collection after checking qualification live.

        The published count is recomputed through the pipeline rather than
        read from the snapshot, and the result is stored as the new snapshot
        together with the status change. An unqualified collection is still
        published, with a warning unless ``force`` is set.

        Raises:
            CollectionNotFoundError: If the collection does not exist
            StoreError: If evaluation or the write fails; nothing is changed
        """
        collection = self.require(collection_id)
        if collection.status == CollectionStatus.PUBLISHED.value:
            read = cached_read(collection, self.settings.cache_ttl_seconds)
            return PublishResponse(
                published=True,
                status=collection.status,
                qualified_status=read.progress.qualified_status.value,
                published_count=read.counts.published,
                min_required=collection.min_required,
                message="Collection is already published",
            )

        with get_refresh_locks().hold(collection.id):
            read = fresh_read(collection, self.store)
            published = read.result.counts.published
            qualified = read.progress.qualified_status is QualifiedStatus.QUALIFIED

            now = _utcnow()
            collection.status = CollectionStatus.PUBLISHED.value
            collection.published_at = collection.published_at or now
            collection.updated_at = now
            write_snapshot(self.session, collection, CountsSnapshot(counts=read.result.counts, at=now))

        warning = None
        if not qualified and not force:
            warning = (
                f"Only {published} published recipe(s), below the minimum of "
                f"{collection.min_required}; consider adding recipes"
            )
            logger.warning("Published unqualified collection %s: %s", collection.id, warning)
        else:
            logger.info("Published collection %s (%d published recipes)", collection.id, published)

        return PublishResponse(
            published=True,
            status=collection.status,
            qualified_status=read.progress.qualified_status.value,
            published_count=published,
            min_required=collection.min_required,
            message="Collection published",
            warning=warning,
        )

    def unpublish(self, collection_id: str) -> PublishResponse:
        """Move a published collection back to draft."""
        collection = self.require(collection_id)
        read = cached_read(collection, self.settings.cache_ttl_seconds)
        message = "Collection is not published"
        if collection.status == CollectionStatus.PUBLISHED.value:
            collection.status = CollectionStatus.DRAFT.value
            collection.updated_at = _utcnow()
            self.session.add(collection)
            self.session.commit()
            self.session.refresh(collection)
            message = "Collection unpublished"
            logger.info("Unpublished collection %s", collection.id)

        return PublishResponse(
            published=False,
            status=collection.status,
            qualified_status=read.progress.qualified_status.value,
            published_count=read.counts.published,
            min_required=collection.min_required,
            message=message,
        )

    # =========================================================================
    # Linked collections
    # =========================================================================

    def _linked_collection(
        self,
        collection_type: str,
        name: str,
        slug: str,
        taken_slugs: set[str],
        rules: dict[str, Any],
        **links: Any,
    ) -> Collection:
        candidate = slug
        if candidate in taken_slugs:
            candidate = f"{collection_type}-{slug}"
        if candidate in taken_slugs:
            candidate = f"{candidate}-{uuid.uuid4().hex[:6]}"
        taken_slugs.add(candidate)

        return Collection(
            id=uuid.uuid4().hex,
            name=name,
            slug=candidate,
            path=default_path(collection_type, slug),
            type=collection_type,
            status=CollectionStatus.DRAFT.value,
            rules=rules,
            target_count=LINKED_TARGET_COUNT,
            min_required=LINKED_MIN_REQUIRED,
            **links,
        )

    def sync_linked_collections(self) -> list[Collection]:
        """Create an auto collection for every cuisine, location and typed
        tag that is not linked to a collection yet.

        Returns:
            The newly created collections
        """
        existing = list(self.session.exec(select(Collection)).all())
        linked_cuisines = {c.cuisine_id for c in existing if c.cuisine_id}
        linked_locations = {c.location_id for c in existing if c.location_id}
        linked_tags = {c.tag_id for c in existing if c.tag_id}
        taken_slugs = {c.slug for c in existing}

        created: list[Collection] = []
        for cuisine in self.session.exec(select(Cuisine).order_by(Cuisine.id)).all():
            if cuisine.id in linked_cuisines:
                continue
            created.append(
                self._linked_collection(
                    CollectionType.CUISINE.value,
                    cuisine.name,
                    cuisine.slug,
                    taken_slugs,
                    rules={"mode": "auto", "field": "cuisineId", "value": cuisine.id},
                    cuisine_id=cuisine.id,
                )
            )

        for location in self.session.exec(select(Location).order_by(Location.id)).all():
            if location.id in linked_locations:
                continue
            created.append(
                self._linked_collection(
                    CollectionType.REGION.value,
                    location.name,
                    location.slug,
                    taken_slugs,
                    rules={"mode": "auto", "field": "locationId", "value": location.id},
                    location_id=location.id,
                )
            )

        for tag in self.session.exec(select(Tag).order_by(Tag.id)).all():
            if tag.id in linked_tags or tag.type not in TAG_COLLECTION_TYPES:
                continue
            created.append(
                self._linked_collection(
                    tag.type,
                    tag.name,
                    tag.slug,
                    taken_slugs,
                    rules={"mode": "auto", "field": "tagId", "value": tag.id, "tagType": tag.type},
                    tag_id=tag.id,
                )
            )

        if created:
            self.session.add_all(created)
            self.session.commit()
            for collection in created:
                self.session.refresh(collection)
            logger.info("Created %d linked collection(s)", len(created))
        return created

    # =========================================================================
    # Qualified collections
    # =========================================================================

    def list_qualified_collections(
        self, type: Optional[str] = None, limit: int = 20
    ) -> list[QualifiedCollectionCard]:
        """Published collections whose snapshot meets ``min_required``."""
        statement = (
            select(Collection)
            .where(Collection.status == CollectionStatus.PUBLISHED.value)
            .where(Collection.cached_published_count >= Collection.min_required)
        )
        if type:
            statement = statement.where(Collection.type == type)
        statement = statement.order_by(
            Collection.sort_order, Collection.cached_published_count.desc(), Collection.id
        ).limit(limit)

        return [
            QualifiedCollectionCard(
                id=c.id,
                name=c.name,
                slug=c.slug,
                path=c.path,
                type=c.type,
                published_count=c.cached_published_count,
                target_count=c.target_count,
                progress=progress_percent(c.cached_published_count, c.target_count),
                sort_order=c.sort_order,
            )
            for c in self.session.exec(statement).all()
        ]


def sync_linked_collections(session: Session) -> list[Collection]:
    """Convenience function to create missing linked collections."""
    return CollectionService(session).sync_linked_collections()


def list_qualified_collections(
    session: Session, type: Optional[str] = None, limit: int = 20
) -> list[QualifiedCollectionCard]:
    """Convenience function to list qualified collections."""
    return CollectionService(session).list_qualified_collections(type=type, limit=limit)
