"""API routes for rule-defined collections."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from curation.core.database import get_session
from curation.core.errors import (
    CollectionNotFoundError,
    CurationError,
    DuplicateSlugError,
    InvalidOverrideError,
    RecipeNotFoundError,
    RuleConfigError,
    StoreError,
)
from .schemas import (
    CollectionCreate,
    CollectionDetail,
    CollectionListResponse,
    CollectionRead,
    CollectionUpdate,
    ExcludeResponse,
    PinRequest,
    PinResponse,
    PreviewRequest,
    PreviewResponse,
    PublishRequest,
    PublishResponse,
    QualifiedCollectionCard,
    RecipeIdsRequest,
    RefreshCountsRequest,
    RefreshCountsResponse,
    RuleTestRequest,
    RuleTestResponse,
    SyncResponse,
)
from .service import CollectionService

router = APIRouter(prefix="/admin/collections", tags=["collections"])


def get_service(session: Session = Depends(get_session)) -> CollectionService:
    return CollectionService(session)


def to_http_error(exc: CurationError) -> HTTPException:
    """Translate a domain error into an HTTP error."""
    if isinstance(exc, CollectionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RecipeNotFoundError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "recipeIds": exc.recipe_ids},
        )
    if isinstance(exc, InvalidOverrideError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, DuplicateSlugError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, RuleConfigError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "errors": [e.to_dict() for e in exc.errors]},
        )
    if isinstance(exc, StoreError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Record store unavailable", "error": str(exc), "operation": exc.operation},
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# =============================================================================
# Collection-independent routes (declared before /{collection_id})
# =============================================================================

@router.get("", response_model=CollectionListResponse)
def list_collections(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    type: Optional[str] = None,
    qualified: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100, alias="pageSize"),
    service: CollectionService = Depends(get_service),
) -> CollectionListResponse:
    """List collections from their cached counts snapshots."""
    return service.list_collections(
        status=status_filter,
        type=type,
        qualified=qualified,
        search=search,
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=CollectionRead, status_code=status.HTTP_201_CREATED)
def create_collection(data: CollectionCreate, service: CollectionService = Depends(get_service)) -> CollectionRead:
    try:
        collection = service.create_collection(data)
    except CurationError as exc:
        raise to_http_error(exc) from exc
    return CollectionRead.model_validate(collection)


@router.post("/preview", response_model=PreviewResponse)
def preview_rules(request: PreviewRequest, service: CollectionService = Depends(get_service)) -> PreviewResponse:
    """Count published recipes a rule configuration would match."""
    try:
        return service.preview(request)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.post("/refresh-counts", response_model=RefreshCountsResponse)
def refresh_counts(
    request: Optional[RefreshCountsRequest] = None,
    service: CollectionService = Depends(get_service),
) -> RefreshCountsResponse:
    """Refresh counts snapshots of the given collections, or of all of them."""
    collection_ids = request.collection_ids if request else None
    return service.refresh_counts(collection_ids)


@router.post("/sync-linked", response_model=SyncResponse)
def sync_linked(service: CollectionService = Depends(get_service)) -> SyncResponse:
    """Create auto collections for cuisines, locations and tags without one."""
    created = service.sync_linked_collections()
    return SyncResponse(created=[c.slug for c in created])


@router.get("/qualified", response_model=list[QualifiedCollectionCard])
def qualified_collections(
    type: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    service: CollectionService = Depends(get_service),
) -> list[QualifiedCollectionCard]:
    return service.list_qualified_collections(type=type, limit=limit)


# =============================================================================
# Single collection
# =============================================================================

@router.get("/{collection_id}", response_model=CollectionDetail)
def get_collection(collection_id: str, service: CollectionService = Depends(get_service)) -> CollectionDetail:
    """Real-time collection detail (runs the full pipeline)."""
    try:
        return service.get_detail(collection_id)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.put("/{collection_id}", response_model=CollectionRead)
def update_collection(
    collection_id: str, data: CollectionUpdate, service: CollectionService = Depends(get_service)
) -> CollectionRead:
    try:
        collection = service.update_collection(collection_id, data)
    except CurationError as exc:
        raise to_http_error(exc) from exc
    return CollectionRead.model_validate(collection)


@router.delete("/{collection_id}", response_model=CollectionRead)
def delete_collection(collection_id: str, service: CollectionService = Depends(get_service)) -> CollectionRead:
    try:
        return service.delete_collection(collection_id)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.post("/{collection_id}/test-rules", response_model=RuleTestResponse)
def test_rules(
    collection_id: str, request: RuleTestRequest, service: CollectionService = Depends(get_service)
) -> RuleTestResponse:
    """Evaluate a candidate rule configuration without saving it."""
    try:
        return service.test_rules(collection_id, request)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.post("/{collection_id}/publish", response_model=PublishResponse)
def publish_collection(
    collection_id: str,
    request: Optional[PublishRequest] = None,
    service: CollectionService = Depends(get_service),
) -> PublishResponse:
    """Publish a collection; warns when it has too few published recipes."""
    force = request.force if request else False
    try:
        return service.publish(collection_id, force=force)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{collection_id}/publish", response_model=PublishResponse)
def unpublish_collection(collection_id: str, service: CollectionService = Depends(get_service)) -> PublishResponse:
    try:
        return service.unpublish(collection_id)
    except CurationError as exc:
        raise to_http_error(exc) from exc


# =============================================================================
# Manual overrides
# =============================================================================

@router.post("/{collection_id}/pin", response_model=PinResponse)
def pin_recipes(
    collection_id: str, request: PinRequest, service: CollectionService = Depends(get_service)
) -> PinResponse:
    try:
        return service.pin_recipes(collection_id, request.recipe_ids, request.position)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{collection_id}/pin", response_model=PinResponse)
def unpin_recipes(
    collection_id: str, request: RecipeIdsRequest, service: CollectionService = Depends(get_service)
) -> PinResponse:
    try:
        return service.unpin_recipes(collection_id, request.recipe_ids)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.put("/{collection_id}/pin", response_model=PinResponse)
def reorder_pins(
    collection_id: str, request: RecipeIdsRequest, service: CollectionService = Depends(get_service)
) -> PinResponse:
    try:
        return service.reorder_pins(collection_id, request.recipe_ids)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.post("/{collection_id}/exclude", response_model=ExcludeResponse)
def exclude_recipes(
    collection_id: str, request: RecipeIdsRequest, service: CollectionService = Depends(get_service)
) -> ExcludeResponse:
    try:
        return service.exclude_recipes(collection_id, request.recipe_ids)
    except CurationError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{collection_id}/exclude", response_model=ExcludeResponse)
def unexclude_recipes(
    collection_id: str, request: RecipeIdsRequest, service: CollectionService = Depends(get_service)
) -> ExcludeResponse:
    try:
        return service.unexclude_recipes(collection_id, request.recipe_ids)
    except CurationError as exc:
        raise to_http_error(exc) from exc
