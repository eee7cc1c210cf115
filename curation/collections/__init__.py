"""Collections domain - admin API, service and YAML definitions."""

from .router import router
from .service import (
    CollectionService,
    sync_linked_collections,
    list_qualified_collections,
)
from .loader import CollectionDefinition, CollectionLoader, SyncResult, sync_definitions
from .schemas import (
    CollectionCreate,
    CollectionUpdate,
    CollectionRead,
    CollectionDetail,
    CollectionListItem,
    CollectionListResponse,
    QualifiedCollectionCard,
    RuleTestRequest,
    RuleTestResponse,
    PreviewRequest,
    PreviewResponse,
)

__all__ = [
    # Router
    "router",
    # Service
    "CollectionService",
    "sync_linked_collections",
    "list_qualified_collections",
    # Definitions
    "CollectionDefinition",
    "CollectionLoader",
    "SyncResult",
    "sync_definitions",
    # Schemas
    "CollectionCreate",
    "CollectionUpdate",
    "CollectionRead",
    "CollectionDetail",
    "CollectionListItem",
    "CollectionListResponse",
    "QualifiedCollectionCard",
    "RuleTestRequest",
    "RuleTestResponse",
    "PreviewRequest",
    "PreviewResponse",
]
