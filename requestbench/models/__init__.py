"""Data models for requestbench."""

from requestbench.models.api import (
    FolderCreate,
    ItemDelete,
    LocatorResponse,
    RequestCreate,
    RequestUpdate,
    WorkspaceCreate,
    WorkspaceUpdate,
)
from requestbench.models.collection import (
    DEFAULT_WORKSPACE_ID,
    CollectionNode,
    Folder,
    HttpRequest,
    Item,
    KeyValue,
    RequestBody,
    Workspace,
    iter_tree,
)
from requestbench.models.enums import (
    BackendKind,
    BodyType,
    HttpMethod,
    ItemType,
    PersistenceErrorCode,
)
from requestbench.models.response import PreparedRequest, ResponseRecord

__all__ = [
    "DEFAULT_WORKSPACE_ID",
    # Enums
    "BackendKind",
    "BodyType",
    # Collection
    "CollectionNode",
    "Folder",
    # API schemas
    "FolderCreate",
    "HttpMethod",
    "HttpRequest",
    "Item",
    "ItemDelete",
    "ItemType",
    "KeyValue",
    "LocatorResponse",
    "PersistenceErrorCode",
    # Response
    "PreparedRequest",
    "RequestBody",
    "RequestCreate",
    "RequestUpdate",
    "ResponseRecord",
    "Workspace",
    "WorkspaceCreate",
    "WorkspaceUpdate",
    "iter_tree",
]
