"""Shared enumerations used across requestbench."""

from __future__ import annotations

from enum import StrEnum

# -- Collection --------------------------------------------------------------


class ItemType(StrEnum):
    """Discriminator for collection items."""

    FOLDER = "folder"
    REQUEST = "request"


class HttpMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class BodyType(StrEnum):
    """How a request body's ``content`` is interpreted at send time."""

    NONE = "none"
    JSON = "json"
    RAW = "raw"
    FORM = "form"


# -- Storage -----------------------------------------------------------------


class BackendKind(StrEnum):
    """Persistence backend selected at composition time."""

    FILESYSTEM = "filesystem"
    KV = "kv"
    REMOTE = "remote"


class PersistenceErrorCode(StrEnum):
    """Failure codes carried by ``PersistenceError``."""

    LOAD_WORKSPACES = "load_workspaces_error"
    LOAD_WORKSPACE = "load_workspace_error"
    CREATE_WORKSPACE = "create_workspace_error"
    UPDATE_WORKSPACE = "update_workspace_error"
    DELETE_WORKSPACE = "delete_workspace_error"
    LOAD_COLLECTIONS = "load_collections_error"
    CREATE_FOLDER = "create_folder_error"
    CREATE_REQUEST = "create_request_error"
    UPDATE_REQUEST = "update_request_error"
    DELETE_ITEM = "delete_item_error"
    LOCATOR_MISSING = "locator_missing"
    INVALID_LOCATOR = "invalid_locator"
    NOT_FOUND = "not_found"
    API_ERROR = "api_error"
