"""API request / response schemas for the storage service.

These thin schemas sit between HTTP and the backend layer.  Entities
(``Workspace``, ``Folder``, ``HttpRequest``) are reused directly from
``collection.py`` since the service moves them verbatim.

- **Create** schemas validate user input and provide defaults.
- **Update** schemas allow partial updates via ``exclude_unset``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from requestbench.models.collection import Folder, HttpRequest

WORKSPACE_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"

# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class WorkspaceCreate(BaseModel):
    """Input for creating a new workspace."""

    id: str = Field(pattern=WORKSPACE_ID_PATTERN, description="Doubles as the storage directory/key name.")
    name: str
    description: str = ""
    variables: dict[str, str] = Field(default_factory=dict)


class WorkspaceUpdate(BaseModel):
    """Partial workspace update.

    Routers should use ``body.model_dump(exclude_unset=True)`` to extract
    only the provided fields.
    """

    name: str | None = None
    description: str | None = None
    variables: dict[str, str] | None = None


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class FolderCreate(BaseModel):
    folder: Folder
    parent_locator: str | None = None


class RequestCreate(BaseModel):
    request: HttpRequest
    parent_locator: str | None = None


class RequestUpdate(BaseModel):
    """The request must carry the ``locator`` it was created with."""

    request: HttpRequest


class ItemDelete(BaseModel):
    locator: str


class LocatorResponse(BaseModel):
    locator: str
