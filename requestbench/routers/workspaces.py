"""Workspace and collection endpoints (RPC-style).

All write operations use POST; reads use GET.  Backend errors are mapped
to HTTP statuses by the handlers registered in ``requestbench.app``.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from requestbench.backends.base import CollectionBackend
from requestbench.deps import Backend
from requestbench.errors import DefaultWorkspaceError
from requestbench.models.api import FolderCreate, LocatorResponse, RequestCreate, WorkspaceCreate, WorkspaceUpdate
from requestbench.models.collection import DEFAULT_WORKSPACE_ID, Item, Workspace, utcnow

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


async def _get_or_404(backend: CollectionBackend, workspace_id: str) -> Workspace:
    workspace = await backend.load_workspace(workspace_id)
    if workspace is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace '{workspace_id}' not found.")
    return workspace


# -- Workspaces ---------------------------------------------------------------


@router.get("/list", response_model=list[Workspace])
async def list_workspaces(backend: Backend) -> list[Workspace]:
    """List all workspaces, oldest first (seeds ``default`` when missing)."""
    workspaces = await backend.load_workspaces()
    return sorted(workspaces.values(), key=lambda ws: ws.created_at)


@router.post("/create", response_model=Workspace, status_code=status.HTTP_201_CREATED)
async def create_workspace(body: WorkspaceCreate, backend: Backend) -> Workspace:
    """Create a new workspace under the caller-chosen id."""
    if await backend.load_workspace(body.id) is not None:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=f"Workspace '{body.id}' already exists.")
    return await backend.create_workspace(body.id, body.name, body.description, body.variables)


@router.get("/{workspace_id}/get", response_model=Workspace)
async def get_workspace(workspace_id: str, backend: Backend) -> Workspace:
    return await _get_or_404(backend, workspace_id)


@router.post("/{workspace_id}/update", response_model=Workspace)
async def update_workspace(workspace_id: str, body: WorkspaceUpdate, backend: Backend) -> Workspace:
    """Partially update a workspace."""
    workspace = await _get_or_404(backend, workspace_id)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return workspace

    for key, value in changes.items():
        setattr(workspace, key, value)
    workspace.updated_at = utcnow()

    await backend.update_workspace(workspace)
    return workspace


@router.post("/{workspace_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workspace(workspace_id: str, backend: Backend) -> None:
    """Delete a workspace and everything in it.  ``default`` is protected."""
    if workspace_id == DEFAULT_WORKSPACE_ID:
        raise DefaultWorkspaceError
    await _get_or_404(backend, workspace_id)
    await backend.delete_workspace(workspace_id)


# -- Collections --------------------------------------------------------------


@router.get("/{workspace_id}/collections", response_model=list[Item])
async def list_collections(workspace_id: str, backend: Backend) -> list:
    """Flat item list of a workspace; every item carries its locator."""
    items = await backend.load_collections(workspace_id)
    return list(items.values())


@router.post("/{workspace_id}/folders/create", status_code=status.HTTP_201_CREATED)
async def create_folder(workspace_id: str, body: FolderCreate, backend: Backend) -> LocatorResponse:
    locator = await backend.create_folder(workspace_id, body.folder, body.parent_locator)
    return LocatorResponse(locator=locator)


@router.post("/{workspace_id}/requests/create", status_code=status.HTTP_201_CREATED)
async def create_request(workspace_id: str, body: RequestCreate, backend: Backend) -> LocatorResponse:
    locator = await backend.create_request(workspace_id, body.request, body.parent_locator)
    return LocatorResponse(locator=locator)
