"""Persistence backend interface for workspaces and collections.

The collection store keeps the authoritative state in memory and writes
through to a backend on a best-effort basis.  The interface is async to
support local filesystem, embedded database and remote (HTTP) backends.

Every method may raise ``PersistenceError``; ``delete_workspace`` raises
``DefaultWorkspaceError`` for the default workspace before touching storage.

Locators returned by ``create_folder`` / ``create_request`` (and set on
items by ``load_collections``) are opaque: callers pass them back to the same
backend and never interpret them.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from requestbench.models.collection import Folder, HttpRequest, Workspace


@runtime_checkable
class CollectionBackend(Protocol):
    """Async protocol for durable workspace and collection storage."""

    # -- Workspaces ------------------------------------------------------------

    async def load_workspaces(self) -> dict[str, Workspace]:
        """Load every workspace, seeding the default one if missing."""
        ...

    async def load_workspace(self, workspace_id: str) -> Workspace | None:
        """Load one workspace.  Returns ``None`` if it does not exist."""
        ...

    async def create_workspace(
        self,
        workspace_id: str,
        name: str,
        description: str = "",
        variables: dict[str, str] | None = None,
    ) -> Workspace:
        ...

    async def update_workspace(self, workspace: Workspace) -> None:
        ...

    async def delete_workspace(self, workspace_id: str) -> None:
        """Delete a workspace and its collection.  Rejects ``"default"``."""
        ...

    # -- Collections -----------------------------------------------------------

    async def load_collections(self, workspace_id: str) -> dict[str, Folder | HttpRequest]:
        """Load a workspace's items as a flat id -> item map.

        ``parent_id`` links are reconstructed and every item has its locator set.
        """
        ...

    async def create_folder(
        self,
        workspace_id: str,
        folder: Folder,
        parent_locator: str | None = None,
    ) -> str:
        """Persist a folder under *parent_locator* (root if None).  Returns its locator."""
        ...

    async def create_request(
        self,
        workspace_id: str,
        request: HttpRequest,
        parent_locator: str | None = None,
    ) -> str:
        """Persist a request under *parent_locator* (root if None).  Returns its locator."""
        ...

    async def update_request(self, request: HttpRequest) -> None:
        """Overwrite a stored request.  ``request.locator`` must be set."""
        ...

    async def delete_item(self, locator: str) -> None:
        """Delete the item at *locator*.  No-op if it is already gone."""
        ...

    # -- Lifecycle -------------------------------------------------------------

    async def aclose(self) -> None:
        """Release connections / clients."""
        ...
