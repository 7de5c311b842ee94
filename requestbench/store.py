"""Collection store -- the authoritative in-memory state of the workbench.

The CollectionStore is constructed once by the composition root and handed
to whoever needs it.  It holds:

- **Workspaces**: every known workspace with its variable table.
- **Items**: a flat ``id -> item`` map of the *active* workspace's folders
  and requests.  The display tree is re-derived from ``parent_id`` links on
  demand and never stored.
- **Pointers**: the active workspace id and the active request id.
- **Listeners**: callbacks fired once, synchronously, after each mutation.

Persistence is best-effort.  Every mutation is applied to memory first; the
backend call comes second, and a ``PersistenceError`` from it is logged and
swallowed -- the in-memory change stands.  The worst case is an edit that
exists in memory but never reached storage.  Validation errors, by
contrast, are raised before anything is touched.
"""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from loguru import logger

from requestbench.errors import (
    DefaultWorkspaceError,
    InvalidParentError,
    PersistenceError,
    RequestBenchValidationError,
    WorkspaceNotFoundError,
)
from requestbench.models.collection import (
    DEFAULT_WORKSPACE_ID,
    CollectionNode,
    Folder,
    HttpRequest,
    Workspace,
    default_workspace,
    is_folder,
    item_adapter,
    new_id,
    utcnow,
)
from requestbench.models.enums import HttpMethod, ItemType

if TYPE_CHECKING:
    from requestbench.backends.base import CollectionBackend

Listener = Callable[[], None]

# Fields ``update_request`` never merges.
FROZEN_REQUEST_FIELDS = frozenset({"id", "type", "created_at", "locator"})


class CollectionStore:
    """Workspaces, the active workspace's items, and change notification."""

    def __init__(self, backend: CollectionBackend) -> None:
        self._backend = backend
        self._workspaces: dict[str, Workspace] = {DEFAULT_WORKSPACE_ID: default_workspace()}
        self._items: dict[str, Folder | HttpRequest] = {}
        self._active_workspace_id = DEFAULT_WORKSPACE_ID
        self._active_request_id: str | None = None
        self._listeners: list[Listener] = []

    # -- Change notification ---------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Store listener {!r} failed", listener)

    # -- Query -----------------------------------------------------------------

    @property
    def workspaces(self) -> dict[str, Workspace]:
        return dict(self._workspaces)

    @property
    def active_workspace_id(self) -> str:
        return self._active_workspace_id

    @property
    def active_workspace(self) -> Workspace:
        return self._workspaces[self._active_workspace_id]

    @property
    def items(self) -> dict[str, Folder | HttpRequest]:
        """Snapshot of the active workspace's flat item map."""
        return dict(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def get_item(self, item_id: str) -> Folder | HttpRequest | None:
        return self._items.get(item_id)

    @property
    def active_request_id(self) -> str | None:
        return self._active_request_id

    @property
    def active_request(self) -> HttpRequest | None:
        if self._active_request_id is None:
            return None
        item = self._items.get(self._active_request_id)
        return item if isinstance(item, HttpRequest) else None

    # -- Loading ---------------------------------------------------------------

    async def load(self) -> PersistenceError | None:
        """Load workspaces from the backend and activate one.

        Keeps the current active workspace if it still exists, otherwise falls
        back to ``default``.  On backend failure the store keeps working with
        an in-memory default workspace; the error is returned.
        """
        error: PersistenceError | None = None
        try:
            workspaces = await self._backend.load_workspaces()
        except PersistenceError as exc:
            self._persistence_failed("load workspaces", exc)
            error = exc
            workspaces = {}

        if DEFAULT_WORKSPACE_ID not in workspaces:
            workspaces[DEFAULT_WORKSPACE_ID] = self._workspaces.get(DEFAULT_WORKSPACE_ID) or default_workspace()
        self._workspaces = dict(workspaces)

        target = self._active_workspace_id if self._active_workspace_id in workspaces else DEFAULT_WORKSPACE_ID
        switch_error = await self.set_active_workspace(target)
        logger.info("Store loaded: {} workspaces, active={}", len(self._workspaces), self._active_workspace_id)
        return error or switch_error

    async def _fetch_items(self, workspace_id: str) -> tuple[dict[str, Folder | HttpRequest], PersistenceError | None]:
        try:
            return dict(await self._backend.load_collections(workspace_id)), None
        except PersistenceError as exc:
            self._persistence_failed(f"load collections of {workspace_id}", exc)
            return {}, exc

    # -- Workspaces ------------------------------------------------------------

    async def set_active_workspace(self, workspace_id: str) -> PersistenceError | None:
        """Switch to *workspace_id* and load its items.

        Unknown ids are ignored.  If the backend cannot load the items, the
        workspace is still activated with an empty collection and the error
        is returned so the caller can surface it.
        """
        if workspace_id not in self._workspaces:
            logger.debug("Ignoring switch to unknown workspace {}", workspace_id)
            return None

        items, error = await self._fetch_items(workspace_id)
        self._active_workspace_id = workspace_id
        self._items = items
        self._active_request_id = None
        logger.debug("Active workspace: {} ({} items)", workspace_id, len(items))
        self._notify()
        return error

    async def create_workspace(
        self,
        name: str,
        description: str = "",
        variables: Mapping[str, Any] | None = None,
    ) -> Workspace:
        workspace = Workspace(
            id=new_id("ws"),
            name=name,
            description=description,
            variables={key: str(value) for key, value in (variables or {}).items()},
        )
        self._workspaces[workspace.id] = workspace

        try:
            await self._backend.create_workspace(
                workspace.id, workspace.name, workspace.description, dict(workspace.variables)
            )
        except PersistenceError as exc:
            self._persistence_failed(f"create workspace {workspace.id}", exc)

        logger.info("Workspace created: {} ({})", workspace.id, name)
        self._notify()
        return workspace

    async def update_workspace(
        self,
        workspace_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Workspace:
        """Edit workspace metadata.  Raises ``WorkspaceNotFoundError`` if missing."""
        workspace = self._require_workspace(workspace_id)
        if name is not None:
            workspace.name = name
        if description is not None:
            workspace.description = description
        workspace.updated_at = utcnow()

        await self._persist_workspace(workspace)
        self._notify()
        return workspace

    async def delete_workspace(self, workspace_id: str) -> None:
        """Delete a workspace.  The default workspace is protected.

        If the deleted workspace was active, ``default`` becomes active.
        """
        if workspace_id == DEFAULT_WORKSPACE_ID:
            raise DefaultWorkspaceError
        self._require_workspace(workspace_id)

        was_active = workspace_id == self._active_workspace_id
        del self._workspaces[workspace_id]
        if was_active:
            self._active_workspace_id = DEFAULT_WORKSPACE_ID
            self._items = {}
            self._active_request_id = None

        try:
            await self._backend.delete_workspace(workspace_id)
        except PersistenceError as exc:
            self._persistence_failed(f"delete workspace {workspace_id}", exc)

        if was_active and self._active_workspace_id == DEFAULT_WORKSPACE_ID:
            self._items, _ = await self._fetch_items(DEFAULT_WORKSPACE_ID)

        logger.info("Workspace deleted: {}", workspace_id)
        self._notify()

    def _require_workspace(self, workspace_id: str) -> Workspace:
        workspace = self._workspaces.get(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        return workspace

    async def _persist_workspace(self, workspace: Workspace) -> None:
        try:
            await self._backend.update_workspace(workspace)
        except PersistenceError as exc:
            self._persistence_failed(f"update workspace {workspace.id}", exc)

    # -- Variables -------------------------------------------------------------

    async def set_variable(self, workspace_id: str, key: str, value: Any) -> None:
        """Set a workspace variable; the value is stored as ``str(value)``."""
        workspace = self._require_workspace(workspace_id)
        if not key:
            msg = "Variable name must not be empty"
            raise RequestBenchValidationError(msg)

        workspace.variables[key] = str(value)
        workspace.updated_at = utcnow()
        await self._persist_workspace(workspace)
        self._notify()

    def get_variable(self, workspace_id: str, key: str) -> str | None:
        workspace = self._workspaces.get(workspace_id)
        return workspace.variables.get(key) if workspace else None

    async def delete_variable(self, workspace_id: str, key: str) -> bool:
        workspace = self._require_workspace(workspace_id)
        if key not in workspace.variables:
            return False

        del workspace.variables[key]
        workspace.updated_at = utcnow()
        await self._persist_workspace(workspace)
        self._notify()
        return True

    def variables(self, workspace_id: str | None = None) -> dict[str, str]:
        """Copy of a workspace's variables (the active one by default)."""
        workspace = self._workspaces.get(workspace_id or self._active_workspace_id)
        return dict(workspace.variables) if workspace else {}

    # -- Items -----------------------------------------------------------------

    async def create_folder(self, name: str, parent_id: str | None = None) -> Folder:
        """Create a folder in the active workspace.

        Raises ``InvalidParentError`` if *parent_id* is not a loaded folder.
        Storage failures are logged; the folder is returned and kept regardless.
        """
        parent = self._require_parent(parent_id)
        folder = Folder(id=new_id("folder"), name=name, parent_id=parent_id)
        self._items[folder.id] = folder

        await self._persist_new_item(folder, parent)
        logger.debug("Folder created: {} ({})", folder.id, name)
        self._notify()
        return folder

    async def create_request(
        self,
        name: str,
        method: HttpMethod | str = HttpMethod.GET,
        url: str = "",
        parent_id: str | None = None,
    ) -> HttpRequest:
        """Create a request in the active workspace.  Same rules as ``create_folder``."""
        parent = self._require_parent(parent_id)
        request = HttpRequest(id=new_id("req"), name=name, method=method, url=url, parent_id=parent_id)
        self._items[request.id] = request

        await self._persist_new_item(request, parent)
        logger.debug("Request created: {} ({} {})", request.id, request.method, url)
        self._notify()
        return request

    def _require_parent(self, parent_id: str | None) -> Folder | None:
        if parent_id is None:
            return None
        parent = self._items.get(parent_id)
        if parent is None:
            raise InvalidParentError(parent_id)
        if not isinstance(parent, Folder):
            raise InvalidParentError(parent_id, "requests cannot have children")
        return parent

    async def _persist_new_item(self, item: Folder | HttpRequest, parent: Folder | None) -> None:
        if parent is not None and parent.locator is None:
            logger.warning("Parent {} was never persisted; keeping {} in memory only", parent.id, item.id)
            return

        parent_locator = parent.locator if parent is not None else None
        workspace_id = self._active_workspace_id
        try:
            if isinstance(item, Folder):
                locator = await self._backend.create_folder(workspace_id, item, parent_locator)
            else:
                locator = await self._backend.create_request(workspace_id, item, parent_locator)
        except PersistenceError as exc:
            self._persistence_failed(f"create {item.type} {item.id}", exc)
            return
        item.locator = locator

        # Deleted while the create was in flight: storage must follow memory.
        if self._items.get(item.id) is not item:
            logger.debug("{} was deleted before its create finished; removing it from storage", item.id)
            try:
                await self._backend.delete_item(locator)
            except PersistenceError as exc:
                self._persistence_failed(f"delete {item.type} {item.id}", exc)

    async def update_request(
        self,
        request_id: str,
        fields: Mapping[str, Any] | None = None,
        **changes: Any,
    ) -> HttpRequest | None:
        """Merge *fields* / *changes* into a request and re-stamp ``updated_at``.

        Returns ``None`` if *request_id* is not a loaded request.  Identity
        fields (``FROZEN_REQUEST_FIELDS``) are ignored.  A new ``parent_id``
        must name a loaded folder, otherwise ``InvalidParentError`` is raised
        and nothing changes.  Requests are leaves, so a move cannot form a
        cycle.
        """
        current = self._items.get(request_id)
        if not isinstance(current, HttpRequest):
            return None

        merged_changes = {**(fields or {}), **changes}
        ignored = FROZEN_REQUEST_FIELDS.intersection(merged_changes)
        if ignored:
            logger.debug("update_request({}): ignoring frozen fields {}", request_id, sorted(ignored))
        updates = {key: value for key, value in merged_changes.items() if key not in FROZEN_REQUEST_FIELDS}
        if "parent_id" in updates and updates["parent_id"] != current.parent_id:
            self._require_parent(updates["parent_id"])

        merged = HttpRequest.model_validate({**current.model_dump(), **updates, "updated_at": utcnow()})
        self._items[request_id] = merged

        if merged.locator is None:
            logger.debug("Request {} has no locator; update kept in memory only", request_id)
        else:
            try:
                await self._backend.update_request(merged)
            except PersistenceError as exc:
                self._persistence_failed(f"update request {request_id}", exc)

        self._notify()
        return merged

    def set_folder_collapsed(self, folder_id: str, collapsed: bool) -> Folder | None:
        """Display-only toggle; kept in memory, never persisted."""
        folder = self._items.get(folder_id)
        if not isinstance(folder, Folder):
            return None
        folder.collapsed = collapsed
        self._notify()
        return folder

    def set_active_request(self, request_id: str | None) -> None:
        """Point at a loaded request (or clear with ``None``).  Unknown ids are ignored."""
        if request_id is not None and not isinstance(self._items.get(request_id), HttpRequest):
            return
        self._active_request_id = request_id
        self._notify()

    async def delete_item(self, item_id: str) -> bool:
        """Delete an item and its whole subtree.

        Every node is removed from memory first (children before parents),
        then one backend delete is issued per removed item that was ever
        persisted, in the same post-order.  A failed backend delete is logged
        and the next one still runs.
        """
        if item_id not in self._items:
            return False

        doomed = self._subtree_post_order(item_id)
        removed = [self._items.pop(doomed_id) for doomed_id in doomed]
        if self._active_request_id in doomed:
            self._active_request_id = None

        for item in removed:
            if item.locator is None:
                continue
            try:
                await self._backend.delete_item(item.locator)
            except PersistenceError as exc:
                self._persistence_failed(f"delete {item.type} {item.id}", exc)

        logger.debug("Deleted {} ({} items)", item_id, len(removed))
        self._notify()
        return True

    def _children_index(self) -> dict[str | None, list[Folder | HttpRequest]]:
        """Group items by parent.  Items whose parent is not a loaded folder group under ``None``."""
        index: dict[str | None, list[Folder | HttpRequest]] = {}
        for item in self._items.values():
            parent_id = item.parent_id if is_folder(self._items.get(item.parent_id or "")) else None
            index.setdefault(parent_id, []).append(item)
        return index

    def _subtree_post_order(self, root_id: str) -> list[str]:
        """Ids of *root_id* and all its descendants, children before parents."""
        children = self._children_index()
        order: list[str] = []
        visited: set[str] = set()

        def visit(item_id: str) -> None:
            if item_id in visited:
                return
            visited.add(item_id)
            for child in children.get(item_id, []):
                visit(child.id)
            order.append(item_id)

        visit(root_id)
        return order

    # -- Tree projection -------------------------------------------------------

    def get_collection_tree(self) -> list[CollectionNode]:
        """Build the display tree: folders before requests, then by name (case-sensitive).

        Pure projection over copies of the items; calling it twice without
        a mutation in between yields equal trees.
        """
        children = self._children_index()

        def build(parent_id: str | None) -> list[CollectionNode]:
            nodes = []
            for item in sorted(children.get(parent_id, []), key=_tree_sort_key):
                nested = build(item.id) if isinstance(item, Folder) else []
                nodes.append(CollectionNode(item=item.model_copy(deep=True), children=nested))
            return nodes

        return build(None)

    # -- Snapshot --------------------------------------------------------------

    def export_data(self) -> dict[str, Any]:
        """Plain-JSON snapshot of the in-memory state."""
        return {
            "workspaces": {ws_id: ws.model_dump(mode="json") for ws_id, ws in self._workspaces.items()},
            "collections": {item_id: item.model_dump(mode="json") for item_id, item in self._items.items()},
            "active_workspace": self._active_workspace_id,
            "active_request": self._active_request_id,
        }

    def import_data(self, data: Mapping[str, Any]) -> None:
        """Replace the in-memory state with an ``export_data`` snapshot.

        Everything is validated before anything is replaced.  Nothing is
        written to the backend.
        """
        workspaces = {
            ws_id: Workspace.model_validate(raw) for ws_id, raw in (data.get("workspaces") or {}).items()
        }
        items = {item_id: item_adapter.validate_python(raw) for item_id, raw in (data.get("collections") or {}).items()}

        if workspaces:
            workspaces.setdefault(DEFAULT_WORKSPACE_ID, default_workspace())
            self._workspaces = workspaces
        if data.get("collections") is not None:
            self._items = items

        active_workspace = data.get("active_workspace")
        if active_workspace in self._workspaces:
            self._active_workspace_id = active_workspace
        elif self._active_workspace_id not in self._workspaces:
            self._active_workspace_id = DEFAULT_WORKSPACE_ID

        active_request = data.get("active_request")
        self._active_request_id = (
            active_request if isinstance(self._items.get(active_request or ""), HttpRequest) else None
        )
        self._notify()

    # -- Helpers ---------------------------------------------------------------

    @staticmethod
    def _persistence_failed(action: str, exc: PersistenceError) -> None:
        logger.warning("Persistence failed ({}), keeping in-memory state: {} [{}]", action, exc, exc.code)


def _tree_sort_key(item: Folder | HttpRequest) -> tuple[int, str]:
    return (0 if item.type == ItemType.FOLDER else 1, item.name)
