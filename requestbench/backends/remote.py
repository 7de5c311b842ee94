"""Remote collection backend.

Talks to a requestbench storage service (``requestbench serve``) over HTTP.
The service owns the real storage; this backend only maps the
CollectionBackend protocol onto the service's RPC-style routes and turns
every failure -- transport errors and non-2xx answers alike -- into
``PersistenceError`` carrying the service's ``detail`` message.
"""

from __future__ import annotations

from typing import Any

import httpx

from requestbench.errors import DefaultWorkspaceError, PersistenceError
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
    Folder,
    HttpRequest,
    Workspace,
    item_list_adapter,
)
from requestbench.models.enums import PersistenceErrorCode


class RemoteBackend:
    """HTTP implementation of the CollectionBackend protocol.

    *base_url* points at the service's API root, e.g.
    ``http://localhost:3102/api``.  Pass *client* to reuse a preconfigured
    ``httpx.AsyncClient`` (its ``base_url`` must already be set); the
    backend then does not own it.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if client is None:
            if base_url is None:
                msg = "Either base_url or client is required"
                raise ValueError(msg)
            client = httpx.AsyncClient(base_url=base_url.rstrip("/") + "/", timeout=timeout)
            self._owns_client = True
        else:
            self._owns_client = False
        self._client = client

    async def _call(
        self,
        method: str,
        path: str,
        code: PersistenceErrorCode,
        *,
        json: Any = None,
        allow_404: bool = False,
    ) -> Any:
        """Issue one API call and return the decoded JSON body (None for 204 / allowed 404)."""
        try:
            response = await self._client.request(method, path.lstrip("/"), json=json)
        except httpx.HTTPError as exc:
            msg = f"{method} {path} failed: {exc}"
            raise PersistenceError(msg, code) from exc

        if allow_404 and response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            msg = f"{method} {path} failed: {_error_detail(response)}"
            if response.status_code == httpx.codes.NOT_FOUND:
                code = PersistenceErrorCode.NOT_FOUND
            raise PersistenceError(msg, code)
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            msg = f"{method} {path} returned invalid JSON: {exc}"
            raise PersistenceError(msg, PersistenceErrorCode.API_ERROR) from exc

    # -- Workspaces ------------------------------------------------------------

    async def load_workspaces(self) -> dict[str, Workspace]:
        code = PersistenceErrorCode.LOAD_WORKSPACES
        data = await self._call("GET", "workspaces/list", code)
        try:
            return {ws.id: ws for ws in (Workspace.model_validate(raw) for raw in data or [])}
        except ValueError as exc:
            raise PersistenceError(f"Invalid workspace list: {exc}", code) from exc

    async def load_workspace(self, workspace_id: str) -> Workspace | None:
        code = PersistenceErrorCode.LOAD_WORKSPACE
        data = await self._call("GET", f"workspaces/{workspace_id}/get", code, allow_404=True)
        if data is None:
            return None
        try:
            return Workspace.model_validate(data)
        except ValueError as exc:
            raise PersistenceError(f"Invalid workspace {workspace_id}: {exc}", code) from exc

    async def create_workspace(
        self,
        workspace_id: str,
        name: str,
        description: str = "",
        variables: dict[str, str] | None = None,
    ) -> Workspace:
        code = PersistenceErrorCode.CREATE_WORKSPACE
        try:
            body = WorkspaceCreate(id=workspace_id, name=name, description=description, variables=variables or {})
        except ValueError as exc:
            raise PersistenceError(f"Invalid workspace {workspace_id!r}: {exc}", code) from exc
        data = await self._call("POST", "workspaces/create", code, json=body.model_dump(mode="json"))
        try:
            return Workspace.model_validate(data)
        except ValueError as exc:
            raise PersistenceError(f"Invalid workspace {workspace_id}: {exc}", code) from exc

    async def update_workspace(self, workspace: Workspace) -> None:
        body = WorkspaceUpdate(name=workspace.name, description=workspace.description, variables=workspace.variables)
        await self._call(
            "POST",
            f"workspaces/{workspace.id}/update",
            PersistenceErrorCode.UPDATE_WORKSPACE,
            json=body.model_dump(mode="json"),
        )

    async def delete_workspace(self, workspace_id: str) -> None:
        if workspace_id == DEFAULT_WORKSPACE_ID:
            raise DefaultWorkspaceError
        await self._call("POST", f"workspaces/{workspace_id}/delete", PersistenceErrorCode.DELETE_WORKSPACE)

    # -- Collections -----------------------------------------------------------

    async def load_collections(self, workspace_id: str) -> dict[str, Folder | HttpRequest]:
        code = PersistenceErrorCode.LOAD_COLLECTIONS
        data = await self._call("GET", f"workspaces/{workspace_id}/collections", code)
        try:
            items = item_list_adapter.validate_python(data or [])
        except ValueError as exc:
            raise PersistenceError(f"Invalid collections for {workspace_id}: {exc}", code) from exc
        return {item.id: item for item in items}

    async def create_folder(self, workspace_id: str, folder: Folder, parent_locator: str | None = None) -> str:
        body = FolderCreate(folder=folder, parent_locator=parent_locator)
        data = await self._call(
            "POST",
            f"workspaces/{workspace_id}/folders/create",
            PersistenceErrorCode.CREATE_FOLDER,
            json=body.model_dump(mode="json"),
        )
        return _locator(data, PersistenceErrorCode.CREATE_FOLDER)

    async def create_request(
        self,
        workspace_id: str,
        request: HttpRequest,
        parent_locator: str | None = None,
    ) -> str:
        body = RequestCreate(request=request, parent_locator=parent_locator)
        data = await self._call(
            "POST",
            f"workspaces/{workspace_id}/requests/create",
            PersistenceErrorCode.CREATE_REQUEST,
            json=body.model_dump(mode="json"),
        )
        return _locator(data, PersistenceErrorCode.CREATE_REQUEST)

    async def update_request(self, request: HttpRequest) -> None:
        if not request.locator:
            msg = f"Request {request.id} has no locator"
            raise PersistenceError(msg, PersistenceErrorCode.LOCATOR_MISSING)
        body = RequestUpdate(request=request)
        await self._call("POST", "items/update", PersistenceErrorCode.UPDATE_REQUEST, json=body.model_dump(mode="json"))

    async def delete_item(self, locator: str) -> None:
        body = ItemDelete(locator=locator)
        await self._call("POST", "items/delete", PersistenceErrorCode.DELETE_ITEM, json=body.model_dump(mode="json"))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _locator(data: Any, code: PersistenceErrorCode) -> str:
    try:
        return LocatorResponse.model_validate(data).locator
    except ValueError as exc:
        raise PersistenceError(f"Invalid locator response: {exc}", code) from exc


def _error_detail(response: httpx.Response) -> str:
    """Extract FastAPI's ``detail`` from an error response, falling back to the status line."""
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    return str(detail) if detail else f"HTTP {response.status_code} {response.reason_phrase}"
