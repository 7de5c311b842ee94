"""Shared test fixtures.

``RecordingBackend`` is an in-memory CollectionBackend that records every
call and can be told to fail specific methods, so store behavior can be
checked without touching disk.  Backend-specific tests use ``tmp_path``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from requestbench.app import app
from requestbench.backends.filesystem import FileSystemBackend
from requestbench.errors import DefaultWorkspaceError, PersistenceError
from requestbench.models.collection import (
    DEFAULT_WORKSPACE_ID,
    Folder,
    HttpRequest,
    Workspace,
    default_workspace,
)
from requestbench.models.enums import PersistenceErrorCode
from requestbench.store import CollectionStore


class RecordingBackend:
    """In-memory backend.  Locators look like ``mem:{workspace_id}:{item_id}``."""

    def __init__(self, *, fail: Iterable[str] = ()) -> None:
        self.fail = set(fail)
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.workspaces: dict[str, Workspace] = {}
        self.records: dict[str, Folder | HttpRequest] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            msg = f"{name} failed"
            raise PersistenceError(msg, PersistenceErrorCode.API_ERROR)

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    # -- Workspaces ------------------------------------------------------------

    async def load_workspaces(self) -> dict[str, Workspace]:
        self._record("load_workspaces")
        self.workspaces.setdefault(DEFAULT_WORKSPACE_ID, default_workspace())
        return {ws_id: ws.model_copy(deep=True) for ws_id, ws in self.workspaces.items()}

    async def load_workspace(self, workspace_id: str) -> Workspace | None:
        self._record("load_workspace", workspace_id)
        workspace = self.workspaces.get(workspace_id)
        return workspace.model_copy(deep=True) if workspace else None

    async def create_workspace(
        self,
        workspace_id: str,
        name: str,
        description: str = "",
        variables: dict[str, str] | None = None,
    ) -> Workspace:
        self._record("create_workspace", workspace_id)
        workspace = Workspace(id=workspace_id, name=name, description=description, variables=variables or {})
        self.workspaces[workspace_id] = workspace
        return workspace

    async def update_workspace(self, workspace: Workspace) -> None:
        self._record("update_workspace", workspace.id)
        self.workspaces[workspace.id] = workspace.model_copy(deep=True)

    async def delete_workspace(self, workspace_id: str) -> None:
        if workspace_id == DEFAULT_WORKSPACE_ID:
            raise DefaultWorkspaceError
        self._record("delete_workspace", workspace_id)
        self.workspaces.pop(workspace_id, None)
        prefix = f"mem:{workspace_id}:"
        for locator in [key for key in self.records if key.startswith(prefix)]:
            del self.records[locator]

    # -- Collections -----------------------------------------------------------

    async def load_collections(self, workspace_id: str) -> dict[str, Folder | HttpRequest]:
        self._record("load_collections", workspace_id)
        prefix = f"mem:{workspace_id}:"
        return {
            item.id: item.model_copy(deep=True) for locator, item in self.records.items() if locator.startswith(prefix)
        }

    async def create_folder(self, workspace_id: str, folder: Folder, parent_locator: str | None = None) -> str:
        self._record("create_folder", workspace_id, folder.id, parent_locator)
        return self._store(workspace_id, folder)

    async def create_request(
        self,
        workspace_id: str,
        request: HttpRequest,
        parent_locator: str | None = None,
    ) -> str:
        self._record("create_request", workspace_id, request.id, parent_locator)
        return self._store(workspace_id, request)

    def _store(self, workspace_id: str, item: Folder | HttpRequest) -> str:
        locator = f"mem:{workspace_id}:{item.id}"
        self.records[locator] = item.model_copy(update={"locator": locator}, deep=True)
        return locator

    async def update_request(self, request: HttpRequest) -> None:
        self._record("update_request", request.id)
        if not request.locator:
            msg = f"Request {request.id} has no locator"
            raise PersistenceError(msg, PersistenceErrorCode.LOCATOR_MISSING)
        self.records[request.locator] = request.model_copy(deep=True)

    async def delete_item(self, locator: str) -> None:
        self._record("delete_item", locator)
        self.records.pop(locator, None)

    async def aclose(self) -> None:
        self._record("aclose")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
async def store(backend: RecordingBackend) -> AsyncIterator[CollectionStore]:
    """A loaded store on the default workspace."""
    collection_store = CollectionStore(backend)
    await collection_store.load()
    yield collection_store


@pytest.fixture
def notifications(store: CollectionStore) -> list[int]:
    """Counts listener calls on ``store``; one entry per notification."""
    fired: list[int] = []
    store.subscribe(lambda: fired.append(1))
    return fired


@pytest.fixture
def make_backend() -> type[RecordingBackend]:
    """The RecordingBackend class, for tests that need a failing instance up front."""
    return RecordingBackend


@pytest.fixture
async def service(tmp_path) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the storage service over a filesystem backend.

    The app lifespan does NOT run under ``ASGITransport``, so the backend is
    set on ``app.state`` directly.
    """
    app.state.backend = FileSystemBackend(tmp_path)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.backend = None
