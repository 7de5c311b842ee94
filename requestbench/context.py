"""Workbench composition root.

Wires one backend, one CollectionStore and one RequestDispatcher together
for a single process (CLI invocation or embedding application).  Nothing
here is global: callers build a Workbench explicitly and pass it along.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from requestbench.backends import create_backend
from requestbench.execution.dispatcher import RequestDispatcher, create_http_client
from requestbench.store import CollectionStore

if TYPE_CHECKING:
    from requestbench.backends.base import CollectionBackend
    from requestbench.errors import PersistenceError
    from requestbench.models.response import ResponseRecord
    from requestbench.settings import BenchSettings


@dataclass
class Workbench:
    """Live handles for one workbench session."""

    settings: BenchSettings
    backend: CollectionBackend
    store: CollectionStore
    dispatcher: RequestDispatcher

    async def switch_workspace(self, workspace_id: str) -> PersistenceError | None:
        """Abort in-flight sends, then activate *workspace_id*."""
        cancelled = self.dispatcher.cancel_all()
        if cancelled:
            logger.info("Workspace switch: cancelled {} in-flight sends", cancelled)
        return await self.store.set_active_workspace(workspace_id)

    async def send(self, request_id: str, extra_variables: dict[str, str] | None = None) -> ResponseRecord | None:
        """Send a loaded request with the active workspace's variables.

        *extra_variables* override workspace variables for this send only.
        Raises ``LookupError`` if *request_id* is not a loaded request.
        """
        request = self.store.get_item(request_id)
        if request is None or request.type != "request":
            msg = f"Request '{request_id}' not found in workspace '{self.store.active_workspace_id}'"
            raise LookupError(msg)

        variables = {**self.store.variables(), **(extra_variables or {})}
        self.store.set_active_request(request_id)
        return await self.dispatcher.send(request, variables)

    async def aclose(self) -> None:
        await self.dispatcher.aclose()
        await self.backend.aclose()


async def create_workbench(
    settings: BenchSettings,
    *,
    backend: CollectionBackend | None = None,
    dispatcher: RequestDispatcher | None = None,
) -> Workbench:
    """Build a Workbench from settings and load the store.

    A backend load failure is logged by the store; the workbench still
    comes up with an in-memory default workspace.
    """
    backend = backend or create_backend(settings)
    dispatcher = dispatcher or RequestDispatcher(
        create_http_client(
            timeout=settings.request_timeout,
            follow_redirects=settings.follow_redirects,
            verify=settings.verify_ssl,
        )
    )
    store = CollectionStore(backend)
    await store.load()
    logger.info("Workbench ready (backend={}, workspaces={})", settings.backend, len(store.workspaces))
    return Workbench(settings=settings, backend=backend, store=store, dispatcher=dispatcher)
