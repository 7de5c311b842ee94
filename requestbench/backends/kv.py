"""Embedded key-value collection backend.

Keeps every workspace and item as one JSON value in a single SQLite table
(see ``db/tables.py``), addressed by key::

    workspace:{workspace_id}
    item:{workspace_id}:{item_id}

There is no directory hierarchy to encode parentage, so ``parent_id`` is
stored inside the item value.  When a parent locator is passed to
``create_folder`` / ``create_request`` it wins over the entity's own
``parent_id``.  An item's key is its locator.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from requestbench.db.engine import create_engine, create_session_factory
from requestbench.db.tables import Base, StorageEntry
from requestbench.errors import DefaultWorkspaceError, PersistenceError
from requestbench.models.collection import (
    DEFAULT_WORKSPACE_DESCRIPTION,
    DEFAULT_WORKSPACE_ID,
    DEFAULT_WORKSPACE_NAME,
    Folder,
    HttpRequest,
    Workspace,
    item_adapter,
)
from requestbench.models.enums import PersistenceErrorCode

WORKSPACE_PREFIX = "workspace:"
ITEM_PREFIX = "item:"


def workspace_key(workspace_id: str) -> str:
    return f"{WORKSPACE_PREFIX}{workspace_id}"


def item_key(workspace_id: str, item_id: str) -> str:
    return f"{ITEM_PREFIX}{workspace_id}:{item_id}"


def _item_prefix(workspace_id: str) -> str:
    return f"{ITEM_PREFIX}{workspace_id}:"


class KeyValueBackend:
    """SQLite (via SQLAlchemy + aiosqlite) implementation of the CollectionBackend protocol."""

    def __init__(self, database_url: str | None = None, *, engine: AsyncEngine | None = None) -> None:
        if engine is None:
            if database_url is None:
                msg = "Either database_url or engine is required"
                raise ValueError(msg)
            engine = create_engine(database_url)
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._schema_ready = False

    @asynccontextmanager
    async def _session(self, code: PersistenceErrorCode, what: str) -> AsyncIterator[AsyncSession]:
        """Yield a DB session, mapping database and decode failures to ``PersistenceError``."""
        try:
            if not self._schema_ready:
                async with self._engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                self._schema_ready = True
            async with self._session_factory() as db:
                yield db
        except PersistenceError:
            raise
        except (SQLAlchemyError, ValueError) as exc:
            msg = f"Failed to {what}: {exc}"
            raise PersistenceError(msg, code) from exc

    async def _put(self, db: AsyncSession, key: str, value: dict) -> None:
        await db.merge(StorageEntry(key=key, value=value))
        await db.commit()

    # -- Workspaces ------------------------------------------------------------

    async def load_workspaces(self) -> dict[str, Workspace]:
        async with self._session(PersistenceErrorCode.LOAD_WORKSPACES, "load workspaces") as db:
            stmt = select(StorageEntry).where(StorageEntry.key.startswith(WORKSPACE_PREFIX, autoescape=True))
            rows = (await db.execute(stmt)).scalars().all()
            workspaces = {ws.id: ws for ws in (Workspace.model_validate(row.value) for row in rows)}

        if DEFAULT_WORKSPACE_ID not in workspaces:
            workspaces[DEFAULT_WORKSPACE_ID] = await self.create_workspace(
                DEFAULT_WORKSPACE_ID, DEFAULT_WORKSPACE_NAME, DEFAULT_WORKSPACE_DESCRIPTION
            )
        return workspaces

    async def load_workspace(self, workspace_id: str) -> Workspace | None:
        async with self._session(PersistenceErrorCode.LOAD_WORKSPACE, f"load workspace {workspace_id}") as db:
            row = await db.get(StorageEntry, workspace_key(workspace_id))
            return Workspace.model_validate(row.value) if row is not None else None

    async def create_workspace(
        self,
        workspace_id: str,
        name: str,
        description: str = "",
        variables: dict[str, str] | None = None,
    ) -> Workspace:
        workspace = Workspace(id=workspace_id, name=name, description=description, variables=variables or {})
        async with self._session(PersistenceErrorCode.CREATE_WORKSPACE, f"create workspace {workspace_id}") as db:
            await self._put(db, workspace_key(workspace_id), workspace.model_dump(mode="json"))
        return workspace

    async def update_workspace(self, workspace: Workspace) -> None:
        async with self._session(PersistenceErrorCode.UPDATE_WORKSPACE, f"update workspace {workspace.id}") as db:
            await self._put(db, workspace_key(workspace.id), workspace.model_dump(mode="json"))

    async def delete_workspace(self, workspace_id: str) -> None:
        if workspace_id == DEFAULT_WORKSPACE_ID:
            raise DefaultWorkspaceError
        async with self._session(PersistenceErrorCode.DELETE_WORKSPACE, f"delete workspace {workspace_id}") as db:
            stmt = delete(StorageEntry).where(
                or_(
                    StorageEntry.key == workspace_key(workspace_id),
                    StorageEntry.key.startswith(_item_prefix(workspace_id), autoescape=True),
                )
            )
            await db.execute(stmt)
            await db.commit()

    # -- Collections -----------------------------------------------------------

    async def load_collections(self, workspace_id: str) -> dict[str, Folder | HttpRequest]:
        what = f"load collections for workspace {workspace_id}"
        async with self._session(PersistenceErrorCode.LOAD_COLLECTIONS, what) as db:
            stmt = select(StorageEntry).where(
                StorageEntry.key.startswith(_item_prefix(workspace_id), autoescape=True)
            )
            rows = (await db.execute(stmt)).scalars().all()

        items: dict[str, Folder | HttpRequest] = {}
        for row in rows:
            try:
                item = item_adapter.validate_python(row.value)
            except ValueError as exc:
                msg = f"Failed to {what}: invalid record {row.key}: {exc}"
                raise PersistenceError(msg, PersistenceErrorCode.LOAD_COLLECTIONS) from exc
            item.locator = row.key
            items[item.id] = item
        return items

    async def create_folder(self, workspace_id: str, folder: Folder, parent_locator: str | None = None) -> str:
        return await self._create_item(PersistenceErrorCode.CREATE_FOLDER, workspace_id, folder, parent_locator)

    async def create_request(
        self,
        workspace_id: str,
        request: HttpRequest,
        parent_locator: str | None = None,
    ) -> str:
        return await self._create_item(PersistenceErrorCode.CREATE_REQUEST, workspace_id, request, parent_locator)

    async def _create_item(
        self,
        code: PersistenceErrorCode,
        workspace_id: str,
        item: Folder | HttpRequest,
        parent_locator: str | None,
    ) -> str:
        parent_id = self._item_id(parent_locator) if parent_locator else None
        key = item_key(workspace_id, item.id)
        value = item.model_dump(mode="json", exclude={"locator"})
        value["parent_id"] = parent_id
        async with self._session(code, f"create {item.type} {item.name}") as db:
            await self._put(db, key, value)
        return key

    async def update_request(self, request: HttpRequest) -> None:
        if not request.locator:
            msg = f"Request {request.id} has no locator"
            raise PersistenceError(msg, PersistenceErrorCode.LOCATOR_MISSING)
        self._item_id(request.locator)
        async with self._session(PersistenceErrorCode.UPDATE_REQUEST, f"update request {request.name}") as db:
            await self._put(db, request.locator, request.model_dump(mode="json", exclude={"locator"}))

    async def delete_item(self, locator: str) -> None:
        self._item_id(locator)
        async with self._session(PersistenceErrorCode.DELETE_ITEM, f"delete item at {locator}") as db:
            await db.execute(delete(StorageEntry).where(StorageEntry.key == locator))
            await db.commit()

    @staticmethod
    def _item_id(locator: str) -> str:
        """Extract the item id from an item key, rejecting anything else."""
        parts = locator.split(":", 2)
        if len(parts) != 3 or f"{parts[0]}:" != ITEM_PREFIX or not parts[2]:
            msg = f"Not an item locator: {locator!r}"
            raise PersistenceError(msg, PersistenceErrorCode.INVALID_LOCATOR)
        return parts[2]

    async def aclose(self) -> None:
        await self._engine.dispose()
