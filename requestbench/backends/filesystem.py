"""Local filesystem collection backend.

Stores each workspace as a directory tree under a unified data root with an
optional namespace prefix::

    {data_root}/{prefix}/workspaces/{workspace_id}/workspace.json
    {data_root}/{prefix}/workspaces/{workspace_id}/{folder}/.folder.json
    {data_root}/{prefix}/workspaces/{workspace_id}/{folder}/{request}.json

When prefix is None, the path collapses to::

    {data_root}/workspaces/{workspace_id}/...

Folders are directories; requests are JSON files.  The directory structure
*is* the parent/child relationship -- ``parent_id`` is never written to disk
and is reconstructed on load.  A request file missing its ``id`` or ``name``
gets a generated id and its file name (without ``.json``) as name.

Locators are POSIX paths relative to the workspaces root, e.g.
``default/Users/Get user.json``.  Locators that resolve outside the root are
rejected.

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.  Writes are
atomic: data is written to a temporary file in the same directory, then
renamed to the target path.
"""

from __future__ import annotations

import contextlib
import json
import os
import shutil
import tempfile
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import Any

from anyio import to_thread
from loguru import logger

from requestbench.errors import DefaultWorkspaceError, PersistenceError
from requestbench.models.collection import (
    DEFAULT_WORKSPACE_DESCRIPTION,
    DEFAULT_WORKSPACE_ID,
    DEFAULT_WORKSPACE_NAME,
    Folder,
    HttpRequest,
    Workspace,
    new_id,
)
from requestbench.models.enums import PersistenceErrorCode

WORKSPACE_FILE = "workspace.json"
FOLDER_FILE = ".folder.json"
RESERVED_NAMES = frozenset({WORKSPACE_FILE, FOLDER_FILE})

_FOLDER_RECORD_FIELDS = {"id", "name", "collapsed", "created_at", "updated_at"}
_REQUEST_RECORD_EXCLUDE = {"locator", "parent_id", "type"}


class FileSystemBackend:
    """Filesystem implementation of the CollectionBackend protocol.

    Layout::

        {base}/workspaces/{workspace_id}/...

    Where ``base`` is ``data_root / prefix`` (or just ``data_root`` if no prefix).
    """

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._root = (base / "workspaces").resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _workspace_dir(self, workspace_id: str) -> Path:
        if not _is_safe_segment(workspace_id):
            msg = f"Invalid workspace id: {workspace_id!r}"
            raise PersistenceError(msg, PersistenceErrorCode.INVALID_LOCATOR)
        return self._root / workspace_id

    def _locator(self, path: Path) -> str:
        return path.relative_to(self._root).as_posix()

    def _resolve(self, locator: str) -> Path:
        """Map a locator back to a path inside a workspace directory."""
        path = (self._root / locator).resolve()
        if not path.is_relative_to(self._root) or len(path.relative_to(self._root).parts) < 2:
            msg = f"Locator outside of a workspace: {locator!r}"
            raise PersistenceError(msg, PersistenceErrorCode.INVALID_LOCATOR)
        return path

    async def _run(self, code: PersistenceErrorCode, what: str, func: Callable[..., Any], *args: Any) -> Any:
        """Run *func* in the thread pool, mapping I/O and parse failures to ``PersistenceError``."""
        try:
            return await to_thread.run_sync(partial(func, *args))
        except PersistenceError:
            raise
        except (OSError, ValueError) as exc:
            msg = f"Failed to {what}: {exc}"
            raise PersistenceError(msg, code) from exc

    # -- Workspaces ------------------------------------------------------------

    async def load_workspaces(self) -> dict[str, Workspace]:
        workspaces = await self._run(
            PersistenceErrorCode.LOAD_WORKSPACES, "load workspaces", self._load_workspaces_sync
        )
        if DEFAULT_WORKSPACE_ID not in workspaces:
            workspaces[DEFAULT_WORKSPACE_ID] = await self.create_workspace(
                DEFAULT_WORKSPACE_ID, DEFAULT_WORKSPACE_NAME, DEFAULT_WORKSPACE_DESCRIPTION
            )
        return workspaces

    def _load_workspaces_sync(self) -> dict[str, Workspace]:
        self._root.mkdir(parents=True, exist_ok=True)
        workspaces: dict[str, Workspace] = {}
        for entry in sorted(self._root.iterdir()):
            if not entry.is_dir():
                continue
            try:
                workspace = _read_workspace(entry / WORKSPACE_FILE)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable workspace {}: {}", entry.name, exc)
                continue
            if workspace is not None:
                workspaces[workspace.id] = workspace
        return workspaces

    async def load_workspace(self, workspace_id: str) -> Workspace | None:
        path = self._workspace_dir(workspace_id) / WORKSPACE_FILE
        return await self._run(
            PersistenceErrorCode.LOAD_WORKSPACE, f"load workspace {workspace_id}", _read_workspace, path
        )

    async def create_workspace(
        self,
        workspace_id: str,
        name: str,
        description: str = "",
        variables: dict[str, str] | None = None,
    ) -> Workspace:
        workspace = Workspace(id=workspace_id, name=name, description=description, variables=variables or {})
        path = self._workspace_dir(workspace_id) / WORKSPACE_FILE
        await self._run(
            PersistenceErrorCode.CREATE_WORKSPACE,
            f"create workspace {workspace_id}",
            _atomic_write,
            path,
            workspace.model_dump_json(indent=2),
        )
        return workspace

    async def update_workspace(self, workspace: Workspace) -> None:
        path = self._workspace_dir(workspace.id) / WORKSPACE_FILE
        await self._run(
            PersistenceErrorCode.UPDATE_WORKSPACE,
            f"update workspace {workspace.id}",
            _atomic_write,
            path,
            workspace.model_dump_json(indent=2),
        )

    async def delete_workspace(self, workspace_id: str) -> None:
        if workspace_id == DEFAULT_WORKSPACE_ID:
            raise DefaultWorkspaceError
        await self._run(
            PersistenceErrorCode.DELETE_WORKSPACE,
            f"delete workspace {workspace_id}",
            _remove,
            self._workspace_dir(workspace_id),
        )

    # -- Collections -----------------------------------------------------------

    async def load_collections(self, workspace_id: str) -> dict[str, Folder | HttpRequest]:
        workspace_dir = self._workspace_dir(workspace_id)
        return await self._run(
            PersistenceErrorCode.LOAD_COLLECTIONS,
            f"load collections for workspace {workspace_id}",
            self._load_collections_sync,
            workspace_dir,
        )

    def _load_collections_sync(self, workspace_dir: Path) -> dict[str, Folder | HttpRequest]:
        items: dict[str, Folder | HttpRequest] = {}
        if workspace_dir.is_dir():
            self._scan(workspace_dir, None, items)
        return items

    def _scan(self, directory: Path, parent_id: str | None, items: dict[str, Folder | HttpRequest]) -> None:
        """Depth-first walk turning directories into folders and JSON files into requests."""
        for entry in sorted(directory.iterdir()):
            if entry.is_dir():
                folder = _read_folder(entry, parent_id, self._locator(entry))
                if folder.id in items:
                    logger.warning("Duplicate folder id {} at {}, assigning a new one", folder.id, entry)
                    folder.id = new_id("folder")
                items[folder.id] = folder
                self._scan(entry, folder.id, items)
            elif entry.suffix == ".json" and entry.name not in RESERVED_NAMES:
                try:
                    request = _read_request(entry, parent_id, self._locator(entry))
                except (OSError, ValueError) as exc:
                    logger.warning("Skipping unreadable request file {}: {}", entry, exc)
                    continue
                if request.id in items:
                    logger.warning("Duplicate request id {} at {}, assigning a new one", request.id, entry)
                    request.id = new_id("req")
                items[request.id] = request

    async def create_folder(self, workspace_id: str, folder: Folder, parent_locator: str | None = None) -> str:
        parent_dir = self._resolve(parent_locator) if parent_locator else self._workspace_dir(workspace_id)
        path = await self._run(
            PersistenceErrorCode.CREATE_FOLDER,
            f"create folder {folder.name}",
            _write_folder,
            parent_dir,
            folder,
        )
        return self._locator(path)

    async def create_request(
        self,
        workspace_id: str,
        request: HttpRequest,
        parent_locator: str | None = None,
    ) -> str:
        parent_dir = self._resolve(parent_locator) if parent_locator else self._workspace_dir(workspace_id)
        path = await self._run(
            PersistenceErrorCode.CREATE_REQUEST,
            f"create request {request.name}",
            _write_new_request,
            parent_dir,
            request,
        )
        return self._locator(path)

    async def update_request(self, request: HttpRequest) -> None:
        if not request.locator:
            msg = f"Request {request.id} has no locator"
            raise PersistenceError(msg, PersistenceErrorCode.LOCATOR_MISSING)
        path = self._resolve(request.locator)
        await self._run(
            PersistenceErrorCode.UPDATE_REQUEST,
            f"update request {request.name}",
            _atomic_write,
            path,
            _request_record(request),
        )

    async def delete_item(self, locator: str) -> None:
        path = self._resolve(locator)
        await self._run(PersistenceErrorCode.DELETE_ITEM, f"delete item at {locator}", _remove, path)

    async def aclose(self) -> None:
        return None


# -- Records -------------------------------------------------------------------


def _is_safe_segment(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


def _safe_name(name: str) -> str:
    """Turn a display name into a single path segment."""
    cleaned = name.replace("/", "_").replace("\\", "_").strip()
    return cleaned if _is_safe_segment(cleaned) else "untitled"


def _unique_path(parent: Path, stem: str, suffix: str = "") -> Path:
    """First free ``stem{suffix}``, ``stem (2){suffix}``, ... inside *parent*."""
    candidate = parent / f"{stem}{suffix}"
    n = 2
    while candidate.exists() or candidate.name in RESERVED_NAMES:
        candidate = parent / f"{stem} ({n}){suffix}"
        n += 1
    return candidate


def _request_record(request: HttpRequest) -> str:
    return request.model_dump_json(indent=2, exclude=_REQUEST_RECORD_EXCLUDE)


def _read_workspace(path: Path) -> Workspace | None:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return Workspace.model_validate_json(raw)


def _read_folder(directory: Path, parent_id: str | None, locator: str) -> Folder:
    """Build a folder from its directory, using ``.folder.json`` when present."""
    record: dict[str, Any] = {}
    meta = directory / FOLDER_FILE
    if meta.is_file():
        try:
            record = json.loads(meta.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable folder metadata {}: {}", meta, exc)
    record = {key: value for key, value in record.items() if key in _FOLDER_RECORD_FIELDS and value}
    record.setdefault("id", new_id("folder"))
    record.setdefault("name", directory.name)
    try:
        return Folder.model_validate({**record, "parent_id": parent_id, "locator": locator})
    except ValueError as exc:
        logger.warning("Ignoring invalid folder metadata {}: {}", meta, exc)
        return Folder(id=new_id("folder"), name=directory.name, parent_id=parent_id, locator=locator)


def _read_request(path: Path, parent_id: str | None, locator: str) -> HttpRequest:
    record = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(record, dict):
        msg = "request record is not an object"
        raise ValueError(msg)
    for key in _REQUEST_RECORD_EXCLUDE:
        record.pop(key, None)
    record["id"] = record.get("id") or new_id("req")
    record["name"] = record.get("name") or path.stem
    return HttpRequest.model_validate({**record, "parent_id": parent_id, "locator": locator})


# -- Sync helpers (run in thread pool) -----------------------------------------


def _write_folder(parent_dir: Path, folder: Folder) -> Path:
    parent_dir.mkdir(parents=True, exist_ok=True)
    path = _unique_path(parent_dir, _safe_name(folder.name))
    path.mkdir()
    _atomic_write(path / FOLDER_FILE, folder.model_dump_json(indent=2, include=_FOLDER_RECORD_FIELDS))
    return path


def _write_new_request(parent_dir: Path, request: HttpRequest) -> Path:
    parent_dir.mkdir(parents=True, exist_ok=True)
    path = _unique_path(parent_dir, _safe_name(request.name), ".json")
    _atomic_write(path, _request_record(request))
    return path


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename.

    Ensures readers never see a partially-written file.  The temp file is
    created in the same directory so ``os.rename`` is atomic on POSIX.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _remove(path: Path) -> None:
    """Remove a file or directory tree.  No-op if path doesn't exist."""
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()
