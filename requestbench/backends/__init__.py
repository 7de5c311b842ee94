"""Persistence backends for workspaces and collections."""

from __future__ import annotations

from typing import TYPE_CHECKING

from requestbench.backends.base import CollectionBackend
from requestbench.backends.filesystem import FileSystemBackend
from requestbench.backends.kv import KeyValueBackend
from requestbench.backends.remote import RemoteBackend
from requestbench.models.enums import BackendKind

if TYPE_CHECKING:
    from requestbench.settings import BenchSettings

__all__ = ["CollectionBackend", "FileSystemBackend", "KeyValueBackend", "RemoteBackend", "create_backend"]


def create_backend(settings: BenchSettings) -> CollectionBackend:
    """Create the backend selected by ``settings.backend``."""
    if settings.backend == BackendKind.KV:
        return KeyValueBackend(settings.resolve_kv_url())
    if settings.backend == BackendKind.REMOTE:
        return RemoteBackend(settings.remote_url, timeout=settings.remote_timeout)
    return FileSystemBackend(settings.data_root, prefix=settings.data_prefix)
