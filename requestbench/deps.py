"""FastAPI dependency injection for the storage backend.

Usage in route handlers::

    @router.get("/things")
    async def list_things(backend: Backend) -> list[Thing]:
        ...

The dependency raises HTTP 503 if no local backend was configured
(``BENCH_BACKEND=remote`` cannot serve storage to itself).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from requestbench.backends.base import CollectionBackend


async def get_backend(request: Request) -> CollectionBackend:
    """Return the backend created during lifespan."""
    backend: CollectionBackend | None = request.app.state.backend
    if backend is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage backend not configured (BENCH_BACKEND must be filesystem or kv).",
        )
    return backend


# -- Annotated type aliases for concise route signatures ---------------------

Backend = Annotated[CollectionBackend, Depends(get_backend)]
"""Annotated dependency: the storage backend serving this process."""
