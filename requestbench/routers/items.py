"""Item endpoints addressed by locator rather than by workspace."""

from __future__ import annotations

from fastapi import APIRouter, status

from requestbench.deps import Backend
from requestbench.models.api import ItemDelete, RequestUpdate

router = APIRouter(prefix="/items", tags=["items"])


@router.post("/update", status_code=status.HTTP_204_NO_CONTENT)
async def update_request(body: RequestUpdate, backend: Backend) -> None:
    """Overwrite a stored request.  The request must carry its locator."""
    await backend.update_request(body.request)


@router.post("/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(body: ItemDelete, backend: Backend) -> None:
    """Delete the item at ``locator``; a folder goes with its contents."""
    await backend.delete_item(body.locator)
