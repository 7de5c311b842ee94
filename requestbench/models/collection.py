"""Collection entity models.

A workspace owns one collection tree made of folders and requests.  The tree
is stored flat: every item carries a ``parent_id`` back-reference and the
display tree is re-derived on demand by the collection store.

Items also carry an opaque ``locator`` -- the handle a persistence backend
returned when the item was written.  Callers must treat it as a token to pass
back to the same backend, never as a path they can interpret.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from requestbench.models.enums import BodyType, HttpMethod, ItemType

DEFAULT_WORKSPACE_ID = "default"
DEFAULT_WORKSPACE_NAME = "My Workspace"
DEFAULT_WORKSPACE_DESCRIPTION = "Default workspace"


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id(prefix: str) -> str:
    """Generate a fresh, never-reused id such as ``req_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


# -- Workspace ---------------------------------------------------------------


class Workspace(BaseModel):
    """Top-level container with its own variable table."""

    id: str
    name: str
    description: str = ""
    variables: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_default(self) -> bool:
        return self.id == DEFAULT_WORKSPACE_ID


def default_workspace() -> Workspace:
    return Workspace(
        id=DEFAULT_WORKSPACE_ID,
        name=DEFAULT_WORKSPACE_NAME,
        description=DEFAULT_WORKSPACE_DESCRIPTION,
    )


# -- Request components ------------------------------------------------------


class KeyValue(BaseModel):
    """A header or query parameter row."""

    key: str = ""
    value: str = ""
    enabled: bool = True


class RequestBody(BaseModel):
    type: BodyType = BodyType.NONE
    content: str = ""


# -- Items -------------------------------------------------------------------


class _ItemBase(BaseModel):
    id: str
    name: str
    parent_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    locator: str | None = Field(default=None, description="Opaque storage handle; None until persisted.")


class Folder(_ItemBase):
    type: Literal["folder"] = "folder"
    collapsed: bool = Field(default=False, description="Display-only; never affects tree structure.")


class HttpRequest(_ItemBase):
    type: Literal["request"] = "request"
    method: HttpMethod = HttpMethod.GET
    url: str = ""
    headers: list[KeyValue] = Field(default_factory=list)
    params: list[KeyValue] = Field(default_factory=list)
    body: RequestBody = Field(default_factory=RequestBody)


Item = Annotated[Folder | HttpRequest, Field(discriminator="type")]

item_adapter: TypeAdapter[Folder | HttpRequest] = TypeAdapter(Item)
item_list_adapter: TypeAdapter[list[Folder | HttpRequest]] = TypeAdapter(list[Item])


def is_folder(item: Folder | HttpRequest | None) -> bool:
    return item is not None and item.type == ItemType.FOLDER


# -- Tree projection ---------------------------------------------------------


@dataclass
class CollectionNode:
    """One node of the display tree.  Requests always have no children."""

    item: Folder | HttpRequest
    children: list[CollectionNode] = field(default_factory=list)


def iter_tree(nodes: Iterable[CollectionNode], depth: int = 0) -> Iterator[tuple[int, Folder | HttpRequest]]:
    """Pre-order walk yielding ``(depth, item)`` pairs."""
    for node in nodes:
        yield depth, node.item
        yield from iter_tree(node.children, depth + 1)
