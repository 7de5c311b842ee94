"""Unit tests for CollectionStore against the in-memory RecordingBackend."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from requestbench.errors import DefaultWorkspaceError, InvalidParentError, WorkspaceNotFoundError
from requestbench.models.collection import DEFAULT_WORKSPACE_ID, Folder, HttpRequest, iter_tree
from requestbench.store import CollectionStore

if TYPE_CHECKING:
    from conftest import RecordingBackend


def _tree_ids(store: CollectionStore) -> list[tuple[int, str]]:
    return [(depth, item.id) for depth, item in iter_tree(store.get_collection_tree())]


# -- Loading -------------------------------------------------------------------


async def test_load_seeds_default_workspace(store: CollectionStore) -> None:
    assert store.active_workspace_id == DEFAULT_WORKSPACE_ID
    assert store.active_workspace.name == "My Workspace"
    assert len(store) == 0


async def test_load_falls_back_to_memory_on_backend_failure(make_backend) -> None:
    store = CollectionStore(make_backend(fail={"load_workspaces"}))

    error = await store.load()

    assert error is not None
    assert list(store.workspaces) == [DEFAULT_WORKSPACE_ID]
    assert store.active_workspace_id == DEFAULT_WORKSPACE_ID


async def test_switch_workspace_failure_yields_empty_collection(backend: RecordingBackend) -> None:
    store = CollectionStore(backend)
    await store.load()
    workspace = await store.create_workspace("Other")
    await store.create_request("Kept in default")

    backend.fail.add("load_collections")
    error = await store.set_active_workspace(workspace.id)

    assert error is not None
    assert store.active_workspace_id == workspace.id
    assert store.items == {}


async def test_switch_to_unknown_workspace_is_a_no_op(store: CollectionStore, notifications: list[int]) -> None:
    assert await store.set_active_workspace("nope") is None
    assert store.active_workspace_id == DEFAULT_WORKSPACE_ID
    assert notifications == []


async def test_switch_reloads_items_from_backend(store: CollectionStore) -> None:
    request = await store.create_request("Ping", url="https://example.com")
    other = await store.create_workspace("Other")

    await store.set_active_workspace(other.id)
    assert request.id not in store

    await store.set_active_workspace(DEFAULT_WORKSPACE_ID)
    assert store.get_item(request.id).url == "https://example.com"


# -- Workspaces ------------------------------------------------------------------


async def test_create_workspace_coerces_variables(store: CollectionStore, backend: RecordingBackend) -> None:
    workspace = await store.create_workspace("API", "staging", {"port": 8080})

    assert workspace.id.startswith("ws_")
    assert workspace.variables == {"port": "8080"}
    assert backend.workspaces[workspace.id].description == "staging"


async def test_update_workspace(store: CollectionStore, backend: RecordingBackend) -> None:
    workspace = await store.create_workspace("Old")
    before = workspace.updated_at

    updated = await store.update_workspace(workspace.id, name="New")

    assert updated.name == "New"
    assert updated.updated_at >= before
    assert backend.workspaces[workspace.id].name == "New"


async def test_update_unknown_workspace_raises(store: CollectionStore) -> None:
    with pytest.raises(WorkspaceNotFoundError):
        await store.update_workspace("missing", name="x")


async def test_default_workspace_cannot_be_deleted(store: CollectionStore, notifications: list[int]) -> None:
    with pytest.raises(DefaultWorkspaceError, match="Cannot delete default workspace"):
        await store.delete_workspace(DEFAULT_WORKSPACE_ID)

    assert DEFAULT_WORKSPACE_ID in store.workspaces
    assert notifications == []


async def test_delete_unknown_workspace_raises(store: CollectionStore) -> None:
    with pytest.raises(WorkspaceNotFoundError):
        await store.delete_workspace("missing")


async def test_delete_active_workspace_falls_back_to_default(store: CollectionStore, backend: RecordingBackend) -> None:
    kept = await store.create_request("Kept")
    workspace = await store.create_workspace("Scratch")
    await store.set_active_workspace(workspace.id)
    await store.create_request("Gone")

    await store.delete_workspace(workspace.id)

    assert workspace.id not in store.workspaces
    assert store.active_workspace_id == DEFAULT_WORKSPACE_ID
    assert list(store.items) == [kept.id]
    assert backend.calls_to("delete_workspace") == [(workspace.id,)]


# -- Items -----------------------------------------------------------------------


async def test_tree_round_trip(store: CollectionStore) -> None:
    folder = await store.create_folder("Users")
    request = await store.create_request("List users", parent_id=folder.id)

    tree = store.get_collection_tree()

    assert len(tree) == 1
    assert tree[0].item.id == folder.id
    assert [child.item.id for child in tree[0].children] == [request.id]
    assert tree[0].children[0].children == []


async def test_tree_orders_folders_first_then_name(store: CollectionStore) -> None:
    zeta = await store.create_request("zeta")
    beta = await store.create_folder("beta")
    alpha = await store.create_request("Alpha")
    gamma = await store.create_folder("Gamma")

    root_ids = [node.item.id for node in store.get_collection_tree()]

    # Case-sensitive: uppercase sorts before lowercase.
    assert root_ids == [gamma.id, beta.id, alpha.id, zeta.id]


async def test_tree_is_idempotent(store: CollectionStore) -> None:
    folder = await store.create_folder("A")
    await store.create_request("r", parent_id=folder.id)

    assert store.get_collection_tree() == store.get_collection_tree()


async def test_orphans_surface_at_root(store: CollectionStore) -> None:
    store.import_data(
        {
            "collections": {
                "req_orphan": {"type": "request", "id": "req_orphan", "name": "Orphan", "parent_id": "folder_gone"},
            }
        }
    )

    assert _tree_ids(store) == [(0, "req_orphan")]


async def test_duplicate_sibling_names_are_allowed(store: CollectionStore) -> None:
    first = await store.create_request("Same")
    second = await store.create_request("Same")

    assert first.id != second.id
    assert len(store.get_collection_tree()) == 2


async def test_create_records_locator(store: CollectionStore, backend: RecordingBackend) -> None:
    folder = await store.create_folder("Users")
    request = await store.create_request("Get", parent_id=folder.id)

    assert folder.locator == f"mem:default:{folder.id}"
    assert backend.calls_to("create_request") == [("default", request.id, folder.locator)]


async def test_invalid_parent_is_rejected_without_mutation(store: CollectionStore, notifications: list[int]) -> None:
    request = await store.create_request("Leaf")
    notifications.clear()

    with pytest.raises(InvalidParentError):
        await store.create_folder("Child", parent_id="folder_missing")
    with pytest.raises(InvalidParentError, match="requests cannot have children"):
        await store.create_request("Child", parent_id=request.id)

    assert len(store) == 1
    assert notifications == []


async def test_persistence_failure_keeps_item_in_memory(make_backend) -> None:
    backend = make_backend(fail={"create_folder", "create_request"})
    store = CollectionStore(backend)
    await store.load()

    folder = await store.create_folder("Offline")
    request = await store.create_request("Offline request")

    assert folder.id in store
    assert request.id in store
    assert folder.locator is None
    assert backend.records == {}


async def test_child_of_unpersisted_parent_is_not_persisted(make_backend) -> None:
    backend = make_backend(fail={"create_folder"})
    store = CollectionStore(backend)
    await store.load()
    folder = await store.create_folder("Offline")

    request = await store.create_request("Child", parent_id=folder.id)

    assert request.id in store
    assert backend.calls_to("create_request") == []


async def test_update_request_merges_fields(store: CollectionStore, backend: RecordingBackend) -> None:
    request = await store.create_request("Get", url="https://a.test")

    updated = await store.update_request(request.id, {"url": "https://b.test", "method": "POST"})

    assert updated.url == "https://b.test"
    assert updated.method == "POST"
    assert updated.updated_at >= request.updated_at
    assert store.get_item(request.id) is updated
    assert backend.records[request.locator].url == "https://b.test"


async def test_update_request_ignores_identity_fields(store: CollectionStore) -> None:
    request = await store.create_request("Get")

    updated = await store.update_request(request.id, id="other", locator="elsewhere", name="Renamed")

    assert updated.id == request.id
    assert updated.locator == request.locator
    assert updated.name == "Renamed"


async def test_update_request_validates_new_parent(store: CollectionStore) -> None:
    folder = await store.create_folder("Target")
    request = await store.create_request("Mover")

    with pytest.raises(InvalidParentError):
        await store.update_request(request.id, parent_id="folder_missing")
    moved = await store.update_request(request.id, parent_id=folder.id)

    assert moved.parent_id == folder.id
    assert _tree_ids(store) == [(0, folder.id), (1, request.id)]


async def test_update_request_unknown_or_folder_returns_none(store: CollectionStore) -> None:
    folder = await store.create_folder("F")

    assert await store.update_request("req_missing", url="x") is None
    assert await store.update_request(folder.id, url="x") is None


async def test_update_request_failure_keeps_memory(store: CollectionStore, backend: RecordingBackend) -> None:
    request = await store.create_request("Get", url="https://a.test")
    backend.fail.add("update_request")

    updated = await store.update_request(request.id, url="https://b.test")

    assert updated.url == "https://b.test"
    assert store.get_item(request.id).url == "https://b.test"


async def test_set_folder_collapsed_is_memory_only(store: CollectionStore, backend: RecordingBackend) -> None:
    folder = await store.create_folder("F")
    backend.calls.clear()

    assert store.set_folder_collapsed(folder.id, True).collapsed is True
    assert backend.calls == []
    assert store.set_folder_collapsed("folder_missing", True) is None


# -- Cascade delete ----------------------------------------------------------------


async def _build_depth_three(store: CollectionStore) -> dict[str, Folder | HttpRequest]:
    top = await store.create_folder("top")
    middle = await store.create_folder("middle", parent_id=top.id)
    bottom = await store.create_folder("bottom", parent_id=middle.id)
    leaf_top = await store.create_request("leaf-top", parent_id=top.id)
    leaf_bottom = await store.create_request("leaf-bottom", parent_id=bottom.id)
    outside = await store.create_request("outside")
    return {
        "top": top,
        "middle": middle,
        "bottom": bottom,
        "leaf_top": leaf_top,
        "leaf_bottom": leaf_bottom,
        "outside": outside,
    }


async def test_cascade_delete_removes_whole_subtree(store: CollectionStore) -> None:
    items = await _build_depth_three(store)
    before = len(store)

    assert await store.delete_item(items["top"].id) is True

    # top + middle + bottom + two leaves
    assert len(store) == before - 5
    assert list(store.items) == [items["outside"].id]


async def test_cascade_delete_is_post_order(store: CollectionStore, backend: RecordingBackend) -> None:
    items = await _build_depth_three(store)

    await store.delete_item(items["middle"].id)

    deleted = [args[0] for args in backend.calls_to("delete_item")]
    assert len(deleted) == 3
    position = {locator: index for index, locator in enumerate(deleted)}
    assert position[items["leaf_bottom"].locator] < position[items["bottom"].locator]
    assert position[items["bottom"].locator] < position[items["middle"].locator]
    assert items["top"].id in store


async def test_cascade_delete_survives_backend_failures(store: CollectionStore, backend: RecordingBackend) -> None:
    items = await _build_depth_three(store)
    backend.fail.add("delete_item")

    await store.delete_item(items["top"].id)

    assert len(backend.calls_to("delete_item")) == 5
    assert items["top"].id not in store
    assert items["leaf_bottom"].id not in store


async def test_delete_clears_active_request(store: CollectionStore) -> None:
    folder = await store.create_folder("F")
    request = await store.create_request("r", parent_id=folder.id)
    store.set_active_request(request.id)

    await store.delete_item(folder.id)

    assert store.active_request is None


async def test_delete_missing_item_returns_false(store: CollectionStore, notifications: list[int]) -> None:
    assert await store.delete_item("req_missing") is False
    assert notifications == []


async def test_delete_during_pending_create_reaches_storage(make_backend) -> None:
    release = asyncio.Event()

    class SlowCreateBackend(make_backend):
        async def create_request(self, workspace_id, request, parent_locator=None):
            await release.wait()
            return await super().create_request(workspace_id, request, parent_locator)

    backend = SlowCreateBackend()
    store = CollectionStore(backend)
    await store.load()

    creating = asyncio.create_task(store.create_request("r"))
    await asyncio.sleep(0)
    (request_id,) = store.items
    assert await store.delete_item(request_id) is True

    release.set()
    await creating

    assert store.items == {}
    assert backend.records == {}
    assert backend.calls_to("delete_item") == [(f"mem:default:{request_id}",)]

    await store.set_active_workspace(DEFAULT_WORKSPACE_ID)
    assert request_id not in store


# -- Variables -------------------------------------------------------------------


async def test_variables(store: CollectionStore, backend: RecordingBackend) -> None:
    await store.set_variable(DEFAULT_WORKSPACE_ID, "port", 8080)

    assert store.get_variable(DEFAULT_WORKSPACE_ID, "port") == "8080"
    assert backend.workspaces[DEFAULT_WORKSPACE_ID].variables == {"port": "8080"}
    assert store.get_variable(DEFAULT_WORKSPACE_ID, "missing") is None
    assert store.get_variable("ws_missing", "port") is None

    assert await store.delete_variable(DEFAULT_WORKSPACE_ID, "port") is True
    assert await store.delete_variable(DEFAULT_WORKSPACE_ID, "port") is False
    assert store.variables() == {}


async def test_set_variable_unknown_workspace_raises(store: CollectionStore) -> None:
    with pytest.raises(WorkspaceNotFoundError):
        await store.set_variable("ws_missing", "key", "value")


# -- Notification ----------------------------------------------------------------


async def test_each_mutation_notifies_once(store: CollectionStore, notifications: list[int]) -> None:
    folder = await store.create_folder("F")
    assert len(notifications) == 1

    request = await store.create_request("r", parent_id=folder.id)
    await store.update_request(request.id, url="https://example.com")
    store.set_active_request(request.id)
    await store.delete_item(folder.id)
    await store.set_variable(DEFAULT_WORKSPACE_ID, "k", "v")

    assert len(notifications) == 6


async def test_failing_listener_does_not_stop_fan_out(store: CollectionStore) -> None:
    seen: list[str] = []

    def broken() -> None:
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(lambda: seen.append("ok"))

    await store.create_request("r")

    assert seen == ["ok"]


async def test_unsubscribe(store: CollectionStore) -> None:
    seen: list[int] = []
    unsubscribe = store.subscribe(lambda: seen.append(1))

    unsubscribe()
    unsubscribe()
    await store.create_request("r")

    assert seen == []


# -- Snapshot --------------------------------------------------------------------


async def test_export_import_round_trip(store: CollectionStore, backend: RecordingBackend) -> None:
    folder = await store.create_folder("F")
    request = await store.create_request("r", parent_id=folder.id)
    store.set_active_request(request.id)
    snapshot = store.export_data()

    fresh = CollectionStore(backend)
    fresh.import_data(snapshot)

    assert fresh.active_request_id == request.id
    assert isinstance(fresh.get_item(request.id), HttpRequest)
    assert fresh.export_data() == snapshot


async def test_store_works_when_every_backend_call_fails(make_backend) -> None:
    everything = {
        "load_workspaces",
        "load_workspace",
        "create_workspace",
        "update_workspace",
        "delete_workspace",
        "load_collections",
        "create_folder",
        "create_request",
        "update_request",
        "delete_item",
    }
    store = CollectionStore(make_backend(fail=everything))
    await store.load()

    request = await store.create_request("r", "GET", "", None)

    assert request.id.startswith("req_")
    assert request.id in store
    assert _tree_ids(store) == [(0, request.id)]
