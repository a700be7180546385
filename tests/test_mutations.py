import asyncio
import random

import pytest

from convostack.tree.errors import (
    CyclicMoveError,
    FolderLimitError,
    FolderNotFound,
    RemoteFailure,
    ValidationError,
)
from convostack.tree.graph import Folder, FolderGraph
from convostack.tree.mutations import MutationCoordinator, MutationState
from convostack.tree.notifications import LEVEL_ERROR, LEVEL_SUCCESS
from convostack.tree.remote import DeletePolicy


def _coordinator(store, *rows, **kwargs):
    graph = FolderGraph(
        Folder(id=folder_id, name=name, parent_id=parent_id)
        for folder_id, name, parent_id in rows
    )
    return MutationCoordinator(graph, store, **kwargs)


def _pending_ids(coordinator):
    return [folder.id for folder in coordinator.graph.all() if folder.pending]


def test_create_swaps_provisional_id_for_server_id(fake_store):
    coordinator = _coordinator(fake_store, ("root", "Root", None))

    folder = asyncio.run(coordinator.create("  Research  ", "root"))

    assert folder.id == "srv-1"
    assert folder.name == "Research"
    assert folder.pending is False
    assert coordinator.graph.get("srv-1").parent_id == "root"
    assert _pending_ids(coordinator) == []
    assert fake_store.calls == [("create_folder", "root", "Research")]
    assert coordinator.notifier.messages(LEVEL_SUCCESS) == ["Folder created successfully"]


def test_create_inserts_provisional_folder_before_remote_returns(fake_store):
    async def scenario():
        coordinator = _coordinator(fake_store)
        gate = fake_store.hold("create_folder")
        task = asyncio.create_task(coordinator.create("Drafts"))
        await asyncio.sleep(0)

        provisional = _pending_ids(coordinator)
        assert len(provisional) == 1
        assert provisional[0].startswith("temp-")
        assert coordinator.has_pending

        gate.set()
        await task
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.graph.ids() == {"srv-1"}
    assert not coordinator.has_pending


def test_create_failure_removes_provisional_folder(fake_store):
    coordinator = _coordinator(fake_store, ("root", "Root", None))
    before = coordinator.graph.snapshot()
    fake_store.fail("create_folder")

    with pytest.raises(RemoteFailure):
        asyncio.run(coordinator.create("Doomed", "root"))

    assert coordinator.graph.snapshot() == before
    assert coordinator.notifier.messages(LEVEL_ERROR) == ["Failed to create folder"]
    assert coordinator.history[-1].state == MutationState.ROLLED_BACK


def test_folder_limit_message_is_shown_as_is(fake_store):
    coordinator = _coordinator(fake_store)
    fake_store.fail(
        "create_folder",
        FolderLimitError("Free tier users are limited to 5 folders", status_code=403),
    )

    with pytest.raises(FolderLimitError):
        asyncio.run(coordinator.create("One too many"))

    assert len(coordinator.graph) == 0
    assert coordinator.notifier.messages(LEVEL_ERROR) == [
        "Free tier users are limited to 5 folders"
    ]


@pytest.mark.parametrize("name", ["", "   ", "\t\n", None])
def test_blank_names_are_rejected_without_side_effects(fake_store, name):
    coordinator = _coordinator(fake_store, ("a", "Alpha", None))
    before = coordinator.graph.snapshot()

    with pytest.raises(ValidationError):
        asyncio.run(coordinator.create(name))
    with pytest.raises(ValidationError):
        asyncio.run(coordinator.rename("a", name))

    assert coordinator.graph.snapshot() == before
    assert fake_store.calls == []
    assert coordinator.notifier.messages(LEVEL_ERROR) == [
        "Folder name cannot be empty",
        "Folder name cannot be empty",
    ]


def test_long_names_are_rejected(fake_store):
    coordinator = _coordinator(fake_store, max_name_length=5)

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(coordinator.create("Too long"))

    assert str(excinfo.value) == "Folder name cannot exceed 5 characters"
    assert fake_store.calls == []


def test_create_under_unknown_parent(fake_store):
    coordinator = _coordinator(fake_store)

    with pytest.raises(FolderNotFound):
        asyncio.run(coordinator.create("Child", "nowhere"))

    assert fake_store.calls == []
    assert coordinator.notifier.messages(LEVEL_ERROR) == ["Parent folder was not found"]


def test_rename_success_and_rollback(fake_store):
    coordinator = _coordinator(fake_store, ("a", "Alpha", None))

    asyncio.run(coordinator.rename("a", "Beta"))
    assert coordinator.graph.get("a").name == "Beta"

    fake_store.fail("rename_folder")
    with pytest.raises(RemoteFailure):
        asyncio.run(coordinator.rename("a", "Gamma"))

    assert coordinator.graph.get("a").name == "Beta"
    assert coordinator.notifier.messages(LEVEL_ERROR) == ["Failed to rename folder"]


def test_rename_to_same_name_skips_the_store(fake_store):
    coordinator = _coordinator(fake_store, ("a", "Alpha", None))

    asyncio.run(coordinator.rename("a", " Alpha "))

    assert fake_store.calls == []
    assert len(coordinator.history) == 0


def test_rename_unknown_folder(fake_store):
    coordinator = _coordinator(fake_store)

    with pytest.raises(FolderNotFound):
        asyncio.run(coordinator.rename("ghost", "Name"))

    assert coordinator.notifier.messages(LEVEL_ERROR) == ["Folder not found"]


def test_move_rollback_restores_previous_graph(fake_store):
    coordinator = _coordinator(
        fake_store,
        ("a", "A", None),
        ("b", "B", None),
        ("c", "C", "a"),
    )
    before = coordinator.graph.snapshot()
    fake_store.fail("move_folder")

    with pytest.raises(RemoteFailure):
        asyncio.run(coordinator.move("c", "b"))

    assert coordinator.graph.snapshot() == before
    assert [folder.id for folder in coordinator.graph.children("a")] == ["c"]
    assert coordinator.notifier.messages(LEVEL_ERROR) == ["Failed to move folder"]


def test_cyclic_move_is_refused_before_the_store(fake_store):
    coordinator = _coordinator(
        fake_store,
        ("a", "A", None),
        ("b", "B", "a"),
        ("c", "C", "b"),
    )
    before = coordinator.graph.snapshot()

    with pytest.raises(CyclicMoveError):
        asyncio.run(coordinator.move("a", "c"))

    assert coordinator.graph.snapshot() == before
    assert coordinator.graph.get("b").parent_id == "a"
    assert fake_store.calls == []
    assert coordinator.notifier.messages(LEVEL_ERROR) == [
        "Cannot move a folder into its own subfolder"
    ]


def test_move_to_root(fake_store):
    coordinator = _coordinator(fake_store, ("a", "A", None), ("b", "B", "a"))

    moved = asyncio.run(coordinator.move("b", None))

    assert moved.parent_id is None
    assert fake_store.calls == [("move_folder", "b", None)]


def test_cascade_delete_and_rollback(fake_store):
    rows = [
        ("a", "A", None),
        ("b", "B", "a"),
        ("c", "C", "b"),
        ("d", "D", None),
    ]
    coordinator = _coordinator(fake_store, *rows)
    before = coordinator.graph.snapshot()

    fake_store.fail("delete_folder")
    with pytest.raises(RemoteFailure):
        asyncio.run(coordinator.delete("a"))
    assert coordinator.graph.snapshot() == before

    removed = asyncio.run(coordinator.delete("a"))
    assert {folder.id for folder in removed} == {"a", "b", "c"}
    assert coordinator.graph.ids() == {"d"}
    assert fake_store.calls[-1] == ("delete_folder", "a", DeletePolicy.CASCADE)


def test_reparent_delete_and_rollback(fake_store):
    coordinator = _coordinator(
        fake_store,
        ("a", "A", None),
        ("b", "B", "a"),
        ("c", "C", "b"),
        ("d", "D", "b"),
    )
    before = coordinator.graph.snapshot()

    fake_store.fail("delete_folder")
    with pytest.raises(RemoteFailure):
        asyncio.run(coordinator.delete("b", policy="reparent"))
    assert coordinator.graph.snapshot() == before

    asyncio.run(coordinator.delete("b", policy=DeletePolicy.REPARENT))
    assert "b" not in coordinator.graph
    assert [folder.id for folder in coordinator.graph.children("a")] == ["c", "d"]
    assert fake_store.calls[-1] == ("delete_folder", "b", DeletePolicy.REPARENT)


def test_mutations_on_one_folder_run_in_order(fake_store):
    async def scenario():
        coordinator = _coordinator(fake_store, ("a", "Alpha", None))
        gate = fake_store.hold("rename_folder")
        first = asyncio.create_task(coordinator.rename("a", "One"))
        second = asyncio.create_task(coordinator.rename("a", "Two"))
        await asyncio.sleep(0)

        assert fake_store.calls == [("rename_folder", "a", "One")]
        assert coordinator.graph.get("a").name == "One"

        gate.set()
        await asyncio.gather(first, second)
        return coordinator

    coordinator = asyncio.run(scenario())

    assert fake_store.calls == [
        ("rename_folder", "a", "One"),
        ("rename_folder", "a", "Two"),
    ]
    assert coordinator.graph.get("a").name == "Two"
    assert coordinator._locks == {}


def test_child_of_pending_folder_waits_for_server_id(fake_store):
    async def scenario():
        coordinator = _coordinator(fake_store)
        gate = fake_store.hold("create_folder")
        parent_task = asyncio.create_task(coordinator.create("Parent"))
        await asyncio.sleep(0)
        (temp_id,) = _pending_ids(coordinator)

        child_task = asyncio.create_task(coordinator.create("Child", temp_id))
        await asyncio.sleep(0)
        assert fake_store.call_names() == ["create_folder"]

        gate.set()
        parent, child = await asyncio.gather(parent_task, child_task)
        return coordinator, parent, child

    coordinator, parent, child = asyncio.run(scenario())

    assert parent.id == "srv-1"
    assert child.parent_id == "srv-1"
    assert fake_store.calls[-1] == ("create_folder", "srv-1", "Child")
    assert [folder.id for folder in coordinator.graph.children("srv-1")] == [child.id]


def test_operation_on_failed_provisional_folder(fake_store):
    async def scenario():
        coordinator = _coordinator(fake_store)
        gate = fake_store.hold("create_folder")
        fake_store.fail("create_folder")
        parent_task = asyncio.create_task(coordinator.create("Parent"))
        await asyncio.sleep(0)
        (temp_id,) = _pending_ids(coordinator)

        rename_task = asyncio.create_task(coordinator.rename(temp_id, "Renamed"))
        await asyncio.sleep(0)
        gate.set()
        return await asyncio.gather(parent_task, rename_task, return_exceptions=True)

    parent_result, rename_result = asyncio.run(scenario())

    assert isinstance(parent_result, RemoteFailure)
    assert isinstance(rename_result, FolderNotFound)
    assert fake_store.call_names() == ["create_folder"]


def test_remote_timeout_rolls_back(fake_store):
    async def scenario():
        coordinator = _coordinator(
            fake_store, ("a", "Alpha", None), remote_timeout=0.01
        )
        fake_store.hold("rename_folder")
        with pytest.raises(RemoteFailure) as excinfo:
            await coordinator.rename("a", "Slow")
        return coordinator, excinfo.value

    coordinator, error = asyncio.run(scenario())

    assert "timed out" in str(error)
    assert coordinator.graph.get("a").name == "Alpha"
    assert coordinator.notifier.messages(LEVEL_ERROR) == ["Failed to rename folder"]


def test_history_records_outcomes(fake_store):
    coordinator = _coordinator(fake_store, ("a", "Alpha", None))

    asyncio.run(coordinator.rename("a", "Beta"))
    fake_store.fail("rename_folder")
    with pytest.raises(RemoteFailure):
        asyncio.run(coordinator.rename("a", "Gamma"))

    states = [(row.kind, row.state) for row in coordinator.history]
    assert states == [
        ("rename", MutationState.COMMITTED),
        ("rename", MutationState.ROLLED_BACK),
    ]
    assert coordinator.history[-1].error == "rename_folder rejected"
    assert coordinator.pending == []


def test_move_rollback_into_deleted_parent_lands_at_root(fake_store):
    async def scenario():
        coordinator = _coordinator(
            fake_store,
            ("a", "A", None),
            ("b", "B", None),
            ("c", "C", "a"),
        )
        gate = fake_store.hold("move_folder")
        fake_store.fail("move_folder")
        move_task = asyncio.create_task(coordinator.move("c", "b"))
        await asyncio.sleep(0)

        await coordinator.delete("a")
        gate.set()
        with pytest.raises(RemoteFailure):
            await move_task
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.graph.get("c").parent_id is None
    assert coordinator.graph.ids() == {"b", "c"}
    assert coordinator.needs_refresh is True


def test_delete_waits_for_rename_inside_its_subtree(fake_store):
    async def scenario():
        coordinator = _coordinator(fake_store, ("a", "A", None), ("b", "B", "a"))
        gate = fake_store.hold("rename_folder")
        rename_task = asyncio.create_task(coordinator.rename("b", "Renamed"))
        await asyncio.sleep(0)

        delete_task = asyncio.create_task(coordinator.delete("a"))
        await asyncio.sleep(0)
        assert fake_store.call_names() == ["rename_folder"]

        gate.set()
        await asyncio.gather(rename_task, delete_task)
        return coordinator

    coordinator = asyncio.run(scenario())

    assert len(coordinator.graph) == 0
    assert fake_store.call_names() == ["rename_folder", "delete_folder"]
    assert coordinator._locks == {}


def test_failed_rename_and_failed_parent_delete_restore_the_graph(fake_store):
    async def scenario():
        coordinator = _coordinator(fake_store, ("a", "A", None), ("b", "B", "a"))
        before = coordinator.graph.snapshot()
        rename_gate = fake_store.hold("rename_folder")
        delete_gate = fake_store.hold("delete_folder")
        fake_store.fail("rename_folder")
        fake_store.fail("delete_folder")

        rename_task = asyncio.create_task(coordinator.rename("b", "Renamed"))
        await asyncio.sleep(0)
        delete_task = asyncio.create_task(coordinator.delete("a"))
        await asyncio.sleep(0)

        rename_gate.set()
        with pytest.raises(RemoteFailure):
            await rename_task
        delete_gate.set()
        with pytest.raises(RemoteFailure):
            await delete_task
        return coordinator, before

    coordinator, before = asyncio.run(scenario())

    assert coordinator.graph.snapshot() == before


def test_failed_delete_waits_for_child_create_and_restores_it(fake_store):
    async def scenario():
        coordinator = _coordinator(fake_store, ("p", "Parent", None))
        create_gate = fake_store.hold("create_folder")
        delete_gate = fake_store.hold("delete_folder")
        fake_store.fail("delete_folder")

        create_task = asyncio.create_task(coordinator.create("Child", "p"))
        await asyncio.sleep(0)
        delete_task = asyncio.create_task(coordinator.delete("p"))
        await asyncio.sleep(0)
        assert fake_store.call_names() == ["create_folder"]

        create_gate.set()
        child = await create_task
        delete_gate.set()
        with pytest.raises(RemoteFailure):
            await delete_task
        return coordinator, child

    coordinator, child = asyncio.run(scenario())

    assert coordinator.graph.ids() == {"p", child.id}
    assert coordinator.graph.get(child.id).parent_id == "p"
    assert _pending_ids(coordinator) == []


def test_delete_after_child_create_leaves_no_orphan(fake_store):
    async def scenario():
        coordinator = _coordinator(fake_store, ("p", "Parent", None))
        gate = fake_store.hold("create_folder")

        create_task = asyncio.create_task(coordinator.create("Child", "p"))
        await asyncio.sleep(0)
        delete_task = asyncio.create_task(coordinator.delete("p"))
        await asyncio.sleep(0)

        gate.set()
        child, removed = await asyncio.gather(create_task, delete_task)
        return coordinator, child, removed

    coordinator, child, removed = asyncio.run(scenario())

    assert len(coordinator.graph) == 0
    assert {folder.id for folder in removed} == {"p", child.id}
    assert fake_store.call_names() == ["create_folder", "delete_folder"]


def test_move_sequences_keep_the_tree_acyclic(fake_store):
    rows = [
        ("a", "A", None),
        ("b", "B", "a"),
        ("c", "C", "b"),
        ("d", "D", "a"),
        ("e", "E", None),
        ("f", "F", "e"),
        ("g", "G", "f"),
        ("h", "H", None),
    ]
    coordinator = _coordinator(fake_store, *rows)
    ids = [row[0] for row in rows]
    rng = random.Random(20251019)
    outcomes = {"accepted": 0, "refused": 0}

    async def scenario():
        for _ in range(200):
            folder_id = rng.choice(ids)
            target = rng.choice(ids + [None])
            before = coordinator.graph.snapshot()
            try:
                await coordinator.move(folder_id, target)
            except CyclicMoveError:
                outcomes["refused"] += 1
                assert coordinator.graph.snapshot() == before
            else:
                outcomes["accepted"] += 1
            for row_id in ids:
                assert row_id not in coordinator.resolver.descendants(row_id)

    asyncio.run(scenario())

    assert outcomes["accepted"] > 0
    assert outcomes["refused"] > 0
    assert len(coordinator.graph) == len(rows)
