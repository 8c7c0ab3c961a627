"""End-to-end board scenarios through the board service."""
import asyncio
import logging
from datetime import date

import pytest

from boardsync.config import Settings
from boardsync.core.exceptions import NetworkError
from boardsync.schemas.task import SyncState, TaskPriority, TaskStatus
from boardsync.services.board_service import build_board_service
from boardsync.services.drag_classifier import DropTarget
from boardsync.services.mutation_engine import MutationState

from conftest import ScriptedEndpoint, build_task, column_ids, column_orders


@pytest.mark.asyncio
async def test_load_fills_store_from_endpoint(board):
    assert column_ids(board.store, TaskStatus.TODO) == ["A", "B", "C"]
    assert column_ids(board.store, TaskStatus.DONE) == ["E", "F"]
    assert board.column(TaskStatus.REVIEW) == []


@pytest.mark.asyncio
async def test_drag_within_column_reorders(board, endpoint):
    """Dragging C onto A in [A, B, C] gives [C, A, B] with orders 1..3."""
    handle = board.handle_drag_end("C", DropTarget.from_raw("todo", "A"))

    assert column_ids(board.store, TaskStatus.TODO) == ["C", "A", "B"]
    assert await handle.wait() == MutationState.CONFIRMED
    assert column_orders(board.store, TaskStatus.TODO) == [1.0, 2.0, 3.0]
    assert endpoint.methods() == ["reorder_within_column"]


@pytest.mark.asyncio
async def test_drag_onto_task_in_other_column(board, endpoint):
    """B dropped on E lands right before E; todo closes the gap."""
    handle = board.handle_drag_end("B", DropTarget.from_raw("done", "E"))

    assert column_ids(board.store, TaskStatus.DONE) == ["B", "E", "F"]
    assert column_ids(board.store, TaskStatus.TODO) == ["A", "C"]
    assert column_orders(board.store, TaskStatus.TODO) == [1.0, 2.0]
    assert board.store.get("B").status == TaskStatus.DONE

    assert await handle.wait() == MutationState.CONFIRMED
    assert endpoint.requests == [("move_with_position", ("B", TaskStatus.DONE, "E"))]
    assert column_ids(board.store, TaskStatus.DONE) == ["B", "E", "F"]
    assert column_orders(board.store, TaskStatus.DONE) == [1.0, 2.0, 3.0]


@pytest.mark.asyncio
async def test_drag_onto_empty_column_area_moves_to_top(board, endpoint):
    handle = board.handle_drag_end("C", DropTarget.from_raw(None, "done"))

    assert column_ids(board.store, TaskStatus.DONE) == ["C", "E", "F"]
    assert await handle.wait() == MutationState.CONFIRMED
    assert endpoint.methods() == ["update_task"]
    assert board.store.get("C").task_order == 1.0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "container, over",
    [("todo", None), ("backlog", "E"), ("todo", "A"), (None, None)],
)
async def test_noop_drops_change_nothing(board, endpoint, container, over):
    """Same-column empty space, unknown columns and self drops are no-ops."""
    version = board.store.version

    handle = board.handle_drag_end("A", DropTarget.from_raw(container, over))

    assert handle is None
    assert board.store.version == version
    assert endpoint.requests == []


@pytest.mark.asyncio
async def test_failed_create_removes_placeholder(board, endpoint, notifications):
    """A temp-123 task whose creation fails disappears entirely."""
    before = {task.id: task for task in board.store.all_tasks()}
    endpoint.fail_next("create_task", NetworkError("offline"))

    handle = board.create_task({"title": "Draft plan"}, temp_id="temp-123")

    placeholder = board.store.get("temp-123")
    assert placeholder.sync_state == SyncState.PENDING
    assert column_ids(board.store, TaskStatus.TODO) == ["A", "B", "C", "temp-123"]

    assert await handle.wait() == MutationState.ROLLED_BACK
    assert "temp-123" not in board.store
    assert {task.id: task for task in board.store.all_tasks()} == before
    assert notifications[0].message == "Failed to add task. Please try again."


@pytest.mark.asyncio
async def test_create_is_confirmed_with_endpoint_fields(board):
    handle = board.create_task({"title": "Ship it", "priority": "high"})
    placeholder_id = handle.mutation.placeholder.id
    assert placeholder_id.startswith("temp-")

    assert await handle.wait() == MutationState.CONFIRMED
    created = board.store.get(handle.mutation.created.id)
    assert placeholder_id not in board.store
    assert created.ticket_number == "TASK-006"
    assert created.sync_state == SyncState.CONFIRMED
    assert column_ids(board.store, TaskStatus.TODO) == ["A", "B", "C", created.id]


@pytest.mark.asyncio
async def test_invalid_create_is_rejected_without_apply(board, endpoint, notifications):
    version = board.store.version

    handle = board.create_task({"title": "   "})

    assert handle.state == MutationState.REJECTED
    assert board.store.version == version
    assert endpoint.requests == []
    assert notifications[0].level == "error"
    assert notifications[0].message == "Task is invalid: Title is required"


@pytest.mark.asyncio
async def test_divergent_column_keeps_local_order(board, endpoint, caplog):
    """If the endpoint's column differs from ours, local order stays until refresh."""
    endpoint._tasks["Z"] = build_task("Z", TaskStatus.TODO, 4.0)

    with caplog.at_level(logging.WARNING, logger="boardsync.services.mutations"):
        handle = board.reorder("C", "A")
        assert await handle.wait() == MutationState.CONFIRMED

    assert column_ids(board.store, TaskStatus.TODO) == ["C", "A", "B"]
    assert "Z" not in board.store
    assert "diverged" in caplog.text

    await board.refresh()
    assert column_ids(board.store, TaskStatus.TODO) == ["C", "A", "B", "Z"]


@pytest.mark.asyncio
async def test_refresh_waits_for_in_flight_mutations(board, endpoint):
    gate = endpoint.hold_next("reorder_within_column")
    loads = endpoint.calls.count("list_tasks")

    handle = board.reorder("C", "A")
    refresh = asyncio.ensure_future(board.refresh())
    await asyncio.sleep(0)
    assert endpoint.calls.count("list_tasks") == loads

    gate.set()
    await refresh
    assert handle.state == MutationState.CONFIRMED
    assert endpoint.calls.count("list_tasks") == loads + 1
    assert column_ids(board.store, TaskStatus.TODO) == ["C", "A", "B"]


@pytest.mark.asyncio
async def test_gap_strategy_moves_one_task_then_adopts_endpoint_orders(sample_tasks):
    endpoint = ScriptedEndpoint(sample_tasks)
    board = build_board_service(Settings(ORDER_STRATEGY="gap"), endpoint=endpoint)
    await board.load()
    gate = endpoint.hold_next("reorder_within_column")

    handle = board.reorder("C", "A")
    assert column_ids(board.store, TaskStatus.TODO) == ["C", "A", "B"]
    assert column_orders(board.store, TaskStatus.TODO) == [-1023.0, 1.0, 2.0]

    gate.set()
    assert await handle.wait() == MutationState.CONFIRMED
    assert column_orders(board.store, TaskStatus.TODO) == [1.0, 2.0, 3.0]
    await board.aclose()


@pytest.mark.asyncio
async def test_notifications_follow_default_locale(sample_tasks):
    endpoint = ScriptedEndpoint(sample_tasks)
    received = []
    board = build_board_service(
        Settings(DEFAULT_LOCALE="ru"),
        endpoint=endpoint,
        notifier=received.append,
    )
    await board.load()
    endpoint.fail_next("delete_task", NetworkError())

    handle = board.delete_task("A")
    await handle.wait()

    assert received[0].message == "Не удалось удалить задачу. Попробуйте еще раз."


@pytest.mark.asyncio
async def test_failure_after_refresh_keeps_fresh_board(board, endpoint, notifications):
    """A change applied while the board reloads never reverts the reloaded data."""
    load_gate = endpoint.hold_next("list_tasks")
    refresh = asyncio.ensure_future(board.refresh())
    await asyncio.sleep(0)
    assert endpoint.methods() == ["list_tasks"]

    del endpoint._tasks["B"]
    reorder_gate = endpoint.hold_next("reorder_within_column")
    endpoint.fail_next("reorder_within_column", NetworkError())
    handle = board.reorder("C", "A")
    assert column_ids(board.store, TaskStatus.TODO) == ["C", "A", "B"]

    load_gate.set()
    await refresh
    assert column_ids(board.store, TaskStatus.TODO) == ["A", "C"]

    reorder_gate.set()
    assert await handle.wait() == MutationState.ROLLED_BACK
    assert column_ids(board.store, TaskStatus.TODO) == ["A", "C"]
    assert "B" not in board.store
    assert notifications[0].mutation == "reorder"


@pytest.mark.asyncio
async def test_edit_task_details_in_place(board, endpoint):
    gate = endpoint.hold_next("update_task")

    handle = board.update_task(
        "B",
        {"title": "Write release notes", "priority": "urgent", "assignee_id": "user-7", "due_date": "2026-11-02"},
    )

    edited = board.store.get("B")
    assert edited.title == "Write release notes"
    assert edited.priority == TaskPriority.URGENT
    assert edited.due_date == date(2026, 11, 2)
    assert edited.updated_at is None
    assert column_ids(board.store, TaskStatus.TODO) == ["A", "B", "C"]

    gate.set()
    assert await handle.wait() == MutationState.CONFIRMED
    confirmed = board.store.get("B")
    assert confirmed.assignee_id == "user-7"
    assert confirmed.updated_at is not None
    assert column_orders(board.store, TaskStatus.TODO) == [1.0, 2.0, 3.0]

    method, (task_id, changes) = endpoint.requests[0]
    assert (method, task_id) == ("update_task", "B")
    assert changes.model_fields_set == {"title", "priority", "assignee_id", "due_date"}


@pytest.mark.asyncio
async def test_failed_edit_restores_task(board, endpoint, notifications):
    original = board.store.get("A")
    endpoint.fail_next("update_task", NetworkError())

    handle = board.update_task("A", {"title": "Renamed", "description": "More detail"})
    assert board.store.get("A").title == "Renamed"

    assert await handle.wait() == MutationState.ROLLED_BACK
    assert board.store.get("A") == original
    assert notifications[0].mutation == "edit"
    assert notifications[0].message == "Failed to update task. Please try again."


@pytest.mark.asyncio
async def test_unchanged_edit_is_discarded(board, endpoint):
    handle = board.update_task("A", {"title": "Task A"})

    assert handle.state == MutationState.DISCARDED
    assert endpoint.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes, detail",
    [
        ({"title": "   "}, "Title is required"),
        ({}, "No valid fields to update"),
        ({"status": "done"}, "Status is changed by moving the task"),
    ],
)
async def test_invalid_edit_is_rejected(board, endpoint, notifications, changes, detail):
    version = board.store.version

    handle = board.update_task("A", changes)

    assert handle.state == MutationState.REJECTED
    assert handle.error.detail == detail
    assert board.store.version == version
    assert endpoint.requests == []
    assert notifications[0].message == f"Task is invalid: {detail}"
