"""Pytest configuration and fixtures."""
import asyncio
import os
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

os.environ.setdefault("SYNC_MODE", "stub")
os.environ.setdefault("LOG_FORMAT", "text")

from boardsync.config import Settings  # noqa: E402
from boardsync.core.exceptions import BoardSyncError  # noqa: E402
from boardsync.integrations.stub_endpoint import StubTaskEndpoint  # noqa: E402
from boardsync.main import app  # noqa: E402
from boardsync.schemas.task import ColumnResponse, Task, TaskCreate, TaskStatus, TaskUpdate  # noqa: E402
from boardsync.services.board_service import BoardService, build_board_service  # noqa: E402
from boardsync.services.task_store import TaskStore  # noqa: E402


class ScriptedEndpoint(StubTaskEndpoint):
    """Stub endpoint whose calls can be held open or made to fail."""

    def __init__(self, tasks=()):
        super().__init__(tasks)
        self.requests: List[Tuple[str, tuple]] = []
        self._failures: Dict[str, Deque[BoardSyncError]] = defaultdict(deque)
        self._gates: Dict[str, Deque[asyncio.Event]] = defaultdict(deque)

    def fail_next(self, method: str, error: BoardSyncError) -> None:
        self._failures[method].append(error)

    def hold_next(self, method: str) -> asyncio.Event:
        """Keep the next call of ``method`` open until the event is set."""
        gate = asyncio.Event()
        self._gates[method].append(gate)
        return gate

    async def _intercept(self, method: str, *args) -> None:
        self.requests.append((method, args))
        gate = self._gates[method].popleft() if self._gates[method] else None
        error = self._failures[method].popleft() if self._failures[method] else None
        if gate is not None:
            await gate.wait()
        if error is not None:
            raise error

    def methods(self) -> List[str]:
        return [method for method, _ in self.requests]

    async def list_tasks(self) -> List[Task]:
        await self._intercept("list_tasks")
        return await super().list_tasks()

    async def create_task(self, payload: TaskCreate) -> Task:
        await self._intercept("create_task", payload)
        return await super().create_task(payload)

    async def update_task(self, task_id: str, changes: TaskUpdate) -> Task:
        await self._intercept("update_task", task_id, changes)
        return await super().update_task(task_id, changes)

    async def reorder_within_column(self, dragged_task_id, anchor_task_id, status) -> ColumnResponse:
        await self._intercept("reorder_within_column", dragged_task_id, anchor_task_id, status)
        return await super().reorder_within_column(dragged_task_id, anchor_task_id, status)

    async def move_with_position(self, task_id, new_status, anchor_task_id) -> ColumnResponse:
        await self._intercept("move_with_position", task_id, new_status, anchor_task_id)
        return await super().move_with_position(task_id, new_status, anchor_task_id)

    async def delete_task(self, task_id: str) -> None:
        await self._intercept("delete_task", task_id)
        await super().delete_task(task_id)


def build_task(
    task_id: str,
    status: TaskStatus = TaskStatus.TODO,
    order: float = 1.0,
    title: Optional[str] = None,
    ticket: Optional[str] = None,
) -> Task:
    return Task(
        id=task_id,
        title=title or f"Task {task_id}",
        status=status,
        task_order=order,
        ticket_number=ticket,
    )


def column_ids(store: TaskStore, status: TaskStatus) -> List[str]:
    """Visual order of a column."""
    return [task.id for task in store.tasks_by_column(status)]


def column_orders(store: TaskStore, status: TaskStatus) -> List[float]:
    return [task.task_order for task in store.tasks_by_column(status)]


@pytest.fixture
def sample_tasks() -> List[Task]:
    """A todo column A, B, C and a done column E, F."""
    return [
        build_task("A", TaskStatus.TODO, 1.0, ticket="TASK-001"),
        build_task("B", TaskStatus.TODO, 2.0, ticket="TASK-002"),
        build_task("C", TaskStatus.TODO, 3.0, ticket="TASK-003"),
        build_task("E", TaskStatus.DONE, 1.0, ticket="TASK-004"),
        build_task("F", TaskStatus.DONE, 2.0, ticket="TASK-005"),
    ]


@pytest.fixture
def store(sample_tasks) -> TaskStore:
    return TaskStore(sample_tasks)


@pytest.fixture
def endpoint(sample_tasks) -> ScriptedEndpoint:
    return ScriptedEndpoint(sample_tasks)


@pytest.fixture
def notifications() -> list:
    return []


@pytest.fixture
def board_settings() -> Settings:
    return Settings(SYNC_MODE="stub", ORDER_STRATEGY="renumber", DEFAULT_LOCALE="en")


@pytest_asyncio.fixture
async def board(endpoint, notifications, board_settings) -> BoardService:
    """Board service loaded from the scripted endpoint."""
    service = build_board_service(board_settings, endpoint=endpoint, notifier=notifications.append)
    await service.load()
    endpoint.requests.clear()
    yield service
    await service.drain()


@pytest.fixture
def client():
    """Test client for the reference task endpoint with fresh workspaces."""
    app.state.workspaces.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.state.workspaces.clear()
