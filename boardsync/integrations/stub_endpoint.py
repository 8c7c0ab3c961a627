"""In-memory task endpoint.

Mirrors what the hosted task backend does with a workspace's tasks, so it can
stand in for it in stub mode, in tests, and behind the reference HTTP API:

* ticket numbers are ``TASK-001``, ``TASK-002``, ... per workspace;
* a created task is appended to the bottom of its column;
* a status change puts the task at the top of its new column;
* reorder and move-with-position renumber the touched columns to 1..n.

Concurrent writers are last-writer-wins.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from boardsync.core.exceptions import NotFoundError, ValidationError
from boardsync.integrations.task_endpoint import TaskEndpoint
from boardsync.schemas.task import (
    ColumnResponse,
    SyncState,
    Task,
    TaskCreate,
    TaskStatus,
    TaskUpdate,
)
from boardsync.services.order_assigner import OrderAssignment, plan_insert, plan_removal, plan_reorder

logger = logging.getLogger(__name__)


class StubTaskEndpoint(TaskEndpoint):
    """Task endpoint backed by a dict, with the hosted backend's ordering rules."""

    def __init__(self, tasks: Iterable[Task] = ()):
        self._tasks: Dict[str, Task] = {task.id: task for task in tasks}
        self._ticket_counter = 0
        for task in self._tasks.values():
            self._ticket_counter = max(self._ticket_counter, _ticket_value(task.ticket_number))
        self.calls: List[str] = []

    def _column(self, status: TaskStatus) -> List[Task]:
        column = [task for task in self._tasks.values() if task.status == status]
        return sorted(column, key=lambda task: task.task_order)

    def _get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found", task_id=task_id)
        return task

    def _apply(self, assignment: OrderAssignment, status: Optional[TaskStatus] = None) -> None:
        now = datetime.now(timezone.utc)
        for task_id, order in assignment.orders.items():
            changes = {"task_order": order, "updated_at": now}
            if status is not None:
                changes["status"] = status
            self._tasks[task_id] = self._tasks[task_id].model_copy(update=changes)

    def _next_ticket(self) -> str:
        self._ticket_counter += 1
        return f"TASK-{self._ticket_counter:03d}"

    # Reads

    async def list_tasks(self) -> List[Task]:
        self.calls.append("list_tasks")
        return sorted(self._tasks.values(), key=lambda task: (task.status.value, task.task_order))

    # Mutations

    async def create_task(self, payload: TaskCreate) -> Task:
        self.calls.append("create_task")
        if not payload.title or not payload.title.strip():
            raise ValidationError("Title is required")
        column = self._column(payload.status)
        next_order = column[-1].task_order + 1 if column else 1.0
        task = Task(
            id=str(uuid.uuid4()),
            task_order=next_order,
            ticket_number=self._next_ticket(),
            sync_state=SyncState.CONFIRMED,
            **payload.model_dump(),
        )
        self._tasks[task.id] = task
        logger.debug("Stub endpoint created %s as %s", task.id, task.ticket_number)
        return task

    async def update_task(self, task_id: str, changes: TaskUpdate) -> Task:
        self.calls.append("update_task")
        task = self._get(task_id)
        fields = changes.model_dump(exclude_unset=True)
        new_status = fields.pop("status", None)
        if fields:
            self._tasks[task_id] = task.model_copy(
                update={**fields, "updated_at": datetime.now(timezone.utc)}
            )
        if new_status is not None and new_status != task.status:
            self._apply(plan_removal(self._column(task.status), task_id))
            self._apply(plan_insert(self._column(new_status), task_id, index=0), status=new_status)
        return self._tasks[task_id]

    async def reorder_within_column(self, dragged_task_id: str, anchor_task_id: str, status: TaskStatus) -> ColumnResponse:
        self.calls.append("reorder_within_column")
        column = self._column(status)
        if not column:
            raise NotFoundError(f"No tasks found in {status.value}")
        ids = {task.id for task in column}
        for task_id in (dragged_task_id, anchor_task_id):
            if task_id not in ids:
                raise NotFoundError(f"Task {task_id} not found in {status.value}", task_id=task_id)
        self._apply(plan_reorder(column, dragged_task_id, anchor_task_id))
        return ColumnResponse(status=status, tasks=self._column(status))

    async def move_with_position(self, task_id: str, new_status: TaskStatus, anchor_task_id: str) -> ColumnResponse:
        self.calls.append("move_with_position")
        task = self._get(task_id)
        destination = [item for item in self._column(new_status) if item.id != task_id]
        if not destination:
            raise NotFoundError(f"No tasks found in destination column {new_status.value}")
        if anchor_task_id not in {item.id for item in destination}:
            raise NotFoundError(f"Over task {anchor_task_id} not found", task_id=anchor_task_id)
        if task.status != new_status:
            self._apply(plan_removal(self._column(task.status), task_id))
        self._apply(plan_insert(destination, task_id, before=anchor_task_id), status=new_status)
        return ColumnResponse(status=new_status, tasks=self._column(new_status))

    async def delete_task(self, task_id: str) -> None:
        self.calls.append("delete_task")
        self._get(task_id)
        del self._tasks[task_id]


def _ticket_value(ticket_number: Optional[str]) -> int:
    if not ticket_number:
        return 0
    try:
        return int(ticket_number.split("-")[1])
    except (IndexError, ValueError):
        return 0
