"""Sync layer: turns mutation requests into remote endpoint calls."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from boardsync.core.exceptions import BoardSyncError
from boardsync.core.metrics import sync_request_duration_seconds, sync_requests_total
from boardsync.integrations.task_endpoint import TaskEndpoint
from boardsync.schemas.task import ColumnResponse, Task, TaskCreate, TaskStatus, TaskUpdate

logger = logging.getLogger(__name__)


class SyncOperation(str, Enum):
    """Remote operations the engine can ask for."""

    CREATE = "create"
    UPDATE = "update"
    UPDATE_STATUS = "update_status"
    REORDER = "reorder"
    MOVE_WITH_POSITION = "move_with_position"
    DELETE = "delete"


@dataclass(frozen=True)
class SyncRequest:
    """One remote mutation, described as plain data."""

    operation: SyncOperation
    task_id: Optional[str] = None
    status: Optional[TaskStatus] = None
    anchor_task_id: Optional[str] = None
    payload: Optional[TaskCreate] = None
    changes: Optional[TaskUpdate] = None


@dataclass(frozen=True)
class SyncOutcome:
    """Success or failure of a request, reported exactly once."""

    request: SyncRequest
    ok: bool
    task: Optional[Task] = None
    column: Optional[ColumnResponse] = None
    error: Optional[BoardSyncError] = None


class SyncService:
    """Dispatches sync requests to a task endpoint.

    Failures of the error taxonomy are caught here and reported in the
    outcome; nothing is retried. Other exceptions propagate to the caller.
    """

    def __init__(self, endpoint: TaskEndpoint):
        self.endpoint = endpoint

    async def dispatch(self, request: SyncRequest) -> SyncOutcome:
        operation = request.operation.value
        started = time.perf_counter()
        try:
            outcome = await self._send(request)
        except BoardSyncError as exc:
            if exc.task_id is None:
                exc.task_id = request.task_id
            sync_requests_total.labels(operation, type(exc).__name__).inc()
            logger.warning(
                "Sync %s failed for %s: %s",
                operation,
                request.task_id or "new task",
                exc.detail,
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            return SyncOutcome(request=request, ok=False, error=exc)
        finally:
            sync_request_duration_seconds.labels(operation).observe(time.perf_counter() - started)

        sync_requests_total.labels(operation, "ok").inc()
        logger.debug("Sync %s confirmed for %s", operation, request.task_id or "new task")
        return outcome

    async def _send(self, request: SyncRequest) -> SyncOutcome:
        endpoint = self.endpoint
        operation = request.operation

        if operation == SyncOperation.CREATE:
            task = await endpoint.create_task(request.payload)
            return SyncOutcome(request=request, ok=True, task=task)
        if operation == SyncOperation.UPDATE:
            task = await endpoint.update_task(request.task_id, request.changes)
            return SyncOutcome(request=request, ok=True, task=task)
        if operation == SyncOperation.UPDATE_STATUS:
            task = await endpoint.update_task(request.task_id, TaskUpdate(status=request.status))
            return SyncOutcome(request=request, ok=True, task=task)
        if operation == SyncOperation.REORDER:
            column = await endpoint.reorder_within_column(request.task_id, request.anchor_task_id, request.status)
            return SyncOutcome(request=request, ok=True, column=column)
        if operation == SyncOperation.MOVE_WITH_POSITION:
            column = await endpoint.move_with_position(request.task_id, request.status, request.anchor_task_id)
            return SyncOutcome(request=request, ok=True, column=column)
        if operation == SyncOperation.DELETE:
            await endpoint.delete_task(request.task_id)
            return SyncOutcome(request=request, ok=True)
        raise ValueError(f"unsupported sync operation {operation}")
