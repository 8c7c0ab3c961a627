"""Board service: the entry point the board UI talks to."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from boardsync.config import Settings, settings as default_settings
from boardsync.core.exceptions import ValidationError
from boardsync.integrations.task_endpoint import TaskEndpoint, build_task_endpoint
from boardsync.schemas.task import Task, TaskCreate, TaskStatus, TaskUpdate
from boardsync.services.drag_classifier import (
    DragOperation,
    DragOperationKind,
    DragSession,
    DropTarget,
    classify_drop,
)
from boardsync.services.mutation_engine import MutationEngine, MutationHandle, NotificationListener
from boardsync.services.mutations import (
    CreateTask,
    DeleteTask,
    MoveTaskWithPosition,
    OrderingPolicy,
    ReorderTask,
    UpdateStatus,
    UpdateTaskFields,
)
from boardsync.services.sync_service import SyncService
from boardsync.services.task_store import TaskStore

logger = logging.getLogger(__name__)


def _schema_error_detail(exc: SchemaValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid task"
    message = str(errors[0].get("msg", "Invalid task"))
    return message.removeprefix("Value error, ")


class BoardService:
    """Loads the board and turns user gestures into optimistic mutations."""

    def __init__(self, store: TaskStore, engine: MutationEngine, endpoint: TaskEndpoint):
        self.store = store
        self.engine = engine
        self.endpoint = endpoint

    # Loading

    async def load(self) -> List[Task]:
        """Replace the board with the endpoint's tasks.

        In-flight mutations settle first. Anything applied while the tasks are
        being fetched is overwritten by the reset and is never rolled back over
        the fresh data.
        """
        await self.engine.drain()
        tasks = await self.endpoint.list_tasks()
        self.engine.reset(tasks)
        logger.info("Loaded %d tasks", len(tasks))
        return tasks

    async def refresh(self) -> List[Task]:
        return await self.load()

    # Reads

    def column(self, status: TaskStatus) -> List[Task]:
        return self.store.tasks_by_column(status)

    def drag_session(self) -> DragSession:
        return DragSession(self.store)

    # Mutations

    def create_task(
        self,
        payload: Union[TaskCreate, Dict[str, Any]],
        temp_id: Optional[str] = None,
    ) -> MutationHandle:
        """Create a task; invalid payloads are rejected without touching the board."""
        if not isinstance(payload, TaskCreate):
            try:
                payload = TaskCreate.model_validate(payload)
            except SchemaValidationError as exc:
                return self.engine.reject(CreateTask, ValidationError(_schema_error_detail(exc)))
        return self.engine.submit(CreateTask(payload, temp_id=temp_id))

    def update_task(self, task_id: str, changes: Union[TaskUpdate, Dict[str, Any]]) -> MutationHandle:
        """Save edited task details; the task keeps its column and position."""
        if not isinstance(changes, TaskUpdate):
            try:
                changes = TaskUpdate.model_validate(changes)
            except SchemaValidationError as exc:
                return self.engine.reject(UpdateTaskFields, ValidationError(_schema_error_detail(exc), task_id=task_id))
        if changes.status is not None:
            return self.engine.reject(
                UpdateTaskFields,
                ValidationError("Status is changed by moving the task", task_id=task_id),
            )
        return self.engine.submit(UpdateTaskFields(self.engine.resolve_id(task_id), changes))

    def update_status(self, task_id: str, new_status: TaskStatus) -> MutationHandle:
        return self.engine.submit(UpdateStatus(self.engine.resolve_id(task_id), new_status))

    def reorder(self, dragged_task_id: str, over_task_id: str) -> MutationHandle:
        return self.engine.submit(
            ReorderTask(self.engine.resolve_id(dragged_task_id), self.engine.resolve_id(over_task_id))
        )

    def move_with_position(self, task_id: str, new_status: TaskStatus, over_task_id: str) -> MutationHandle:
        return self.engine.submit(
            MoveTaskWithPosition(
                self.engine.resolve_id(task_id),
                new_status,
                self.engine.resolve_id(over_task_id),
            )
        )

    def delete_task(self, task_id: str) -> MutationHandle:
        return self.engine.submit(DeleteTask(self.engine.resolve_id(task_id)))

    def submit_operation(self, operation: DragOperation) -> Optional[MutationHandle]:
        """Submit a classified drag; no-ops produce nothing."""
        if operation.kind == DragOperationKind.REORDER:
            return self.reorder(operation.task_id, operation.anchor_task_id)
        if operation.kind == DragOperationKind.MOVE_WITH_POSITION:
            return self.move_with_position(operation.task_id, operation.target_status, operation.anchor_task_id)
        if operation.kind == DragOperationKind.MOVE_TO_COLUMN:
            return self.update_status(operation.task_id, operation.target_status)
        logger.debug("Ignoring drop of %s: %s", operation.task_id, operation.reason)
        return None

    def handle_drag_end(self, dragged_task_id: str, target: Optional[DropTarget]) -> Optional[MutationHandle]:
        return self.submit_operation(classify_drop(self.store, dragged_task_id, target))

    async def drain(self) -> None:
        await self.engine.drain()

    async def aclose(self) -> None:
        await self.engine.drain()
        await self.endpoint.aclose()


def build_board_service(
    settings: Optional[Settings] = None,
    endpoint: Optional[TaskEndpoint] = None,
    notifier: Optional[NotificationListener] = None,
) -> BoardService:
    """Wire store, sync layer and engine from settings."""
    settings = settings or default_settings
    endpoint = endpoint or build_task_endpoint(settings)
    store = TaskStore()
    engine = MutationEngine(
        store,
        SyncService(endpoint),
        notifier=notifier,
        policy=OrderingPolicy.from_settings(settings),
        locale=settings.DEFAULT_LOCALE,
    )
    return BoardService(store, engine, endpoint)
