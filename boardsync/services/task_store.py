"""In-memory task store, the single source of truth for the board view."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from boardsync.schemas.task import Task, TaskStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreChange:
    """Notification payload sent to subscribers after every write."""

    operation: str
    task_ids: Tuple[str, ...]
    version: int


@dataclass(frozen=True)
class OrderUpdate:
    """New placement of one task: column and order change together."""

    task_order: float
    status: Optional[TaskStatus] = None


@dataclass(frozen=True)
class StoreSnapshot:
    """Captured state of a region of the store.

    The region is every task in ``columns`` plus the tasks named in
    ``task_ids``. Restoring a snapshot makes that region identical to the
    moment of capture.
    """

    columns: FrozenSet[TaskStatus]
    task_ids: FrozenSet[str]
    tasks: Tuple[Task, ...] = field(default_factory=tuple)
    version: int = 0

    def get(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


Subscriber = Callable[[StoreChange], None]


class TaskStore:
    """Holds every task of the board and notifies subscribers on change.

    Writes are all-or-nothing: each one validates its input fully before
    touching state, and subscribers are called once, after the write.
    """

    def __init__(self, tasks: Iterable[Task] = ()):
        self._tasks: Dict[str, Task] = {}
        self._subscribers: List[Subscriber] = []
        self._version = 0
        for task in tasks:
            if task.id in self._tasks:
                raise ValueError(f"duplicate task id {task.id}")
            self._tasks[task.id] = task

    # Reads

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def all_tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def tasks_by_column(self, status: TaskStatus) -> List[Task]:
        """Tasks of one column in visual order (stable for equal orders)."""
        column = [task for task in self._tasks.values() if task.status == status]
        return sorted(column, key=lambda task: task.task_order)

    def columns(self) -> Dict[TaskStatus, List[Task]]:
        return {status: self.tasks_by_column(status) for status in TaskStatus}

    # Subscriptions

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _commit(self, tasks: Dict[str, Task], operation: str, task_ids: Iterable[str]) -> StoreChange:
        self._tasks = tasks
        self._version += 1
        change = StoreChange(operation=operation, task_ids=tuple(task_ids), version=self._version)
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                logger.exception("Store subscriber failed on %s", operation)
        return change

    # Writes

    def insert(self, task: Task) -> StoreChange:
        if task.id in self._tasks:
            raise ValueError(f"task {task.id} already exists")
        tasks = dict(self._tasks)
        tasks[task.id] = task
        return self._commit(tasks, "insert", [task.id])

    def replace(self, task: Task, previous_id: Optional[str] = None) -> StoreChange:
        """Replace a task record, optionally swapping its id (temp -> confirmed).

        The replacement keeps the original's position in iteration order.
        """
        old_id = previous_id or task.id
        if old_id not in self._tasks:
            raise KeyError(old_id)
        if task.id != old_id and task.id in self._tasks:
            raise ValueError(f"task {task.id} already exists")
        tasks: Dict[str, Task] = {}
        for task_id, existing in self._tasks.items():
            if task_id == old_id:
                tasks[task.id] = task
            else:
                tasks[task_id] = existing
        affected = [old_id] if old_id == task.id else [old_id, task.id]
        return self._commit(tasks, "replace", affected)

    def remove(self, task_id: str) -> StoreChange:
        if task_id not in self._tasks:
            raise KeyError(task_id)
        tasks = {key: value for key, value in self._tasks.items() if key != task_id}
        return self._commit(tasks, "remove", [task_id])

    def reorder_within(self, status: TaskStatus, ordered_ids: Iterable[str]) -> StoreChange:
        """Renumber a column to consecutive orders following ``ordered_ids``."""
        ordered = list(ordered_ids)
        current = {task.id for task in self.tasks_by_column(status)}
        if len(ordered) != len(set(ordered)) or set(ordered) != current:
            raise ValueError(f"ordered ids do not match column {status.value}")
        tasks = dict(self._tasks)
        for position, task_id in enumerate(ordered, start=1):
            tasks[task_id] = tasks[task_id].model_copy(update={"task_order": float(position)})
        return self._commit(tasks, "reorder_within", ordered)

    def apply_orders(self, updates: Mapping[str, OrderUpdate]) -> StoreChange:
        """Atomically set order (and optionally column) for several tasks."""
        missing = [task_id for task_id in updates if task_id not in self._tasks]
        if missing:
            raise KeyError(", ".join(missing))
        tasks = dict(self._tasks)
        for task_id, update in updates.items():
            changes: Dict[str, object] = {"task_order": update.task_order}
            if update.status is not None:
                changes["status"] = update.status
            tasks[task_id] = tasks[task_id].model_copy(update=changes)
        return self._commit(tasks, "apply_orders", updates.keys())

    def reset(self, tasks: Iterable[Task]) -> StoreChange:
        """Replace the whole board, e.g. after loading from the endpoint."""
        fresh: Dict[str, Task] = {}
        for task in tasks:
            if task.id in fresh:
                raise ValueError(f"duplicate task id {task.id}")
            fresh[task.id] = task
        return self._commit(fresh, "reset", fresh.keys())

    # Snapshots

    def snapshot(self, columns: Iterable[TaskStatus] = (), task_ids: Iterable[str] = ()) -> StoreSnapshot:
        column_set = frozenset(columns)
        id_set = frozenset(task_ids)
        captured = tuple(
            task for task in self._tasks.values()
            if task.status in column_set or task.id in id_set
        )
        return StoreSnapshot(columns=column_set, task_ids=id_set, tasks=captured, version=self._version)

    def restore(self, snapshot: StoreSnapshot) -> StoreChange:
        """Put a captured region back exactly as it was.

        Tasks that entered the region after the capture (e.g. an optimistic
        placeholder) are dropped; tasks that left it are put back.
        """
        def in_region(task: Task) -> bool:
            return task.status in snapshot.columns or task.id in snapshot.task_ids

        captured = {task.id: task for task in snapshot.tasks}
        tasks: Dict[str, Task] = {}
        affected = set(captured)
        for task_id, task in self._tasks.items():
            if task_id in captured:
                tasks[task_id] = captured[task_id]
            elif in_region(task):
                affected.add(task_id)
            else:
                tasks[task_id] = task
        for task_id, task in captured.items():
            tasks.setdefault(task_id, task)
        return self._commit(tasks, "restore", sorted(affected))
