"""Board mutations run by the optimistic mutation engine.

Each mutation knows which tasks and columns it touches (its lock keys), how
to compute and apply its optimistic change against the current store, which
remote request confirms it, and how to fold the endpoint's answer back in.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, FrozenSet, Iterable, List, Mapping, Optional

from boardsync.config import Settings
from boardsync.schemas.task import ColumnResponse, Task, TaskCreate, TaskStatus, TaskUpdate
from boardsync.services.order_assigner import (
    DEFAULT_GAP,
    DEFAULT_MIN_GAP,
    OrderAssignment,
    OrderStrategy,
    plan_insert,
    plan_move,
    plan_reorder,
)
from boardsync.services.sync_service import SyncOperation, SyncOutcome, SyncRequest
from boardsync.services.task_store import OrderUpdate, TaskStore

logger = logging.getLogger(__name__)


def task_key(task_id: str) -> str:
    return f"task:{task_id}"


def column_key(status: TaskStatus) -> str:
    return f"column:{status.value}"


@dataclass(frozen=True)
class OrderingPolicy:
    """Order assigner parameters shared by all mutations."""

    strategy: OrderStrategy = OrderStrategy.RENUMBER
    gap: float = DEFAULT_GAP
    min_gap: float = DEFAULT_MIN_GAP

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrderingPolicy":
        return cls(
            strategy=OrderStrategy(settings.ORDER_STRATEGY.lower()),
            gap=settings.ORDER_GAP,
            min_gap=settings.ORDER_MIN_GAP,
        )

    def params(self) -> Dict[str, object]:
        return {"strategy": self.strategy, "gap": self.gap, "min_gap": self.min_gap}


@dataclass
class PreparedChange:
    """Optimistic change of one mutation, ready to apply.

    ``columns`` and ``task_ids`` describe the store region to snapshot
    before ``apply`` runs.
    """

    request: SyncRequest
    apply: Callable[[TaskStore], None]
    columns: FrozenSet[TaskStatus] = frozenset()
    task_ids: FrozenSet[str] = frozenset()


def _order_updates(assignment: OrderAssignment, status: Optional[TaskStatus] = None) -> Dict[str, OrderUpdate]:
    return {task_id: OrderUpdate(task_order=order, status=status) for task_id, order in assignment.orders.items()}


def _sequence(tasks: Iterable[Task]) -> List[str]:
    return [task.id for task in sorted(tasks, key=lambda task: task.task_order)]


def adopt_task(store: TaskStore, confirmed: Task, previous_id: Optional[str] = None) -> None:
    """Replace a local record with the endpoint's version of it.

    The endpoint's status and order are only taken when they leave the local
    column sequence unchanged and unique; otherwise the local placement wins
    until the next refresh.
    """
    local_id = previous_id or confirmed.id
    local = store.get(local_id)
    if local is None:
        return
    column = [task for task in store.tasks_by_column(local.status) if task.id != local_id]
    expected = _sequence(column + [local.model_copy(update={"id": confirmed.id})])
    candidate = _sequence(column + [confirmed]) if confirmed.status == local.status else None
    orders = [task.task_order for task in column]
    if candidate != expected or confirmed.task_order in orders:
        confirmed = confirmed.model_copy(update={"status": local.status, "task_order": local.task_order})
    store.replace(confirmed, previous_id=local_id)


def adopt_column(store: TaskStore, column: ColumnResponse) -> None:
    """Take the endpoint's orders for a column if it agrees on the sequence."""
    local = store.tasks_by_column(column.status)
    remote = sorted(column.tasks, key=lambda task: task.task_order)
    if [task.id for task in local] != [task.id for task in remote]:
        logger.warning(
            "Column %s diverged from the task endpoint; keeping local order until refresh",
            column.status.value,
        )
        return
    updates = {
        task.id: OrderUpdate(task_order=task.task_order)
        for task, current in zip(remote, local)
        if task.task_order != current.task_order
    }
    if updates:
        store.apply_orders(updates)


class Mutation(ABC):
    """A user-initiated board change."""

    kind: ClassVar[str] = "update"
    error_key: ClassVar[str] = "errors.update_failed"

    task_id: Optional[str] = None

    def remap_ids(self, aliases: Mapping[str, str]) -> None:
        """Follow temporary ids that were confirmed while this was queued."""
        self.task_id = aliases.get(self.task_id, self.task_id)

    @abstractmethod
    def lock_keys(self, store: TaskStore) -> FrozenSet[str]:
        """Keys that must be free before this mutation may start."""

    @abstractmethod
    def prepare(self, store: TaskStore, policy: OrderingPolicy) -> Optional[PreparedChange]:
        """Compute the optimistic change; None discards the mutation."""

    def reconcile(self, store: TaskStore, outcome: SyncOutcome) -> Dict[str, str]:
        """Fold authoritative fields back in; returns confirmed id aliases."""
        if outcome.column is not None:
            adopt_column(store, outcome.column)
        return {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(task_id={self.task_id!r})"


class CreateTask(Mutation):
    """Create a task; shown at the bottom of its column until confirmed."""

    kind = "create"
    error_key = "errors.create_failed"

    def __init__(self, payload: TaskCreate, temp_id: Optional[str] = None):
        self.payload = payload
        self.placeholder: Optional[Task] = None
        self.created: Optional[Task] = None
        self._temp_id = temp_id

    @property
    def task_id(self) -> Optional[str]:
        if self.created is not None:
            return self.created.id
        return self.placeholder.id if self.placeholder else self._temp_id

    def remap_ids(self, aliases: Mapping[str, str]) -> None:
        """A create names no existing task."""

    def lock_keys(self, store: TaskStore) -> FrozenSet[str]:
        return frozenset({column_key(self.payload.status)})

    def prepare(self, store: TaskStore, policy: OrderingPolicy) -> Optional[PreparedChange]:
        status = self.payload.status
        draft = Task.pending(self.payload, task_order=0.0, temp_id=self._temp_id)
        if draft.id in store:
            raise ValueError(f"task {draft.id} already exists")
        assignment = plan_insert(store.tasks_by_column(status), draft.id, **policy.params())
        self.placeholder = draft.model_copy(update={"task_order": assignment.orders[draft.id]})
        others = {
            task_id: update
            for task_id, update in _order_updates(assignment).items()
            if task_id != draft.id
        }

        def apply(target: TaskStore) -> None:
            if others:
                target.apply_orders(others)
            target.insert(self.placeholder)

        return PreparedChange(
            request=SyncRequest(SyncOperation.CREATE, payload=self.payload, status=status),
            apply=apply,
            columns=frozenset({status}),
        )

    def reconcile(self, store: TaskStore, outcome: SyncOutcome) -> Dict[str, str]:
        self.created = outcome.task
        if outcome.task is None or self.placeholder is None:
            return {}
        adopt_task(store, outcome.task, previous_id=self.placeholder.id)
        return {self.placeholder.id: outcome.task.id}

    def __repr__(self) -> str:
        return f"CreateTask(title={self.payload.title!r}, status={self.payload.status.value!r})"


class UpdateStatus(Mutation):
    """Move a task to the top of another column (dropped on empty space)."""

    kind = "update"
    error_key = "errors.update_failed"

    def __init__(self, task_id: str, new_status: TaskStatus):
        self.task_id = task_id
        self.new_status = new_status

    def lock_keys(self, store: TaskStore) -> FrozenSet[str]:
        keys = {task_key(self.task_id), column_key(self.new_status)}
        task = store.get(self.task_id)
        if task is not None:
            keys.add(column_key(task.status))
        return frozenset(keys)

    def prepare(self, store: TaskStore, policy: OrderingPolicy) -> Optional[PreparedChange]:
        task = store.get(self.task_id)
        if task is None or task.status == self.new_status:
            return None
        plan = plan_move(
            store.tasks_by_column(task.status),
            store.tasks_by_column(self.new_status),
            task.id,
            index=0,
            **policy.params(),
        )
        updates = _order_updates(plan.source)
        updates.update(_order_updates(plan.destination, status=self.new_status))

        return PreparedChange(
            request=SyncRequest(SyncOperation.UPDATE_STATUS, task_id=task.id, status=self.new_status),
            apply=lambda target: target.apply_orders(updates),
            columns=frozenset({task.status, self.new_status}),
        )

    def reconcile(self, store: TaskStore, outcome: SyncOutcome) -> Dict[str, str]:
        if outcome.task is not None:
            adopt_task(store, outcome.task)
        return {}


class UpdateTaskFields(Mutation):
    """Edit a task's details in place: title, description, priority, due date, assignee.

    Column and order are left alone; the task's column is still locked so a
    rollback never puts back an order that a concurrent reorder replaced.
    """

    kind = "edit"
    error_key = "errors.update_failed"

    def __init__(self, task_id: str, changes: TaskUpdate):
        if changes.status is not None:
            raise ValueError("status changes go through UpdateStatus")
        self.task_id = task_id
        self.changes = changes

    def lock_keys(self, store: TaskStore) -> FrozenSet[str]:
        keys = {task_key(self.task_id)}
        task = store.get(self.task_id)
        if task is not None:
            keys.add(column_key(task.status))
        return frozenset(keys)

    def prepare(self, store: TaskStore, policy: OrderingPolicy) -> Optional[PreparedChange]:
        task = store.get(self.task_id)
        if task is None:
            return None
        fields = self.changes.model_dump(exclude_unset=True, exclude={"status"})
        edited = task.model_copy(update=fields)
        if edited == task:
            return None

        return PreparedChange(
            request=SyncRequest(SyncOperation.UPDATE, task_id=task.id, changes=self.changes),
            apply=lambda target: target.replace(edited),
            task_ids=frozenset({task.id}),
        )

    def reconcile(self, store: TaskStore, outcome: SyncOutcome) -> Dict[str, str]:
        if outcome.task is not None:
            adopt_task(store, outcome.task)
        return {}


class ReorderTask(Mutation):
    """Move a task to its anchor's index within the same column."""

    kind = "reorder"
    error_key = "errors.reorder_failed"

    def __init__(self, task_id: str, anchor_id: str):
        self.task_id = task_id
        self.anchor_id = anchor_id

    def remap_ids(self, aliases: Mapping[str, str]) -> None:
        super().remap_ids(aliases)
        self.anchor_id = aliases.get(self.anchor_id, self.anchor_id)

    def lock_keys(self, store: TaskStore) -> FrozenSet[str]:
        keys = {task_key(self.task_id)}
        task = store.get(self.task_id)
        if task is not None:
            keys.add(column_key(task.status))
        return frozenset(keys)

    def prepare(self, store: TaskStore, policy: OrderingPolicy) -> Optional[PreparedChange]:
        task = store.get(self.task_id)
        anchor = store.get(self.anchor_id)
        if task is None or anchor is None or task.id == anchor.id or task.status != anchor.status:
            return None
        assignment = plan_reorder(store.tasks_by_column(task.status), task.id, anchor.id, **policy.params())
        if not assignment.orders:
            return None
        updates = _order_updates(assignment)

        return PreparedChange(
            request=SyncRequest(
                SyncOperation.REORDER,
                task_id=task.id,
                anchor_task_id=anchor.id,
                status=task.status,
            ),
            apply=lambda target: target.apply_orders(updates),
            columns=frozenset({task.status}),
        )


class MoveTaskWithPosition(Mutation):
    """Move a task into another column, right before an anchor task."""

    kind = "move"
    error_key = "errors.move_failed"

    def __init__(self, task_id: str, new_status: TaskStatus, anchor_id: str):
        self.task_id = task_id
        self.new_status = new_status
        self.anchor_id = anchor_id

    def remap_ids(self, aliases: Mapping[str, str]) -> None:
        super().remap_ids(aliases)
        self.anchor_id = aliases.get(self.anchor_id, self.anchor_id)

    def lock_keys(self, store: TaskStore) -> FrozenSet[str]:
        keys = {task_key(self.task_id), column_key(self.new_status)}
        task = store.get(self.task_id)
        if task is not None:
            keys.add(column_key(task.status))
        return frozenset(keys)

    def prepare(self, store: TaskStore, policy: OrderingPolicy) -> Optional[PreparedChange]:
        task = store.get(self.task_id)
        anchor = store.get(self.anchor_id)
        if task is None or anchor is None or anchor.status != self.new_status:
            return None
        if task.status == self.new_status:
            return None
        plan = plan_move(
            store.tasks_by_column(task.status),
            store.tasks_by_column(self.new_status),
            task.id,
            before=anchor.id,
            **policy.params(),
        )
        updates = _order_updates(plan.source)
        updates.update(_order_updates(plan.destination, status=self.new_status))

        return PreparedChange(
            request=SyncRequest(
                SyncOperation.MOVE_WITH_POSITION,
                task_id=task.id,
                anchor_task_id=anchor.id,
                status=self.new_status,
            ),
            apply=lambda target: target.apply_orders(updates),
            columns=frozenset({task.status, self.new_status}),
        )


class DeleteTask(Mutation):
    """Remove a task."""

    kind = "delete"
    error_key = "errors.delete_failed"

    def __init__(self, task_id: str):
        self.task_id = task_id

    def lock_keys(self, store: TaskStore) -> FrozenSet[str]:
        keys = {task_key(self.task_id)}
        task = store.get(self.task_id)
        if task is not None:
            keys.add(column_key(task.status))
        return frozenset(keys)

    def prepare(self, store: TaskStore, policy: OrderingPolicy) -> Optional[PreparedChange]:
        task = store.get(self.task_id)
        if task is None:
            return None
        return PreparedChange(
            request=SyncRequest(SyncOperation.DELETE, task_id=task.id),
            apply=lambda target: target.remove(task.id),
            task_ids=frozenset({task.id}),
        )
