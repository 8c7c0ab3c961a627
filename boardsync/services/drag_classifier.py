"""Drag-and-drop interpretation.

``classify_drop`` decides what a finished drag means for the board without
touching anything; ``DragSession`` tracks the gesture itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from boardsync.schemas.task import Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskLookup(Protocol):
    def get(self, task_id: str) -> Optional[Task]: ...


def _parse_status(value: Optional[str]) -> Optional[TaskStatus]:
    if not value:
        return None
    try:
        return TaskStatus(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class DropTarget:
    """Where a drag ended: a column, and the task it landed on if any."""

    column: Optional[TaskStatus]
    task_id: Optional[str] = None

    @classmethod
    def from_raw(cls, container_id: Optional[str], over_id: Optional[str]) -> "DropTarget":
        """Build a target from the identifiers reported by the board UI.

        The column comes from the sortable container, or from ``over_id`` when
        the drop landed on the column itself. Unknown columns yield
        ``column=None``.
        """
        column = _parse_status(container_id) or _parse_status(over_id)
        task_id = over_id if over_id and _parse_status(over_id) is None else None
        return cls(column=column, task_id=task_id)


class DragOperationKind(str, Enum):
    REORDER = "reorder"
    MOVE_WITH_POSITION = "move_with_position"
    MOVE_TO_COLUMN = "move_to_column"
    NOOP = "noop"


@dataclass(frozen=True)
class DragOperation:
    kind: DragOperationKind
    task_id: Optional[str] = None
    source_status: Optional[TaskStatus] = None
    target_status: Optional[TaskStatus] = None
    anchor_task_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return self.kind == DragOperationKind.NOOP


def _noop(task_id: Optional[str], reason: str) -> DragOperation:
    return DragOperation(kind=DragOperationKind.NOOP, task_id=task_id, reason=reason)


def classify_drop(tasks: TaskLookup, dragged_id: str, target: Optional[DropTarget]) -> DragOperation:
    """Turn a finished drag into a board operation."""
    if target is None:
        return _noop(dragged_id, "dropped outside the board")
    dragged = tasks.get(dragged_id)
    if dragged is None:
        return _noop(dragged_id, "dragged task is unknown")
    if target.column is None:
        return _noop(dragged_id, "destination column is not recognised")
    if target.task_id == dragged_id:
        return _noop(dragged_id, "dropped onto itself")

    over = tasks.get(target.task_id) if target.task_id else None
    column = target.column

    if dragged.status == column:
        if over is not None and over.status == column:
            return DragOperation(
                kind=DragOperationKind.REORDER,
                task_id=dragged.id,
                source_status=dragged.status,
                target_status=column,
                anchor_task_id=over.id,
            )
        return _noop(dragged_id, "same column without an anchor task")

    if over is not None and over.status == column:
        return DragOperation(
            kind=DragOperationKind.MOVE_WITH_POSITION,
            task_id=dragged.id,
            source_status=dragged.status,
            target_status=column,
            anchor_task_id=over.id,
        )
    return DragOperation(
        kind=DragOperationKind.MOVE_TO_COLUMN,
        task_id=dragged.id,
        source_status=dragged.status,
        target_status=column,
    )


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    REORDERING = "reordering"
    MOVING_WITH_POSITION = "moving_with_position"
    MOVING_TO_COLUMN = "moving_to_column"
    CANCELLED = "cancelled"


_STATE_FOR_KIND = {
    DragOperationKind.REORDER: DragState.REORDERING,
    DragOperationKind.MOVE_WITH_POSITION: DragState.MOVING_WITH_POSITION,
    DragOperationKind.MOVE_TO_COLUMN: DragState.MOVING_TO_COLUMN,
    DragOperationKind.NOOP: DragState.CANCELLED,
}


class DragStateError(RuntimeError):
    """A drag event arrived in a state that cannot accept it."""


class DragSession:
    """One drag gesture at a time, from pick-up to drop.

    Hover updates are kept for presentation only; the board changes only when
    ``end`` returns an operation and the caller submits it.
    """

    def __init__(self, tasks: TaskLookup):
        self._tasks = tasks
        self.state = DragState.IDLE
        self.active_id: Optional[str] = None
        self.hover: Optional[DropTarget] = None
        self.last_outcome: Optional[DragState] = None

    def start(self, task_id: str) -> None:
        if self.state != DragState.IDLE:
            raise DragStateError(f"cannot start a drag while {self.state.value}")
        self.state = DragState.DRAGGING
        self.active_id = task_id
        self.hover = None

    def drag_over(self, target: Optional[DropTarget]) -> None:
        if self.state != DragState.DRAGGING:
            raise DragStateError(f"drag_over while {self.state.value}")
        self.hover = target

    def end(self, target: Optional[DropTarget]) -> DragOperation:
        if self.state != DragState.DRAGGING:
            raise DragStateError(f"cannot end a drag while {self.state.value}")
        operation = classify_drop(self._tasks, self.active_id, target)
        self.state = _STATE_FOR_KIND[operation.kind]
        logger.debug("Drag of %s ended as %s", self.active_id, operation.kind.value)
        self._reset()
        return operation

    def cancel(self) -> None:
        if self.state != DragState.DRAGGING:
            raise DragStateError(f"cannot cancel a drag while {self.state.value}")
        self.state = DragState.CANCELLED
        self._reset()

    def _reset(self) -> None:
        self.last_outcome = self.state
        self.state = DragState.IDLE
        self.active_id = None
        self.hover = None
