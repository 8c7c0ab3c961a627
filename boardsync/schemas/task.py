"""Task schemas."""
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

TEMP_ID_PREFIX = "temp-"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Board columns, in display order."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, Enum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class SyncState(str, Enum):
    """Whether the remote endpoint has confirmed a task."""

    PENDING = "pending"
    CONFIRMED = "confirmed"


class TaskBase(BaseModel):
    """Base task schema."""

    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[str] = None
    due_date: Optional[date] = None


class TaskCreate(TaskBase):
    """Task creation schema."""

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Title is required")
        return value.strip()


class TaskUpdate(BaseModel):
    """Partial task update; at least one field must be set."""

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None
    due_date: Optional[date] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("Title is required")
        return value.strip() if value is not None else value

    @model_validator(mode="after")
    def has_changes(self) -> "TaskUpdate":
        if not self.model_fields_set:
            raise ValueError("No valid fields to update")
        return self


class Task(TaskBase):
    """A task on the board, as held by the local store."""

    id: str
    task_order: float
    ticket_number: Optional[str] = None
    sync_state: SyncState = SyncState.CONFIRMED
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: Optional[datetime] = None

    model_config = {"frozen": True}

    @property
    def is_pending(self) -> bool:
        return self.sync_state == SyncState.PENDING

    @classmethod
    def pending(cls, payload: TaskCreate, task_order: float, temp_id: Optional[str] = None) -> "Task":
        """Build a placeholder for a task whose creation is not confirmed yet."""
        return cls(
            id=temp_id or f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}",
            task_order=task_order,
            sync_state=SyncState.PENDING,
            ticket_number=None,
            **payload.model_dump(),
        )


class ReorderRequest(BaseModel):
    """Reorder a task within its column, taking the anchor task's place."""

    dragged_task_id: str
    over_task_id: str
    status: TaskStatus


class MoveWithPositionRequest(BaseModel):
    """Move a task to another column, in front of an anchor task."""

    task_id: str
    new_status: TaskStatus
    over_task_id: str


class ColumnResponse(BaseModel):
    """Authoritative state of a column after a reorder or move."""

    status: TaskStatus
    tasks: List[Task]
