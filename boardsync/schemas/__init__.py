"""Schema modules."""
from boardsync.schemas.task import (
    ColumnResponse,
    MoveWithPositionRequest,
    ReorderRequest,
    SyncState,
    Task,
    TaskCreate,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
)
