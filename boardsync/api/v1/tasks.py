"""Workspace tasks API endpoints."""
from typing import List

from fastapi import APIRouter, Depends, Response, status

from boardsync.dependencies import get_workspace_board
from boardsync.integrations.stub_endpoint import StubTaskEndpoint
from boardsync.schemas.task import (
    ColumnResponse,
    MoveWithPositionRequest,
    ReorderRequest,
    Task,
    TaskCreate,
    TaskUpdate,
)

router = APIRouter()


@router.get("", response_model=List[Task])
async def list_tasks(board: StubTaskEndpoint = Depends(get_workspace_board)):
    """List every task of the workspace."""
    return await board.list_tasks()


@router.post("", response_model=Task, status_code=status.HTTP_201_CREATED)
async def create_task(payload: TaskCreate, board: StubTaskEndpoint = Depends(get_workspace_board)):
    """Create a task at the bottom of its column."""
    return await board.create_task(payload)


# Static paths go before /{task_id}
@router.patch("/reorder", response_model=ColumnResponse)
async def reorder_tasks(request: ReorderRequest, board: StubTaskEndpoint = Depends(get_workspace_board)):
    """Move a task to the anchor task's position within one column."""
    return await board.reorder_within_column(request.dragged_task_id, request.over_task_id, request.status)


@router.patch("/move-with-position", response_model=ColumnResponse)
async def move_task_with_position(
    request: MoveWithPositionRequest,
    board: StubTaskEndpoint = Depends(get_workspace_board),
):
    """Move a task to another column, in front of the anchor task."""
    return await board.move_with_position(request.task_id, request.new_status, request.over_task_id)


@router.patch("/{task_id}", response_model=Task)
async def update_task(task_id: str, changes: TaskUpdate, board: StubTaskEndpoint = Depends(get_workspace_board)):
    """Update task fields; a status change puts the task at the top of its new column."""
    return await board.update_task(task_id, changes)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, board: StubTaskEndpoint = Depends(get_workspace_board)):
    """Delete a task."""
    await board.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
