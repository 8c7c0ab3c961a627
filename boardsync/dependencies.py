"""FastAPI dependencies for the reference task endpoint."""
from typing import Dict

from fastapi import Request

from boardsync.integrations.stub_endpoint import StubTaskEndpoint


class WorkspaceRegistry:
    """One in-memory board per workspace id."""

    def __init__(self):
        self._workspaces: Dict[str, StubTaskEndpoint] = {}

    def get(self, workspace_id: str) -> StubTaskEndpoint:
        board = self._workspaces.get(workspace_id)
        if board is None:
            board = StubTaskEndpoint()
            self._workspaces[workspace_id] = board
        return board

    def __len__(self) -> int:
        return len(self._workspaces)

    def clear(self) -> None:
        self._workspaces.clear()


def get_workspace_board(workspace_id: str, request: Request) -> StubTaskEndpoint:
    """Resolve the board behind ``/workspaces/{workspace_id}/tasks``."""
    registry: WorkspaceRegistry = request.app.state.workspaces
    return registry.get(workspace_id)
