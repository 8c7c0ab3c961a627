"""Custom exceptions.

Every failure that can come back from the remote task endpoint is one of the
classes below. The sync layer catches them at its boundary and the mutation
engine turns them into a rollback plus a user-visible notification.
"""
from typing import Optional


class BoardSyncError(Exception):
    """Base class for remote task endpoint failures."""

    status_code: int = 500
    severity: str = "error"
    default_detail: str = "Task endpoint request failed"

    def __init__(self, detail: Optional[str] = None, task_id: Optional[str] = None):
        self.detail = detail or self.default_detail
        self.task_id = task_id
        super().__init__(self.detail)


class ValidationError(BoardSyncError):
    """Malformed mutation, e.g. a task created without a title."""

    status_code = 422
    default_detail = "Validation error"


class NotFoundError(BoardSyncError):
    """Target or anchor task no longer exists remotely."""

    status_code = 404
    severity = "notice"
    default_detail = "Task not found"


class NetworkError(BoardSyncError):
    """Transport failure or a rejected (non-2xx) response."""

    status_code = 503
    default_detail = "Task endpoint unavailable"


class RequestTimeoutError(NetworkError):
    """The remote task endpoint did not answer in time."""

    status_code = 504
    default_detail = "Task endpoint timed out"
