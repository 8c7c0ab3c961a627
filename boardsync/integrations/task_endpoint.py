"""Remote task endpoint integration with stub and live modes."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as SchemaValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from boardsync.config import Settings
from boardsync.core.exceptions import (
    NetworkError,
    NotFoundError,
    RequestTimeoutError,
    ValidationError,
)
from boardsync.schemas.task import ColumnResponse, Task, TaskCreate, TaskStatus, TaskUpdate

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """Task endpoint integration mode."""

    STUB = "stub"
    LIVE = "live"


class TaskEndpoint(ABC):
    """Logical operations of the remote source of truth for tasks."""

    @abstractmethod
    async def list_tasks(self) -> List[Task]:
        """Fetch every task of the workspace."""

    @abstractmethod
    async def create_task(self, payload: TaskCreate) -> Task:
        """Create a task; the result carries the id, ticket number and order."""

    @abstractmethod
    async def update_task(self, task_id: str, changes: TaskUpdate) -> Task:
        """Partially update a task (a status change moves it to the column top)."""

    @abstractmethod
    async def reorder_within_column(self, dragged_task_id: str, anchor_task_id: str, status: TaskStatus) -> ColumnResponse:
        """Move a task to its anchor's index within one column."""

    @abstractmethod
    async def move_with_position(self, task_id: str, new_status: TaskStatus, anchor_task_id: str) -> ColumnResponse:
        """Move a task to another column, right before the anchor task."""

    @abstractmethod
    async def delete_task(self, task_id: str) -> None:
        """Delete a task."""

    async def aclose(self) -> None:
        """Release any held resources."""


class HttpTaskEndpoint(TaskEndpoint):
    """Task endpoint reached over HTTP/JSON."""

    def __init__(
        self,
        base_url: str,
        workspace_id: str,
        *,
        prefix: str = "/api/v1",
        token: Optional[str] = None,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.workspace_id = workspace_id
        self.prefix = prefix.rstrip("/")
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._build_headers(token),
            timeout=timeout,
        )

    @staticmethod
    def _build_headers(token: Optional[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _path(self, suffix: str = "") -> str:
        return f"{self.prefix}/workspaces/{self.workspace_id}/tasks{suffix}"

    async def _request(self, method: str, suffix: str = "", payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        path = self._path(suffix)
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if response.is_success:
            return response

        detail = _error_detail(response)
        logger.info("Task endpoint rejected %s %s: %s %s", method, path, response.status_code, detail)
        if response.status_code in (400, 422):
            raise ValidationError(detail)
        if response.status_code == 404:
            raise NotFoundError(detail)
        if response.status_code in (408, 504):
            raise RequestTimeoutError(detail)
        raise NetworkError(f"{response.status_code}: {detail}")

    @staticmethod
    def _parse(response: httpx.Response, schema):
        try:
            return schema.model_validate(response.json())
        except (ValueError, SchemaValidationError) as exc:
            raise NetworkError(f"invalid response from task endpoint: {exc}") from exc

    async def list_tasks(self) -> List[Task]:
        # Reads are idempotent; mutations are never retried.
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception_type(NetworkError),
            reraise=True,
        ):
            with attempt:
                response = await self._request("GET")
        try:
            return [Task.model_validate(item) for item in response.json()]
        except (ValueError, TypeError, SchemaValidationError) as exc:
            raise NetworkError(f"invalid response from task endpoint: {exc}") from exc

    async def create_task(self, payload: TaskCreate) -> Task:
        response = await self._request("POST", payload=payload.model_dump(mode="json"))
        return self._parse(response, Task)

    async def update_task(self, task_id: str, changes: TaskUpdate) -> Task:
        response = await self._request(
            "PATCH",
            f"/{task_id}",
            payload=changes.model_dump(mode="json", exclude_unset=True),
        )
        return self._parse(response, Task)

    async def reorder_within_column(self, dragged_task_id: str, anchor_task_id: str, status: TaskStatus) -> ColumnResponse:
        response = await self._request(
            "PATCH",
            "/reorder",
            payload={
                "dragged_task_id": dragged_task_id,
                "over_task_id": anchor_task_id,
                "status": status.value,
            },
        )
        return self._parse(response, ColumnResponse)

    async def move_with_position(self, task_id: str, new_status: TaskStatus, anchor_task_id: str) -> ColumnResponse:
        response = await self._request(
            "PATCH",
            "/move-with-position",
            payload={
                "task_id": task_id,
                "new_status": new_status.value,
                "over_task_id": anchor_task_id,
            },
        )
        return self._parse(response, ColumnResponse)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/{task_id}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if detail:
            return str(detail)
    return str(body)[:500]


def build_task_endpoint(settings: Settings) -> TaskEndpoint:
    """Create the endpoint selected by SYNC_MODE."""
    from boardsync.integrations.stub_endpoint import StubTaskEndpoint

    mode = SyncMode(settings.SYNC_MODE.lower())
    if mode == SyncMode.STUB:
        return StubTaskEndpoint()
    if not settings.TASK_API_BASE_URL:
        raise ValueError("TASK_API_BASE_URL not configured")
    return HttpTaskEndpoint(
        settings.TASK_API_BASE_URL,
        settings.WORKSPACE_ID,
        prefix=settings.API_V1_PREFIX,
        token=settings.TASK_API_TOKEN,
        timeout=settings.SYNC_TIMEOUT_SECONDS,
        retry_attempts=settings.FETCH_RETRY_ATTEMPTS,
    )
