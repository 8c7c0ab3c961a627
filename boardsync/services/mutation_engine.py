"""Optimistic mutation engine.

A submitted mutation is applied to the task store right away and confirmed
in the background through the sync service. If confirmation fails, the store
region the mutation touched is restored from the snapshot taken just before
the optimistic write, and listeners get a notification.

Mutations touching the same task or the same column run one at a time, in
submission order; unrelated mutations run concurrently.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, FrozenSet, Iterable, List, Optional, Set, Type

from boardsync.core.exceptions import BoardSyncError, NotFoundError, ValidationError
from boardsync.core.metrics import mutation_rollbacks_total
from boardsync.localization.helpers import get_translation
from boardsync.schemas.task import Task
from boardsync.services.mutations import Mutation, OrderingPolicy, PreparedChange
from boardsync.services.sync_service import SyncOutcome, SyncService
from boardsync.services.task_store import StoreSnapshot, TaskStore

logger = logging.getLogger(__name__)

_handle_ids = itertools.count(1)


class MutationState(str, Enum):
    QUEUED = "queued"
    APPLIED = "applied"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"
    DISCARDED = "discarded"
    REJECTED = "rejected"


FINAL_STATES = frozenset({
    MutationState.CONFIRMED,
    MutationState.ROLLED_BACK,
    MutationState.DISCARDED,
    MutationState.REJECTED,
})


@dataclass(frozen=True)
class Notification:
    """User-visible message about a mutation that did not go through."""

    level: str
    message: str
    mutation: str
    task_id: Optional[str] = None
    error: Optional[BoardSyncError] = None


NotificationListener = Callable[[Notification], None]


class MutationHandle:
    """Tracks one submitted mutation until it settles."""

    def __init__(self, mutation: Optional[Mutation]):
        self.id = next(_handle_ids)
        self.mutation = mutation
        self.state = MutationState.QUEUED
        self.error: Optional[BoardSyncError] = None
        self.snapshot: Optional[StoreSnapshot] = None
        self.generation = 0
        self._settled = asyncio.Event()

    @property
    def done(self) -> bool:
        return self.state in FINAL_STATES

    async def wait(self) -> MutationState:
        """Wait until the mutation is confirmed, rolled back or dropped."""
        await self._settled.wait()
        return self.state

    def _settle(self, state: MutationState, error: Optional[BoardSyncError] = None) -> None:
        self.state = state
        self.error = error
        self._settled.set()

    def __repr__(self) -> str:
        return f"<MutationHandle {self.id} {self.mutation!r} {self.state.value}>"


class MutationEngine:
    """Applies mutations optimistically and reconciles or rolls them back."""

    def __init__(
        self,
        store: TaskStore,
        sync: SyncService,
        notifier: Optional[NotificationListener] = None,
        policy: Optional[OrderingPolicy] = None,
        locale: str = "en",
    ):
        self.store = store
        self.sync = sync
        self.policy = policy or OrderingPolicy()
        self.locale = locale
        self._queue: Deque[MutationHandle] = deque()
        self._busy: Set[str] = set()
        self._inflight: Set[asyncio.Task] = set()
        self._aliases: Dict[str, str] = {}
        self._generation = 0
        self._listeners: List[NotificationListener] = [notifier] if notifier else []

    # Listeners

    def on_notification(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, notification: Notification) -> None:
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")

    # Submission

    @property
    def pending_count(self) -> int:
        return len(self._queue) + len(self._inflight)

    def resolve_id(self, task_id: str) -> str:
        """Confirmed id for a task that was created with a temporary id."""
        return self._aliases.get(task_id, task_id)

    def submit(self, mutation: Mutation) -> MutationHandle:
        """Queue a mutation; it is applied at once if nothing blocks it.

        Raises RuntimeError without touching the store when called outside a
        running event loop, since confirmation needs one.
        """
        asyncio.get_running_loop()
        handle = MutationHandle(mutation)
        self._queue.append(handle)
        self._pump()
        return handle

    def reject(self, mutation_type: Type[Mutation], error: BoardSyncError) -> MutationHandle:
        """Refuse a mutation that could not even be built, e.g. an invalid payload."""
        handle = MutationHandle(None)
        handle._settle(MutationState.REJECTED, error)
        logger.info("Rejected %s: %s", mutation_type.__name__, error.detail)
        self._notify(self._notification(mutation_type, error))
        return handle

    async def drain(self) -> None:
        """Wait until every submitted mutation has settled."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def reset(self, tasks: Iterable[Task]) -> None:
        """Replace the board with freshly loaded tasks.

        Snapshots taken before the reset are never restored over it; a
        mutation applied earlier that fails later only reports its failure.
        """
        self.store.reset(tasks)
        self._generation += 1

    # Scheduling

    def _pump(self) -> None:
        blocked: Set[str] = set()
        for handle in list(self._queue):
            handle.mutation.remap_ids(self._aliases)
            keys = handle.mutation.lock_keys(self.store)
            if keys & self._busy or keys & blocked:
                blocked |= keys
                continue
            self._queue.remove(handle)
            self._start(handle, keys)

    def _start(self, handle: MutationHandle, keys: FrozenSet[str]) -> None:
        loop = asyncio.get_running_loop()
        mutation = handle.mutation
        try:
            change = mutation.prepare(self.store, self.policy)
        except (KeyError, ValueError) as exc:
            logger.info("Discarded %r: %s", mutation, exc)
            handle._settle(MutationState.DISCARDED)
            return
        if change is None:
            logger.info("Discarded %r: target no longer applies", mutation)
            handle._settle(MutationState.DISCARDED)
            return

        handle.snapshot = self.store.snapshot(change.columns, change.task_ids)
        handle.generation = self._generation
        change.apply(self.store)
        handle.state = MutationState.APPLIED
        self._busy |= keys
        logger.debug("Applied %r optimistically", mutation)

        task = loop.create_task(self._confirm(handle, change, keys))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _confirm(self, handle: MutationHandle, change: PreparedChange, keys: FrozenSet[str]) -> None:
        try:
            try:
                outcome = await self.sync.dispatch(change.request)
            except Exception as exc:
                logger.exception("Unexpected failure confirming %r", handle.mutation)
                outcome = SyncOutcome(request=change.request, ok=False, error=BoardSyncError(str(exc)))

            if outcome.ok:
                self._reconcile(handle, outcome)
            else:
                self._rollback(handle, outcome.error or BoardSyncError())
        finally:
            self._busy -= keys
            self._pump()

    def _reconcile(self, handle: MutationHandle, outcome: SyncOutcome) -> None:
        try:
            aliases = handle.mutation.reconcile(self.store, outcome)
        except Exception:
            logger.exception("Could not reconcile %r; keeping optimistic state", handle.mutation)
            aliases = {}
        self._aliases.update(aliases)
        handle._settle(MutationState.CONFIRMED)
        logger.debug("Confirmed %r", handle.mutation)

    def _rollback(self, handle: MutationHandle, error: BoardSyncError) -> None:
        mutation = handle.mutation
        if handle.generation != self._generation:
            logger.info("Not restoring %r: the board was reloaded after it was applied", mutation)
        elif handle.snapshot is not None:
            self.store.restore(handle.snapshot)
        mutation_rollbacks_total.labels(mutation.kind, type(error).__name__).inc()
        logger.warning(
            "Rolled back %r: %s",
            mutation,
            error.detail,
            extra={"mutation": mutation.kind, "error_type": type(error).__name__},
        )
        handle._settle(MutationState.ROLLED_BACK, error)
        self._notify(self._notification(type(mutation), error, mutation.task_id))

    def _notification(
        self,
        mutation: Type[Mutation],
        error: BoardSyncError,
        task_id: Optional[str] = None,
    ) -> Notification:
        task_id = error.task_id or task_id
        if isinstance(error, NotFoundError):
            message = get_translation("notices.task_missing", self.locale, task_id=task_id)
        elif isinstance(error, ValidationError):
            message = get_translation("errors.validation_error", self.locale, detail=error.detail)
        else:
            message = get_translation(mutation.error_key, self.locale)
        return Notification(
            level=error.severity,
            message=message,
            mutation=mutation.kind,
            task_id=task_id,
            error=error,
        )
