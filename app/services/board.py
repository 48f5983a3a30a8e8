# app/services/board.py
"""
Board reconciliation layer.

A ``BoardSession`` keeps two copies of a project's tasks: the last snapshot
pushed by the store (``authoritative``) and, while a move is in flight, an
optimistic overlay stamped with the authoritative epoch it was derived from.
Any snapshot newer than that epoch replaces the overlay outright. The overlay is
always the authoritative copy with the pending moves applied, so a failed move
only takes back its own task and leaves the moves still in flight visible.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set

from fastapi.concurrency import run_in_threadpool

from app.exceptions import StoreError, ValidationError, WorkflowError
from app.models import TaskStatus
from app.schemas import ChangeStatus, TaskOut, UserSummary
from app.services.dependency_graph import compute_blocked
from app.services.rules import check_feature_gate, check_not_blocked
from app.services.store import EntityStore, QuerySnapshot

logger = logging.getLogger(__name__)

CommitMove = Callable[[str, str, list], Awaitable[TaskOut]]


class MoveOutcome(str, enum.Enum):
    NOOP = "noop"
    REJECTED = "rejected"
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"


@dataclass
class MoveResult:
    outcome: MoveOutcome
    task_id: str
    status: Optional[TaskStatus] = None
    message: Optional[str] = None


@dataclass
class OptimisticOverlay:
    base_epoch: int
    tasks: List[TaskOut]


class BoardSession:
    def __init__(
        self,
        project_id: str,
        commit: CommitMove,
        on_error: Optional[Callable[[str], None]] = None,
        on_change: Optional[Callable[[List[TaskOut]], None]] = None,
    ):
        self.project_id = project_id
        self._commit = commit
        self._on_error = on_error
        self._on_change = on_change
        self.authoritative: List[TaskOut] = []
        self.authoritative_epoch = -1
        self.overlay: Optional[OptimisticOverlay] = None
        # task id -> target status of moves applied on top of the authoritative copy
        self._pending: Dict[str, TaskStatus] = {}
        self._view: List[TaskOut] = self.authoritative

    @classmethod
    def for_engine(
        cls,
        engine,
        project_id: str,
        acting_user: UserSummary,
        on_error: Optional[Callable[[str], None]] = None,
        on_change: Optional[Callable[[List[TaskOut]], None]] = None,
    ) -> "BoardSession":
        """Session whose moves go through a ``TaskLifecycleEngine`` on behalf of ``acting_user``"""

        async def commit(project_id: str, task_id: str, commands: list) -> TaskOut:
            return await run_in_threadpool(engine.transition_task, project_id, task_id, commands, acting_user)

        return cls(project_id, commit, on_error=on_error, on_change=on_change)

    def attach(self, store: EntityStore, schedule: Optional[Callable] = None) -> Callable[[], None]:
        """
        Subscribe to the project's tasks. Returns the unsubscribe callable.

        ``schedule(callback, snapshot)`` hands snapshots to the thread owning the
        session (e.g. ``loop.call_soon_threadsafe``). Without it they are applied
        in the committing thread.
        """
        if schedule is None:
            listener = self.on_snapshot
        else:
            def listener(snapshot):
                schedule(self.on_snapshot, snapshot)
        return store.subscribe_query("tasks", self.project_id, listener)

    @property
    def tasks(self) -> List[TaskOut]:
        """Current board view. The same list object is returned until the view changes."""
        return self._view

    def blocked_ids(self) -> Set[str]:
        return compute_blocked(self._view)

    # ------------------------------------------------------------------
    # Authoritative pushes
    # ------------------------------------------------------------------

    def on_snapshot(self, snapshot: QuerySnapshot) -> None:
        if snapshot.loading:
            return
        if snapshot.error is not None:
            logger.warning(f"Board {self.project_id} snapshot failed: {snapshot.error}")
            return
        if snapshot.epoch < self.authoritative_epoch:
            logger.debug(f"Ignoring stale board snapshot {snapshot.epoch} < {self.authoritative_epoch}")
            return

        self.authoritative = list(snapshot.data)
        self.authoritative_epoch = snapshot.epoch
        if self.overlay is not None and snapshot.epoch > self.overlay.base_epoch:
            self.overlay = None
            self._pending.clear()
        self._refresh()

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def resolve_target_status(self, over_id: str) -> Optional[TaskStatus]:
        """A drop target is either a column (status value) or another task"""
        try:
            return TaskStatus(over_id)
        except ValueError:
            pass
        for task in self._view:
            if task.id == over_id:
                return TaskStatus(task.status)
        return None

    async def move_task(self, task_id: str, over_id: str) -> MoveResult:
        task = next((t for t in self._view if t.id == task_id), None)
        if task is None:
            return MoveResult(MoveOutcome.NOOP, task_id)

        target = self.resolve_target_status(over_id)
        if target is None or target == TaskStatus(task.status):
            return MoveResult(MoveOutcome.NOOP, task_id, TaskStatus(task.status))

        try:
            check_feature_gate(task, target, task.feature_id)
            check_not_blocked(task, target, task.id in self.blocked_ids())
        except ValidationError as exc:
            logger.info(f"Board move of task {task_id} to {target.value} rejected: {exc.reason}")
            self._report(exc.message)
            return MoveResult(MoveOutcome.REJECTED, task_id, TaskStatus(task.status), exc.message)

        previous = self._pending.get(task_id)
        self._pending[task_id] = target
        self._rebuild_overlay()

        try:
            await self._commit(self.project_id, task_id, [ChangeStatus(status=target)])
        except WorkflowError as exc:
            message = f"{exc.message} The move was undone."
        except Exception as exc:
            logger.exception(f"Board move of task {task_id} failed: {exc}")
            message = f"{StoreError.default_message} The move was undone."
        else:
            return MoveResult(MoveOutcome.APPLIED, task_id, target)

        # skipped when a later move of the same task owns the entry
        if self._pending.get(task_id) == target:
            if previous is None:
                del self._pending[task_id]
            else:
                self._pending[task_id] = previous
            self._rebuild_overlay()
        self._report(message)
        return MoveResult(MoveOutcome.ROLLED_BACK, task_id, TaskStatus(task.status), message)

    # ------------------------------------------------------------------

    def _rebuild_overlay(self) -> None:
        if not self._pending:
            self.overlay = None
        else:
            self.overlay = OptimisticOverlay(
                base_epoch=self.authoritative_epoch,
                tasks=[
                    t.model_copy(update={"status": self._pending[t.id]}) if t.id in self._pending else t
                    for t in self.authoritative
                ],
            )
        self._refresh()

    def _refresh(self) -> None:
        view = self.overlay.tasks if self.overlay is not None else self.authoritative
        if view is self._view:
            return
        self._view = view
        if self._on_change:
            self._on_change(view)

    def _report(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)
