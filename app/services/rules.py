# app/services/rules.py
"""
Transition rules shared by the task lifecycle engine and the board session.

These functions are pure: they look at snapshots only and raise
``ValidationError`` on violation, before anything is written.
"""

from typing import Iterable, Optional

from app.exceptions import ValidationError, FEATURE_REQUIRED, BLOCKED_BY_DEPENDENCY
from app.models import TaskStatus, QA_GATED_STATUSES
from app.schemas import TaskOut
from app.services.dependency_graph import compute_blocked

STATUS_LABELS = {
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.READY_FOR_QA: "Ready for QA",
    TaskStatus.IN_TESTING: "In Testing",
    TaskStatus.APPROVED: "Approved",
    TaskStatus.DONE: "Done",
}


def check_feature_gate(task: TaskOut, status: TaskStatus, feature_id: Optional[str]) -> None:
    """Statuses past the QA boundary need a linked feature"""
    status = TaskStatus(status)
    if status in QA_GATED_STATUSES and not feature_id:
        raise ValidationError(
            f'Task "{task.title}" is not associated with a feature. '
            f'Link it to a feature before moving it to {STATUS_LABELS[status]}.',
            reason=FEATURE_REQUIRED,
        )


def check_not_blocked(task: TaskOut, status: TaskStatus, is_blocked: bool) -> None:
    """A blocked task may only sit in To Do"""
    status = TaskStatus(status)
    if is_blocked and status != TaskStatus.TODO:
        raise ValidationError(
            f'Task "{task.title}" is blocked by a dependency that is not done yet. '
            f'Finish the blocking tasks before moving it to {STATUS_LABELS[status]}.',
            reason=BLOCKED_BY_DEPENDENCY,
        )


def is_blocked_by(task: TaskOut, blockers: Iterable[TaskOut]) -> bool:
    return task.id in compute_blocked([task, *blockers])


def check_transition(
    task: TaskOut,
    status: TaskStatus,
    feature_id: Optional[str],
    is_blocked: bool,
) -> None:
    """Both rules for a status change. Raises on the first violation."""
    check_feature_gate(task, status, feature_id)
    if TaskStatus(status) != task.status:
        check_not_blocked(task, status, is_blocked)
