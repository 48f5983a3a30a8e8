# app/services/transitions.py
"""
Transition planning and cascade rules for task updates.

``build_plan`` folds a list of commands into a before/after view of the task.
Each cascade rule looks at a plan (plus whatever snapshot it needs) and returns
the effects it wants applied. Rules never write anything themselves, the task
lifecycle engine applies the effects together with the primary update.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.exceptions import ValidationError, EMPTY_TRANSITION
from app.models import (
    FeatureStatus, TaskStatus, QA_GATED_STATUSES, PRE_QA_STATUSES, feature_rank, task_rank,
)
from app.schemas import (
    AssignUser, ChangeStatus, ClearFeature, EditDetails, FeatureOut, SetFeature, TaskOut, UserSummary,
)

logger = logging.getLogger(__name__)


@dataclass
class TransitionPlan:
    before: TaskOut
    status: TaskStatus
    feature_id: Optional[str]
    assignee: Optional[UserSummary]
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def status_changed(self) -> bool:
        return self.status != self.before.status

    @property
    def feature_changed(self) -> bool:
        return self.feature_id != self.before.feature_id

    @property
    def assignee_changed(self) -> bool:
        before = self.before.assignee.uid if self.before.assignee else None
        after = self.assignee.uid if self.assignee else None
        return before != after


def build_plan(before: TaskOut, commands: Sequence) -> TransitionPlan:
    """Fold commands in order. Later commands win over earlier ones."""
    if not commands:
        raise ValidationError("Nothing to change: send at least one command.", reason=EMPTY_TRANSITION)

    plan = TransitionPlan(
        before=before,
        status=TaskStatus(before.status),
        feature_id=before.feature_id,
        assignee=before.assignee,
    )
    for command in commands:
        if isinstance(command, ChangeStatus):
            plan.status = TaskStatus(command.status)
        elif isinstance(command, AssignUser):
            plan.assignee = command.assignee
        elif isinstance(command, SetFeature):
            plan.feature_id = command.feature_id
        elif isinstance(command, ClearFeature):
            plan.feature_id = None
        elif isinstance(command, EditDetails):
            edits = command.model_dump(exclude_unset=True, exclude={"kind"})
            # title and description cannot be cleared, only replaced
            for name in ("title", "description"):
                if edits.get(name, "") is None:
                    edits.pop(name)
            plan.fields.update(edits)
        else:
            raise ValidationError(f"Unsupported command: {type(command).__name__}")
    return plan


# ----------------------------------------------------------------------
# Effects
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class StopTimer:
    user_id: str


@dataclass(frozen=True)
class MarkReproved:
    pass


@dataclass(frozen=True)
class SetFeatureStatus:
    feature_id: str
    status: FeatureStatus


# ----------------------------------------------------------------------
# Rules
# ----------------------------------------------------------------------

def timer_stop_rule(plan: TransitionPlan, timers: Dict[str, Optional[dict]]) -> List[StopTimer]:
    """
    Moving a task past the QA boundary stops any timer running on it.

    ``timers`` maps candidate user ids (assignee, acting user) to their current
    ``active_timer`` value.
    """
    if not plan.status_changed or plan.status not in QA_GATED_STATUSES:
        return []
    return [
        StopTimer(user_id)
        for user_id, timer in timers.items()
        if timer and timer.get("task_id") == plan.before.id
    ]


def reproval_rule(plan: TransitionPlan, prior_feature: Optional[FeatureOut]) -> list:
    """Pulling a task back across the QA boundary flags it and demotes its feature"""
    prior_status = TaskStatus(plan.before.status)
    if prior_status not in QA_GATED_STATUSES or plan.status not in PRE_QA_STATUSES:
        return []
    effects: list = [MarkReproved()]
    if prior_feature is not None and feature_rank(prior_feature.status) >= feature_rank(FeatureStatus.IN_TESTING):
        effects.append(SetFeatureStatus(prior_feature.id, FeatureStatus.IN_DEVELOPMENT))
    return effects


def feature_start_rule(plan: TransitionPlan, feature: Optional[FeatureOut]) -> List[SetFeatureStatus]:
    """The first task leaving To Do for In Progress starts its feature"""
    if feature is None:
        return []
    if TaskStatus(plan.before.status) != TaskStatus.TODO or plan.status != TaskStatus.IN_PROGRESS:
        return []
    if FeatureStatus(feature.status) != FeatureStatus.BACKLOG:
        return []
    return [SetFeatureStatus(feature.id, FeatureStatus.IN_DEVELOPMENT)]


def qa_promotion_rule(
    plan: TransitionPlan,
    feature: Optional[FeatureOut],
    siblings: Iterable[TaskOut],
) -> List[SetFeatureStatus]:
    """
    A task reaching Ready for QA promotes its feature to In Testing once every
    task of the feature is at or beyond Ready for QA.

    ``siblings`` are the other tasks of the feature, excluding the planned task.
    """
    if feature is None or plan.status != TaskStatus.READY_FOR_QA:
        return []
    if not (plan.status_changed or plan.feature_changed):
        return []
    if FeatureStatus(feature.status) != FeatureStatus.IN_DEVELOPMENT:
        return []
    threshold = task_rank(TaskStatus.READY_FOR_QA)
    if any(task_rank(sibling.status) < threshold for sibling in siblings if sibling.id != plan.before.id):
        return []
    return [SetFeatureStatus(feature.id, FeatureStatus.IN_TESTING)]


def evaluate_cascades(
    plan: TransitionPlan,
    timers: Dict[str, Optional[dict]],
    prior_feature: Optional[FeatureOut],
    feature: Optional[FeatureOut],
    siblings: Iterable[TaskOut],
) -> list:
    """Run every cascade rule and return the combined effects in apply order"""
    effects: list = []
    effects.extend(timer_stop_rule(plan, timers))
    effects.extend(reproval_rule(plan, prior_feature))
    effects.extend(feature_start_rule(plan, feature))
    effects.extend(qa_promotion_rule(plan, feature, siblings))
    if effects:
        logger.debug(f"Task {plan.before.id} cascades: {effects}")
    return effects
