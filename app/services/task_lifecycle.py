# app/services/task_lifecycle.py
"""
Task lifecycle engine.

``transition_task`` runs load -> plan -> validate -> cascade -> apply in one
store transaction, then emits activity and notifications after the commit.
Rule violations are raised before anything is written.
"""

import logging
from typing import Dict, Optional, Sequence

from sqlalchemy.orm import Session

from app.database import generate_id
from app.exceptions import NotFoundError, ValidationError
from app.models import ActivityType, Feature, Project, Task, TaskStatus, User
from app.schemas import FeatureOut, TaskCreate, TaskOut, UserSummary
from app.services.activity_log import ActivityLog
from app.services.notification_service import NotificationService
from app.services.rules import STATUS_LABELS, check_transition, is_blocked_by
from app.services.store import EntityStore
from app.services.time_tracking import TimeTracker
from app.services.transitions import (
    MarkReproved, SetFeatureStatus, StopTimer, TransitionPlan, build_plan, evaluate_cascades,
)

logger = logging.getLogger(__name__)


class TaskLifecycleEngine:
    def __init__(
        self,
        store: EntityStore,
        time_tracker: TimeTracker,
        activity_log: Optional[ActivityLog] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.store = store
        self.time_tracker = time_tracker
        self.activity_log = activity_log
        self.notifier = notifier

    def create_task(self, project_id: str, data: TaskCreate, acting_user: UserSummary) -> TaskOut:
        """New tasks always start in To Do with empty arrays"""
        with self.store.transaction() as session:
            if session.get(Project, project_id) is None:
                raise NotFoundError("project", project_id)
            module_id = None
            if data.feature_id:
                module_id = self.store.get_feature(session, data.feature_id, project_id).module_id

            task = Task(
                id=generate_id(),
                project_id=project_id,
                title=data.title,
                description=data.description,
                status=TaskStatus.TODO,
                assignee=data.assignee.model_dump() if data.assignee else None,
                feature_id=data.feature_id,
                module_id=module_id,
                category_id=data.category_id,
                due_date=data.due_date,
                dependencies=[],
                time_logs=[],
                links=[],
                comments_count=0,
                has_been_reproved=False,
            )
            session.add(task)
            session.flush()
            out = TaskOut.model_validate(task)

        logger.info(f"Task {out.id} created in project {project_id}")
        if self.activity_log:
            self.activity_log.record(
                project_id, ActivityType.TASK_CREATED,
                f"{self._actor(acting_user)} created task \"{out.title}\".", acting_user, out.id,
            )
        if self.notifier and out.assignee:
            self.notifier.notify_task_assigned(project_id, out.id, out.title, out.assignee, acting_user)
        return out

    def transition_task(
        self,
        project_id: str,
        task_id: str,
        commands: Sequence,
        acting_user: UserSummary,
    ) -> TaskOut:
        """Apply ``commands`` to a task together with every cascade they trigger"""
        with self.store.transaction() as session:
            # load + plan
            task = self.store.get_task(session, task_id, project_id, for_update=True)
            before = TaskOut.model_validate(task)
            plan = build_plan(before, commands)

            feature = self._load_feature(session, project_id, plan.feature_id)
            if before.feature_id == plan.feature_id:
                prior_feature = feature
            else:
                prior_feature = self._load_feature(session, project_id, before.feature_id, required=False)
            blockers = [TaskOut.model_validate(t) for t in self.store.tasks_by_ids(session, before.blocked_by_ids())]

            # validate
            try:
                check_transition(before, plan.status, plan.feature_id, is_blocked_by(before, blockers))
            except ValidationError as exc:
                logger.info(f"Rejected transition of task {task_id} to {plan.status.value}: {exc.reason}")
                raise

            # cascade
            siblings = []
            if feature is not None:
                siblings = [
                    TaskOut.model_validate(t)
                    for t in self.store.tasks_for_feature(session, project_id, feature.id)
                    if t.id != task_id
                ]
            effects = evaluate_cascades(
                plan, self._candidate_timers(session, plan, acting_user), prior_feature, feature, siblings,
            )

            # apply
            for effect in effects:
                if isinstance(effect, StopTimer):
                    self.time_tracker.stop_in_session(session, effect.user_id)
            self._apply_plan(task, plan, feature)
            for effect in effects:
                if isinstance(effect, MarkReproved):
                    task.has_been_reproved = True
                elif isinstance(effect, SetFeatureStatus):
                    self.store.get_feature(session, effect.feature_id, for_update=True).status = effect.status
                    logger.debug(f"Feature {effect.feature_id} -> {effect.status.value} via task {task_id}")
            session.flush()
            after = TaskOut.model_validate(task)

        if plan.status_changed:
            logger.info(f"Task {task_id} moved {before.status.value} -> {after.status.value}")
        self._emit(project_id, plan, after, acting_user)
        return after

    def delete_task(self, project_id: str, task_id: str) -> None:
        """Remove the task document. Edges on other tasks are left in place."""
        with self.store.transaction() as session:
            task = self.store.get_task(session, task_id, project_id, for_update=True)
            session.delete(task)
        logger.info(f"Task {task_id} deleted from project {project_id}")

    # ------------------------------------------------------------------

    def _load_feature(
        self,
        session: Session,
        project_id: str,
        feature_id: Optional[str],
        required: bool = True,
    ) -> Optional[FeatureOut]:
        if not feature_id:
            return None
        if required:
            return FeatureOut.model_validate(self.store.get_feature(session, feature_id, project_id, for_update=True))
        feature = session.get(Feature, feature_id)
        return FeatureOut.model_validate(feature) if feature is not None else None

    @staticmethod
    def _candidate_timers(session: Session, plan: TransitionPlan, acting_user: UserSummary) -> Dict[str, Optional[dict]]:
        """Current timers of the users who may be timing this task"""
        user_ids = {acting_user.uid}
        if plan.before.assignee:
            user_ids.add(plan.before.assignee.uid)
        timers = {}
        for user_id in sorted(user_ids):
            user = session.get(User, user_id)
            if user is not None:
                timers[user_id] = user.active_timer
        return timers

    @staticmethod
    def _apply_plan(task: Task, plan: TransitionPlan, feature: Optional[FeatureOut]) -> None:
        task.status = plan.status
        if plan.assignee_changed:
            task.assignee = plan.assignee.model_dump() if plan.assignee else None
        if plan.feature_changed:
            task.feature_id = plan.feature_id
            task.module_id = feature.module_id if feature else None
        for field_name, value in plan.fields.items():
            setattr(task, field_name, value)

    def _emit(self, project_id: str, plan: TransitionPlan, after: TaskOut, acting_user: UserSummary) -> None:
        if plan.status_changed and self.activity_log:
            self.activity_log.record(
                project_id, ActivityType.TASK_STATUS_CHANGED,
                f"{self._actor(acting_user)} moved task \"{after.title}\" to {STATUS_LABELS[plan.status]}.",
                acting_user, after.id,
            )
        if plan.assignee_changed and plan.assignee and self.notifier:
            self.notifier.notify_task_assigned(project_id, after.id, after.title, plan.assignee, acting_user)

    @staticmethod
    def _actor(acting_user: UserSummary) -> str:
        return acting_user.display_name or "Someone"

