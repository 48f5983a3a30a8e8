# app/services/feature_lifecycle.py
"""
Feature lifecycle engine: manual QA actions on features and on the tasks
under test, plus feature CRUD. Automatic promotion/demotion triggered by task
moves lives in ``app.services.transitions`` and is applied by the task engine.
"""

import logging
from typing import List, Optional

from app.database import generate_id
from app.exceptions import NotFoundError, ValidationError, FEATURE_MISMATCH, TEST_CASES_PENDING
from app.models import ActivityType, Feature, FeatureStatus, Project, TaskStatus, QA_GATED_STATUSES
from app.schemas import FeatureCreate, FeatureOut, FeatureUpdate, TaskOut, UserSummary
from app.services.activity_log import ActivityLog
from app.services.comments import CommentService
from app.services.notification_service import NotificationService
from app.services.store import EntityStore

logger = logging.getLogger(__name__)

APPROVED_OR_DONE = frozenset({TaskStatus.APPROVED, TaskStatus.DONE})


class FeatureLifecycleEngine:
    def __init__(
        self,
        store: EntityStore,
        comments: CommentService,
        activity_log: Optional[ActivityLog] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.store = store
        self.comments = comments
        self.activity_log = activity_log
        self.notifier = notifier

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_feature(self, project_id: str, data: FeatureCreate) -> FeatureOut:
        with self.store.transaction() as session:
            if session.get(Project, project_id) is None:
                raise NotFoundError("project", project_id)
            feature = Feature(
                id=generate_id(),
                project_id=project_id,
                module_id=data.module_id,
                name=data.name,
                description=data.description,
                status=FeatureStatus.BACKLOG,
                user_flows=[flow.model_dump() for flow in data.user_flows],
                test_cases=[case.model_dump() for case in data.test_cases],
            )
            session.add(feature)
            session.flush()
            out = FeatureOut.model_validate(feature)

        logger.info(f"Feature {out.id} created in project {project_id}")
        return out

    def update_feature(self, project_id: str, feature_id: str, data: FeatureUpdate) -> FeatureOut:
        """Last write wins. Status is never touched here."""
        updates = data.model_dump(exclude_unset=True)
        with self.store.transaction() as session:
            feature = self.store.get_feature(session, feature_id, project_id, for_update=True)
            for field_name, value in updates.items():
                if value is None and field_name in ("name", "description", "user_flows", "test_cases"):
                    continue
                setattr(feature, field_name, value)
            session.flush()
            return FeatureOut.model_validate(feature)

    def set_test_case_status(self, project_id: str, feature_id: str, test_case_id: str, status: str) -> FeatureOut:
        with self.store.transaction() as session:
            feature = self.store.get_feature(session, feature_id, project_id, for_update=True)
            cases = [dict(case) for case in (feature.test_cases or [])]
            for case in cases:
                if case.get("id") == test_case_id:
                    case["status"] = status
                    break
            else:
                raise NotFoundError("test case", test_case_id)
            feature.test_cases = cases
            session.flush()
            return FeatureOut.model_validate(feature)

    def delete_feature(self, project_id: str, feature_id: str) -> List[str]:
        """
        Delete a feature and unlink its tasks in the same transaction.

        Tasks past the QA boundary cannot stay there without a feature, so they
        fall back to Ready for QA. Returns the ids of the unlinked tasks.
        """
        with self.store.transaction() as session:
            feature = self.store.get_feature(session, feature_id, project_id, for_update=True)
            tasks = self.store.tasks_for_feature(session, project_id, feature_id, for_update=True)
            for task in tasks:
                task.feature_id = None
                if TaskStatus(task.status) in QA_GATED_STATUSES:
                    task.status = TaskStatus.READY_FOR_QA
            session.flush()
            session.delete(feature)
            unlinked = [task.id for task in tasks]

        logger.info(f"Feature {feature_id} deleted, unlinked {len(unlinked)} task(s)")
        return unlinked

    # ------------------------------------------------------------------
    # Feature level QA
    # ------------------------------------------------------------------

    def approve_feature(self, project_id: str, feature_id: str, acting_user: UserSummary) -> FeatureOut:
        """Approve the feature and every task of it currently in testing"""
        with self.store.transaction() as session:
            feature = self.store.get_feature(session, feature_id, project_id, for_update=True)
            feature.status = FeatureStatus.APPROVED
            promoted = 0
            for task in self.store.tasks_for_feature(session, project_id, feature_id, for_update=True):
                if TaskStatus(task.status) == TaskStatus.IN_TESTING:
                    task.status = TaskStatus.APPROVED
                    promoted += 1
            session.flush()
            out = FeatureOut.model_validate(feature)

        logger.info(f"Feature {feature_id} approved, {promoted} task(s) approved with it")
        self._record(project_id, ActivityType.FEATURE_APPROVED,
                     f"{self._actor(acting_user)} approved feature \"{out.name}\".", acting_user)
        return out

    def reprove_feature(self, project_id: str, feature_id: str, acting_user: UserSummary) -> FeatureOut:
        """Send the feature back to development and reset the tasks under test"""
        with self.store.transaction() as session:
            feature = self.store.get_feature(session, feature_id, project_id, for_update=True)
            feature.status = FeatureStatus.IN_DEVELOPMENT
            reset = 0
            for task in self.store.tasks_for_feature(session, project_id, feature_id, for_update=True):
                if TaskStatus(task.status) == TaskStatus.IN_TESTING:
                    task.status = TaskStatus.TODO
                    task.has_been_reproved = True
                    reset += 1
            session.flush()
            out = FeatureOut.model_validate(feature)

        logger.info(f"Feature {feature_id} reproved, {reset} task(s) sent back to To Do")
        self._record(project_id, ActivityType.FEATURE_REPROVED,
                     f"{self._actor(acting_user)} sent feature \"{out.name}\" back to development.", acting_user)
        return out

    # ------------------------------------------------------------------
    # Task level QA
    # ------------------------------------------------------------------

    def approve_task(self, project_id: str, task_id: str, feature_id: str, acting_user: UserSummary) -> TaskOut:
        """
        Approve one task under test. When every task of the feature is then
        approved or done, the feature is approved as well.
        """
        with self.store.transaction() as session:
            feature = self.store.get_feature(session, feature_id, project_id, for_update=True)
            task = self.store.get_task(session, task_id, project_id, for_update=True)
            self._check_membership(task, feature_id)

            feature_out = FeatureOut.model_validate(feature)
            if not feature_out.all_tests_passed():
                pending = sum(1 for case in feature_out.test_cases if case.status != "passed")
                raise ValidationError(
                    f'Feature "{feature.name}" still has {pending} test case(s) that have not passed. '
                    f'Pass every test case before approving task "{task.title}".',
                    reason=TEST_CASES_PENDING,
                )

            task.status = TaskStatus.APPROVED
            siblings = self.store.tasks_for_feature(session, project_id, feature_id)
            feature_approved = all(TaskStatus(sibling.status) in APPROVED_OR_DONE for sibling in siblings)
            if feature_approved:
                feature.status = FeatureStatus.APPROVED
            session.flush()
            out = TaskOut.model_validate(task)
            feature_name = feature.name

        logger.info(f"Task {task_id} approved" + (f", feature {feature_id} approved" if feature_approved else ""))
        actor = self._actor(acting_user)
        self._record(project_id, ActivityType.TASK_APPROVED, f"{actor} approved task \"{out.title}\".", acting_user, task_id)
        if feature_approved:
            self._record(project_id, ActivityType.FEATURE_APPROVED,
                         f"Feature \"{feature_name}\" was approved after its last task passed QA.", acting_user)
        return out

    def reprove_task(
        self,
        project_id: str,
        task_id: str,
        feature_id: str,
        feedback: str,
        acting_user: UserSummary,
    ) -> TaskOut:
        """
        Fail one task in QA: attach the feedback as a comment, reset the task to
        To Do and send the whole feature back to development.
        """
        with self.store.transaction() as session:
            feature = self.store.get_feature(session, feature_id, project_id, for_update=True)
            task = self.store.get_task(session, task_id, project_id, for_update=True)
            self._check_membership(task, feature_id)

            _, mentioned = self.comments.add_in_session(session, task, acting_user, feedback)
            task.status = TaskStatus.TODO
            task.has_been_reproved = True
            feature.status = FeatureStatus.IN_DEVELOPMENT
            session.flush()
            out = TaskOut.model_validate(task)

        logger.info(f"Task {task_id} reproved, feature {feature_id} back in development")
        self.comments.after_commit(project_id, task_id, out.title, acting_user, mentioned)
        if self.notifier and out.assignee:
            self.notifier.notify_qa_feedback(project_id, task_id, feature_id, out.title, out.assignee, acting_user, feedback)
        self._record(project_id, ActivityType.TASK_REPROVED,
                     f"{self._actor(acting_user)} reproved task \"{out.title}\".", acting_user, task_id)
        return out

    # ------------------------------------------------------------------

    @staticmethod
    def _check_membership(task, feature_id: str) -> None:
        if task.feature_id != feature_id:
            raise ValidationError(
                f'Task "{task.title}" does not belong to this feature.',
                reason=FEATURE_MISMATCH,
            )

    @staticmethod
    def _actor(acting_user: UserSummary) -> str:
        return acting_user.display_name or "Someone"

    def _record(self, project_id, activity_type, message, acting_user, task_id=None) -> None:
        if self.activity_log:
            self.activity_log.record(project_id, activity_type, message, acting_user, task_id)
