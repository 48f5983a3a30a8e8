# app/services/activity_log.py
"""
Append-only activity feed. Recording is fire-and-forget: a failure is logged and
never reaches the operation that triggered it.
"""

import logging
from typing import List, Optional

from app.config.settings import WorkflowConfig
from app.models import Activity, ActivityType
from app.schemas import ActivityOut, UserSummary
from app.services.store import EntityStore

logger = logging.getLogger(__name__)


class ActivityLog:
    def __init__(self, store: EntityStore, enabled: Optional[bool] = None):
        self.store = store
        self.enabled = WorkflowConfig.SIDE_EFFECTS['activity_log_enabled'] if enabled is None else enabled

    def record(
        self,
        project_id: str,
        activity_type: ActivityType,
        message: str,
        user: UserSummary,
        task_id: Optional[str] = None,
    ) -> Optional[ActivityOut]:
        if not self.enabled:
            return None

        db = self.store.session()
        try:
            activity = Activity(
                project_id=project_id,
                type=activity_type,
                message=message,
                user=user.model_dump(),
                task_id=task_id,
            )
            db.add(activity)
            db.commit()
            db.refresh(activity)
            return ActivityOut.model_validate(activity)
        except Exception as e:
            db.rollback()
            logger.error(f"Error recording {activity_type.value} activity for project {project_id}: {e}")
            return None
        finally:
            db.close()

    def list_for_project(self, project_id: str, limit: int = 50) -> List[ActivityOut]:
        db = self.store.session()
        try:
            rows = (
                db.query(Activity)
                .filter(Activity.project_id == project_id)
                .order_by(Activity.created_at.desc())
                .limit(limit)
                .all()
            )
            return [ActivityOut.model_validate(row) for row in rows]
        finally:
            db.close()
