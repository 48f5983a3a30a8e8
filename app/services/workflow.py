# app/services/workflow.py
from typing import Optional

from app.services.activity_log import ActivityLog
from app.services.comments import CommentService
from app.services.dependency_graph import DependencyGraphManager
from app.services.feature_lifecycle import FeatureLifecycleEngine
from app.services.links import LinkService
from app.services.notification_service import NotificationService
from app.services.store import EntityStore
from app.services.task_lifecycle import TaskLifecycleEngine
from app.services.time_tracking import TimeTracker
from app.services.websocket_manager import WebSocketManager, websocket_manager
from app.utils.time_utils import Clock, utc_now


class WorkflowServices:
    """All engines wired to one entity store"""

    def __init__(
        self,
        store: Optional[EntityStore] = None,
        clock: Clock = utc_now,
        sockets: WebSocketManager = websocket_manager,
    ):
        self.store = store or EntityStore()
        self.activity_log = ActivityLog(self.store)
        self.notifier = NotificationService(self.store, sockets)
        self.comments = CommentService(self.store, self.activity_log, self.notifier)
        self.links = LinkService(self.store)
        self.time_tracker = TimeTracker(self.store, clock)
        self.dependencies = DependencyGraphManager(self.store)
        self.tasks = TaskLifecycleEngine(self.store, self.time_tracker, self.activity_log, self.notifier)
        self.features = FeatureLifecycleEngine(self.store, self.comments, self.activity_log, self.notifier)


# Global instance
workflow_services = WorkflowServices()


def get_workflow() -> WorkflowServices:
    """FastAPI dependency, overridden in tests"""
    return workflow_services
