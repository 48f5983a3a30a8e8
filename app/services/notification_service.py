from datetime import datetime
from typing import List, Optional
import json
import logging

from app.config.settings import WorkflowConfig
from app.models import Notification, NotificationType, NotificationPriority
from app.schemas import NotificationOut, NotificationRequest, UserSummary
from app.services.store import EntityStore
from app.services.websocket_manager import WebSocketManager, websocket_manager

logger = logging.getLogger(__name__)

class NotificationService:
    """
    Stores notification requests and pushes them to connected recipients.

    Delivery never affects lifecycle state: every failure is logged and the
    method returns None.
    """

    def __init__(
        self,
        store: EntityStore,
        sockets: WebSocketManager = websocket_manager,
        enabled: Optional[bool] = None,
    ):
        self.store = store
        self.sockets = sockets
        self.enabled = WorkflowConfig.SIDE_EFFECTS['notifications_enabled'] if enabled is None else enabled

    def send(self, request: NotificationRequest) -> Optional[NotificationOut]:
        """Create a notification and send it via WebSocket if the user is connected"""
        if not self.enabled:
            return None

        db = self.store.session()
        try:
            notification = Notification(
                user_id=request.recipient_user_id,
                message=request.message,
                notification_type=request.type,
                priority=request.priority,
                project_id=request.project_id,
                task_id=request.task_id,
                feature_id=request.feature_id,
                extra_data=json.dumps(request.extra_data) if request.extra_data else None,
                is_read=False
            )
            db.add(notification)
            db.commit()
            db.refresh(notification)
            out = NotificationOut.model_validate(notification)
        except Exception as e:
            db.rollback()
            logger.error(f"Error creating notification for user {request.recipient_user_id}: {e}")
            return None
        finally:
            db.close()

        try:
            self.sockets.dispatch_to_user(request.recipient_user_id, out.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Error pushing notification to user {request.recipient_user_id}: {e}")

        logger.info(f"Notification {out.notification_type.value} created for user {request.recipient_user_id}")
        return out

    def notify_task_assigned(
        self,
        project_id: str,
        task_id: str,
        task_title: str,
        assignee: UserSummary,
        acting_user: UserSummary,
    ) -> Optional[NotificationOut]:
        """Create a notification when a task is assigned to someone other than the actor"""
        if assignee.uid == acting_user.uid:
            return None
        actor = acting_user.display_name or "Someone"
        return self.send(NotificationRequest(
            recipient_user_id=assignee.uid,
            type=NotificationType.TASK_ASSIGNED,
            priority=NotificationPriority.HIGH,
            message=f"{actor} assigned you to task \"{task_title}\".",
            project_id=project_id,
            task_id=task_id,
            extra_data={"sender": acting_user.model_dump()},
        ))

    def notify_comment_mention(
        self,
        project_id: str,
        task_id: str,
        task_title: str,
        recipient: UserSummary,
        acting_user: UserSummary,
    ) -> Optional[NotificationOut]:
        actor = acting_user.display_name or "Someone"
        return self.send(NotificationRequest(
            recipient_user_id=recipient.uid,
            type=NotificationType.COMMENT_MENTION,
            message=f"{actor} mentioned you on task \"{task_title}\".",
            project_id=project_id,
            task_id=task_id,
            extra_data={"sender": acting_user.model_dump()},
        ))

    def notify_qa_feedback(
        self,
        project_id: str,
        task_id: str,
        feature_id: str,
        task_title: str,
        recipient: UserSummary,
        acting_user: UserSummary,
        feedback: str,
    ) -> Optional[NotificationOut]:
        """Tell the assignee their task failed QA and why"""
        if recipient.uid == acting_user.uid:
            return None
        actor = acting_user.display_name or "Someone"
        return self.send(NotificationRequest(
            recipient_user_id=recipient.uid,
            type=NotificationType.QA_FEEDBACK,
            priority=NotificationPriority.HIGH,
            message=f"{actor} sent task \"{task_title}\" back from QA: {feedback}",
            project_id=project_id,
            task_id=task_id,
            feature_id=feature_id,
            extra_data={"sender": acting_user.model_dump()},
        ))

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[NotificationOut]:
        db = self.store.session()
        try:
            query = db.query(Notification).filter(Notification.user_id == user_id)
            if unread_only:
                query = query.filter(Notification.is_read == False)
            rows = query.order_by(Notification.created_at.desc()).all()
            return [NotificationOut.model_validate(row) for row in rows]
        finally:
            db.close()

    def mark_read(self, user_id: str, notification_ids: List[str]) -> int:
        """Mark the given notifications of ``user_id`` as read in one batch"""
        if not notification_ids:
            return 0
        with self.store.transaction() as db:
            updated = db.query(Notification).filter(
                Notification.user_id == user_id,
                Notification.id.in_(notification_ids)
            ).update({Notification.is_read: True}, synchronize_session=False)
        return updated
