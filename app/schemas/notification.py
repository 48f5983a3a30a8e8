# app/schemas/notification.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from app.models.notification import NotificationType, NotificationPriority

class NotificationRequest(BaseModel):
    """What the lifecycle engines hand to the notification service"""
    recipient_user_id: str
    type: NotificationType
    message: str = Field(..., min_length=1)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    feature_id: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None

class NotificationOut(BaseModel):
    id: str
    user_id: str
    message: str
    notification_type: NotificationType
    priority: NotificationPriority
    is_read: bool
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    feature_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class NotificationMarkRead(BaseModel):
    notification_ids: List[str]
