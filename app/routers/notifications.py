# app/routers/notifications.py
from fastapi import APIRouter, Depends, Query
from typing import List

from app.schemas import NotificationMarkRead, NotificationOut, UserSummary
from app.services.workflow import WorkflowServices, get_workflow
from app.utils.auth import get_acting_user

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("/", response_model=List[NotificationOut])
def get_user_notifications(
    unread_only: bool = Query(False),
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Get notifications for the current user"""
    return workflow.notifier.list_for_user(acting_user.uid, unread_only)

@router.post("/mark-read")
def mark_notifications_read(
    request: NotificationMarkRead,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Mark multiple notifications as read"""
    updated = workflow.notifier.mark_read(acting_user.uid, request.notification_ids)
    return {"message": f"Marked {updated} notifications as read", "updated_count": updated}
