# app/routers/activity.py
from fastapi import APIRouter, Depends, Query
from typing import List

from app.schemas import ActivityOut, UserSummary
from app.services.workflow import WorkflowServices, get_workflow
from app.utils.auth import get_acting_user

router = APIRouter(prefix="/projects/{project_id}/activity", tags=["activity"])

@router.get("/", response_model=List[ActivityOut])
def get_project_activity(
    project_id: str,
    limit: int = Query(50, ge=1, le=200),
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Most recent activity first"""
    return workflow.activity_log.list_for_project(project_id, limit)
