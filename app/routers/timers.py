# app/routers/timers.py
from fastapi import APIRouter, Depends
from typing import Optional

from app.schemas import ActiveTimer, TimerStartRequest, TimerStopOut, UserSummary
from app.services.workflow import WorkflowServices, get_workflow
from app.utils.auth import get_acting_user

router = APIRouter(prefix="/timers", tags=["timers"])

@router.get("/me", response_model=Optional[ActiveTimer])
def get_my_timer(
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.time_tracker.active_timer(acting_user.uid)

@router.post("/start", response_model=ActiveTimer)
def start_timer(
    request: TimerStartRequest,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Start tracking time on a task. Fails with 409 while another timer runs."""
    return workflow.time_tracker.start_timer(acting_user.uid, request.task_id, request.project_id)

@router.post("/stop", response_model=TimerStopOut)
def stop_timer(
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Stop the running timer, if any"""
    return TimerStopOut(time_log=workflow.time_tracker.stop_timer(acting_user.uid))
