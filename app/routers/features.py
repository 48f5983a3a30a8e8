# app/routers/features.py
from fastapi import APIRouter, Depends, status
from typing import List

from app.schemas import (
    FeatureCreate, FeatureOut, FeatureUpdate, ReproveTaskRequest, TaskOut, TestCaseStatusUpdate, UserSummary,
)
from app.services.workflow import WorkflowServices, get_workflow
from app.utils.auth import get_acting_user

router = APIRouter(prefix="/projects/{project_id}/features", tags=["features"])

@router.get("/", response_model=List[FeatureOut])
def list_features(
    project_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.store.list_features(project_id)

@router.post("/", response_model=FeatureOut, status_code=status.HTTP_201_CREATED)
def create_feature(
    project_id: str,
    feature: FeatureCreate,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Create a feature in the backlog"""
    return workflow.features.create_feature(project_id, feature)

@router.get("/{feature_id}", response_model=FeatureOut)
def get_feature(
    project_id: str,
    feature_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.store.read_feature(feature_id, project_id)

@router.patch("/{feature_id}", response_model=FeatureOut)
def update_feature(
    project_id: str,
    feature_id: str,
    feature: FeatureUpdate,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.features.update_feature(project_id, feature_id, feature)

@router.delete("/{feature_id}")
def delete_feature(
    project_id: str,
    feature_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Delete a feature and unlink its tasks"""
    unlinked = workflow.features.delete_feature(project_id, feature_id)
    return {"message": "Feature deleted successfully", "unlinked_task_ids": unlinked}

@router.patch("/{feature_id}/test-cases/{test_case_id}", response_model=FeatureOut)
def set_test_case_status(
    project_id: str,
    feature_id: str,
    test_case_id: str,
    update: TestCaseStatusUpdate,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.features.set_test_case_status(project_id, feature_id, test_case_id, update.status)

# QA actions

@router.post("/{feature_id}/approve", response_model=FeatureOut)
def approve_feature(
    project_id: str,
    feature_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.features.approve_feature(project_id, feature_id, acting_user)

@router.post("/{feature_id}/reprove", response_model=FeatureOut)
def reprove_feature(
    project_id: str,
    feature_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.features.reprove_feature(project_id, feature_id, acting_user)

@router.post("/{feature_id}/tasks/{task_id}/approve", response_model=TaskOut)
def approve_task(
    project_id: str,
    feature_id: str,
    task_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Approve one task under test. Requires every test case of the feature to have passed."""
    return workflow.features.approve_task(project_id, task_id, feature_id, acting_user)

@router.post("/{feature_id}/tasks/{task_id}/reprove", response_model=TaskOut)
def reprove_task(
    project_id: str,
    feature_id: str,
    task_id: str,
    request: ReproveTaskRequest,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Fail one task in QA with feedback for the assignee"""
    return workflow.features.reprove_task(project_id, task_id, feature_id, request.feedback, acting_user)
