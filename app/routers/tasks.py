# app/routers/tasks.py
from fastapi import APIRouter, Depends, Response, status
from typing import List, Optional

from app.schemas import (
    BlockedTasksOut, CommentCreate, CommentOut, DependencyCreate, LinkCreate, LinkUpdate,
    TaskCreate, TaskLink, TaskOut, TransitionRequest, UserSummary,
)
from app.services.workflow import WorkflowServices, get_workflow
from app.utils.auth import get_acting_user

router = APIRouter(prefix="/projects/{project_id}/tasks", tags=["tasks"])

@router.get("/", response_model=List[TaskOut])
def list_tasks(
    project_id: str,
    feature_id: Optional[str] = None,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.store.list_tasks(project_id, feature_id)

@router.post("/", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    project_id: str,
    task: TaskCreate,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Create a task. New tasks always start in To Do."""
    return workflow.tasks.create_task(project_id, task, acting_user)

@router.get("/blocked", response_model=BlockedTasksOut)
def get_blocked_tasks(
    project_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Ids of tasks that have an unfinished blocker"""
    return BlockedTasksOut(blocked_task_ids=sorted(workflow.dependencies.blocked_task_ids(project_id)))

@router.get("/{task_id}", response_model=TaskOut)
def get_task(
    project_id: str,
    task_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.store.read_task(task_id, project_id)

@router.patch("/{task_id}", response_model=TaskOut)
def transition_task(
    project_id: str,
    task_id: str,
    request: TransitionRequest,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Apply a list of transition commands (status, assignee, feature, details) atomically"""
    return workflow.tasks.transition_task(project_id, task_id, request.commands, acting_user)

@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    project_id: str,
    task_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    workflow.tasks.delete_task(project_id, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# Dependencies

@router.post("/{task_id}/dependencies", response_model=List[TaskOut], status_code=status.HTTP_201_CREATED)
def add_dependency(
    project_id: str,
    task_id: str,
    dependency: DependencyCreate,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    """Make ``task_id`` block ``target_task_id``. Returns both endpoints."""
    source, target = workflow.dependencies.add_dependency(project_id, task_id, dependency.target_task_id)
    return [source, target]

@router.delete("/{task_id}/dependencies/{target_task_id}", response_model=TaskOut)
def remove_dependency(
    project_id: str,
    task_id: str,
    target_task_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.dependencies.remove_dependency(project_id, task_id, target_task_id)

# Comments

@router.get("/{task_id}/comments", response_model=List[CommentOut])
def list_comments(
    project_id: str,
    task_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.comments.list_comments(project_id, task_id)

@router.post("/{task_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
def add_comment(
    project_id: str,
    task_id: str,
    comment: CommentCreate,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.comments.add_comment(project_id, task_id, acting_user, comment.content)

# Links

@router.post("/{task_id}/links", response_model=TaskLink, status_code=status.HTTP_201_CREATED)
def add_link(
    project_id: str,
    task_id: str,
    link: LinkCreate,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.links.add_link(project_id, task_id, str(link.url), link.title)

@router.patch("/{task_id}/links/{link_id}", response_model=TaskLink)
def update_link(
    project_id: str,
    task_id: str,
    link_id: str,
    link: LinkUpdate,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    url = str(link.url) if link.url is not None else None
    return workflow.links.update_link(project_id, task_id, link_id, url=url, title=link.title)

@router.delete("/{task_id}/links/{link_id}", response_model=TaskOut)
def remove_link(
    project_id: str,
    task_id: str,
    link_id: str,
    workflow: WorkflowServices = Depends(get_workflow),
    acting_user: UserSummary = Depends(get_acting_user),
):
    return workflow.links.remove_link(project_id, task_id, link_id)
