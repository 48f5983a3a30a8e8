# app/schemas/task.py
from pydantic import BaseModel, Field, HttpUrl
from datetime import datetime
from typing import Optional, List

from app.models.task import TaskStatus, DependencyType
from app.schemas.user import UserSummary

class TaskDependency(BaseModel):
    task_id: str
    type: DependencyType

class TimeLog(BaseModel):
    user_id: str
    duration_in_seconds: int
    logged_at: datetime

class TaskLink(BaseModel):
    id: str
    url: str
    title: str

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    assignee: Optional[UserSummary] = None
    feature_id: Optional[str] = None
    category_id: Optional[str] = None
    due_date: Optional[datetime] = None

class TaskOut(BaseModel):
    id: str
    project_id: str
    title: str
    description: str = ""
    status: TaskStatus
    assignee: Optional[UserSummary] = None
    feature_id: Optional[str] = None
    module_id: Optional[str] = None
    category_id: Optional[str] = None
    due_date: Optional[datetime] = None
    dependencies: List[TaskDependency] = []
    time_logs: List[TimeLog] = []
    links: List[TaskLink] = []
    comments_count: int = 0
    has_been_reproved: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

    def blocked_by_ids(self) -> List[str]:
        return [d.task_id for d in self.dependencies if d.type == DependencyType.BLOCKED_BY]

    def blocking_ids(self) -> List[str]:
        return [d.task_id for d in self.dependencies if d.type == DependencyType.BLOCKING]

class LinkCreate(BaseModel):
    url: HttpUrl
    title: str = Field(..., min_length=1)

class LinkUpdate(BaseModel):
    url: Optional[HttpUrl] = None
    title: Optional[str] = Field(None, min_length=1)

class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)

class CommentOut(BaseModel):
    id: str
    task_id: str
    author: UserSummary
    content: str
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class DependencyCreate(BaseModel):
    target_task_id: str

class TimerStopOut(BaseModel):
    time_log: Optional[TimeLog] = None

class BlockedTasksOut(BaseModel):
    blocked_task_ids: List[str]
