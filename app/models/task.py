# app/models/task.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, Boolean, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, generate_id
import enum

class TaskStatus(str, enum.Enum):
    TODO = "todo"
    IN_PROGRESS = "inprogress"
    READY_FOR_QA = "ready_for_qa"
    IN_TESTING = "in_testing"
    APPROVED = "approved"
    DONE = "done"

TASK_STATUS_ORDER = [
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.READY_FOR_QA,
    TaskStatus.IN_TESTING,
    TaskStatus.APPROVED,
    TaskStatus.DONE,
]

# Statuses past the QA boundary: entering them requires a feature
QA_GATED_STATUSES = frozenset({TaskStatus.IN_TESTING, TaskStatus.APPROVED, TaskStatus.DONE})
PRE_QA_STATUSES = frozenset({TaskStatus.TODO, TaskStatus.IN_PROGRESS})

def task_rank(status) -> int:
    return TASK_STATUS_ORDER.index(TaskStatus(status))

class DependencyType(str, enum.Enum):
    BLOCKING = "blocking"
    BLOCKED_BY = "blocked_by"

class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=generate_id)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    status = Column(
        Enum(TaskStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=TaskStatus.TODO,
        nullable=False,
    )

    # {"uid", "display_name", "photo_url"} or null
    assignee = Column(JSON(none_as_null=True), nullable=True)

    feature_id = Column(String, ForeignKey("features.id"), nullable=True, index=True)
    module_id = Column(String, ForeignKey("modules.id"), nullable=True)
    category_id = Column(String, ForeignKey("task_categories.id"), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    # Document style arrays, mutated through EntityStore.array_union / array_remove
    dependencies = Column(JSON, nullable=False, default=list)  # [{"task_id", "type"}]
    time_logs = Column(JSON, nullable=False, default=list)  # [{"user_id", "duration_in_seconds", "logged_at"}]
    links = Column(JSON, nullable=False, default=list)  # [{"id", "url", "title"}]

    comments_count = Column(Integer, default=0, nullable=False)
    has_been_reproved = Column(Boolean, default=False, nullable=False)

    # System dates
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    comments = relationship("Comment", back_populates="task", cascade="all, delete-orphan")

class Comment(Base):
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=generate_id)
    task_id = Column(String, ForeignKey("tasks.id"), nullable=False, index=True)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False)
    author = Column(JSON, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    task = relationship("Task", back_populates="comments")
