# app/models/activity.py
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from app.database import Base, generate_id
import enum

class ActivityType(str, enum.Enum):
    TASK_CREATED = "task_created"
    TASK_STATUS_CHANGED = "task_status_changed"
    COMMENT_ADDED = "comment_added"
    TASK_APPROVED = "task_approved"
    TASK_REPROVED = "task_reproved"
    FEATURE_APPROVED = "feature_approved"
    FEATURE_REPROVED = "feature_reproved"

class Activity(Base):
    __tablename__ = "activities"

    id = Column(String, primary_key=True, default=generate_id)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, index=True)
    type = Column(
        Enum(ActivityType, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
    )
    message = Column(Text, nullable=False)
    user = Column(JSON, nullable=False)
    task_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
