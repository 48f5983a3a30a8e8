# app/models/notification.py
from sqlalchemy import Column, String, Text, DateTime, Boolean, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, generate_id
import enum

class NotificationType(str, enum.Enum):
    TASK_ASSIGNED = "task_assigned"
    COMMENT_MENTION = "comment_mention"
    QA_FEEDBACK = "qa_feedback"
    SYSTEM = "system"

class NotificationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    notification_type = Column(
        Enum(NotificationType, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
        default=NotificationType.SYSTEM,
    )
    priority = Column(
        Enum(NotificationPriority, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
        default=NotificationPriority.MEDIUM,
    )
    is_read = Column(Boolean, default=False, nullable=False)

    # Related entity references
    project_id = Column(String, nullable=True)
    task_id = Column(String, nullable=True)
    feature_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Additional data (JSON), e.g. sender summary
    extra_data = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", back_populates="notifications")

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type='{self.notification_type}')>"
