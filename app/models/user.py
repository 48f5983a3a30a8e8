# app/models/user.py
from sqlalchemy import Column, String, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, generate_id

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_id)
    email = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # {"project_id": ..., "task_id": ..., "start_time": iso8601} while a timer runs
    active_timer = Column(JSON(none_as_null=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def summary(self) -> dict:
        return {"uid": self.id, "display_name": self.display_name, "photo_url": self.photo_url}
