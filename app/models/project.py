# app/models/project.py
from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, generate_id

class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)
    members = Column(JSON, nullable=False, default=dict)  # uid -> owner | editor | viewer
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    modules = relationship("Module", back_populates="project", cascade="all, delete-orphan")
    categories = relationship("TaskCategory", back_populates="project", cascade="all, delete-orphan")

class Module(Base):
    __tablename__ = "modules"

    id = Column(String, primary_key=True, default=generate_id)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    icon = Column(String, nullable=True)
    color = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    project = relationship("Project", back_populates="modules")

class TaskCategory(Base):
    __tablename__ = "task_categories"

    id = Column(String, primary_key=True, default=generate_id)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, nullable=True)
    icon = Column(String, nullable=True)
    requires_testing = Column(Boolean, default=False, nullable=False)

    project = relationship("Project", back_populates="categories")
