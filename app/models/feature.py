# app/models/feature.py
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from app.database import Base, generate_id
import enum

class FeatureStatus(str, enum.Enum):
    BACKLOG = "backlog"
    IN_DEVELOPMENT = "in_development"
    IN_TESTING = "in_testing"
    APPROVED = "approved"
    RELEASED = "released"

FEATURE_STATUS_ORDER = [
    FeatureStatus.BACKLOG,
    FeatureStatus.IN_DEVELOPMENT,
    FeatureStatus.IN_TESTING,
    FeatureStatus.APPROVED,
    FeatureStatus.RELEASED,
]

def feature_rank(status) -> int:
    return FEATURE_STATUS_ORDER.index(FeatureStatus(status))

class Feature(Base):
    __tablename__ = "features"

    id = Column(String, primary_key=True, default=generate_id)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, index=True)
    module_id = Column(String, ForeignKey("modules.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(
        Enum(FeatureStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=FeatureStatus.BACKLOG,
        nullable=False,
    )

    # [{"id", "step", "description", "related_entity_ids"}]
    user_flows = Column(JSON, nullable=False, default=list)
    # [{"id", "description", "expected_result", "status": pending|passed|failed}]
    test_cases = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
