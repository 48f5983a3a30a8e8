# app/schemas/feature.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal

from app.models.feature import FeatureStatus

TestCaseStatus = Literal["pending", "passed", "failed"]

class UserFlow(BaseModel):
    id: str
    step: int
    description: str
    related_entity_ids: List[str] = []

class TestCase(BaseModel):
    id: str
    description: str
    expected_result: str
    status: TestCaseStatus = "pending"

class FeatureCreate(BaseModel):
    name: str = Field(..., min_length=1)
    module_id: Optional[str] = None
    description: str = ""
    user_flows: List[UserFlow] = []
    test_cases: List[TestCase] = []

class FeatureUpdate(BaseModel):
    """Editable feature fields. Status is owned by the lifecycle engines."""
    name: Optional[str] = Field(None, min_length=1)
    module_id: Optional[str] = None
    description: Optional[str] = None
    user_flows: Optional[List[UserFlow]] = None
    test_cases: Optional[List[TestCase]] = None

class FeatureOut(BaseModel):
    id: str
    project_id: str
    module_id: Optional[str] = None
    name: str
    description: str = ""
    status: FeatureStatus
    user_flows: List[UserFlow] = []
    test_cases: List[TestCase] = []
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

    def all_tests_passed(self) -> bool:
        return all(tc.status == "passed" for tc in self.test_cases)

class TestCaseStatusUpdate(BaseModel):
    status: Literal["passed", "failed"]

class ReproveTaskRequest(BaseModel):
    feedback: str = Field(..., min_length=1)
