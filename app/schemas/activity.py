from pydantic import BaseModel
from datetime import datetime
from typing import Optional

from app.models.activity import ActivityType
from app.schemas.user import UserSummary

class ActivityOut(BaseModel):
    id: str
    type: ActivityType
    project_id: str
    message: str
    user: UserSummary
    task_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }
