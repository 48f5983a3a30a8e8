from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class UserSummary(BaseModel):
    """Denormalised user reference stamped onto tasks, comments and activity"""
    uid: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    model_config = {
        "from_attributes": True
    }

class ActiveTimer(BaseModel):
    project_id: str
    task_id: str
    start_time: datetime

class UserOut(BaseModel):
    id: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    active_timer: Optional[ActiveTimer] = None

    model_config = {
        "from_attributes": True
    }

class TimerStartRequest(BaseModel):
    project_id: str
    task_id: str
