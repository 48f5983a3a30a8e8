# app/schemas/commands.py
"""
Transition commands accepted by the task lifecycle engine.

Each command carries a narrow payload and is tagged by ``kind`` so request bodies
can be validated as a discriminated union before the engine sees them.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.models.task import TaskStatus
from app.schemas.user import UserSummary


class ChangeStatus(BaseModel):
    kind: Literal["change_status"] = "change_status"
    status: TaskStatus


class AssignUser(BaseModel):
    kind: Literal["assign_user"] = "assign_user"
    assignee: Optional[UserSummary] = None


class SetFeature(BaseModel):
    kind: Literal["set_feature"] = "set_feature"
    feature_id: str = Field(..., min_length=1)


class ClearFeature(BaseModel):
    kind: Literal["clear_feature"] = "clear_feature"


class EditDetails(BaseModel):
    kind: Literal["edit_details"] = "edit_details"
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    category_id: Optional[str] = None


TransitionCommand = Annotated[
    Union[ChangeStatus, AssignUser, SetFeature, ClearFeature, EditDetails],
    Field(discriminator="kind"),
]


class TransitionRequest(BaseModel):
    commands: List[TransitionCommand] = Field(..., min_length=1)
