import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

TaskStatus = Literal["TODO", "IN_PROGRESS", "COMPLETED"]


class TaskCreate(BaseModel):
    plan_id: uuid.UUID | None = None
    title: str = Field(min_length=1, max_length=500)
    priority: int = Field(default=1, ge=0, le=3)
    status: TaskStatus = "TODO"
    due_date: datetime | None = None


class TaskUpdate(BaseModel):
    plan_id: uuid.UUID | None = None
    title: str | None = Field(default=None, min_length=1, max_length=500)
    priority: int | None = Field(default=None, ge=0, le=3)
    status: TaskStatus | None = None
    due_date: datetime | None = None


class TaskResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    plan_id: uuid.UUID | None
    title: str
    priority: int
    status: str
    due_date: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
