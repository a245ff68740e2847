import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

SessionType = Literal["FOCUS", "SHORT_BREAK", "LONG_BREAK"]


class SessionCreate(BaseModel):
    session_type: SessionType = "FOCUS"
    started_at: datetime
    ended_at: datetime
    plan_id: uuid.UUID | None = None
    task_id: uuid.UUID | None = None
    planned_minutes: int | None = Field(default=None, ge=1, le=1440)
    completed: bool = False
    interrupted: bool | None = None
    notes: str | None = Field(default=None, max_length=2000)


class SessionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    plan_id: uuid.UUID | None
    task_id: uuid.UUID | None
    session_type: str
    started_at: datetime
    ended_at: datetime
    duration_minutes: int
    planned_minutes: int | None
    completed: bool
    interrupted: bool
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionRecordResult(BaseModel):
    recorded: bool
    session: SessionResponse | None = None
