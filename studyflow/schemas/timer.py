import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from studyflow.schemas.session import SessionResponse


class TimerSettingsResponse(BaseModel):
    pomodoro_length: int
    short_break_length: int
    long_break_length: int
    long_break_interval: int
    auto_start_breaks: bool
    auto_start_pomodoros: bool
    sound_enabled: bool
    volume: int

    model_config = {"from_attributes": True}


class TimerSettingsUpdate(BaseModel):
    pomodoro_length: int | None = Field(default=None, ge=1, le=120)
    short_break_length: int | None = Field(default=None, ge=1, le=30)
    long_break_length: int | None = Field(default=None, ge=1, le=60)
    long_break_interval: int | None = Field(default=None, ge=1, le=12)
    auto_start_breaks: bool | None = None
    auto_start_pomodoros: bool | None = None
    sound_enabled: bool | None = None
    volume: int | None = Field(default=None, ge=0, le=100)


class StartRequest(BaseModel):
    plan_id: uuid.UUID | None = None
    task_id: uuid.UUID | None = None


class ModeRequest(BaseModel):
    mode: Literal["FOCUS", "SHORT_BREAK", "LONG_BREAK"]


class PresetRequest(BaseModel):
    name: str = Field(min_length=1, max_length=32)


class PresetResponse(BaseModel):
    name: str
    pomodoro_length: int
    short_break_length: int
    long_break_length: int


class TimerResponse(BaseModel):
    mode: str
    remaining_seconds: int
    length_seconds: int
    running: bool
    started_at: datetime | None
    focus_count: int
    focus_seconds_today: int
    focus_day: date | None
    preset: str | None
    plan_id: uuid.UUID | None
    task_id: uuid.UUID | None
    pending_sessions: int  # finalized intervals not yet written
    recorded: list[SessionResponse] = []
