import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from studyflow.models.base import Base

DEFAULT_TIMER_SETTINGS = {
    "pomodoro_length": 25,
    "short_break_length": 5,
    "long_break_length": 15,
    "long_break_interval": 4,
    "auto_start_breaks": False,
    "auto_start_pomodoros": False,
    "sound_enabled": True,
    "volume": 80,
}


class TimerSettings(Base):
    __tablename__ = "timer_settings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    pomodoro_length: Mapped[int] = mapped_column(Integer, nullable=False, default=25)  # minutes
    short_break_length: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    long_break_length: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    long_break_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    auto_start_breaks: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_start_pomodoros: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sound_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    volume: Mapped[int] = mapped_column(Integer, nullable=False, default=80)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
