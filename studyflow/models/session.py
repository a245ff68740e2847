import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyflow.models.base import Base

SESSION_TYPES = ("FOCUS", "SHORT_BREAK", "LONG_BREAK")


class FocusSession(Base):
    """One timed interval. Written once by the recorder, never mutated."""

    __tablename__ = "focus_sessions"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    plan_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("study_plans.id", ondelete="CASCADE"), index=True)
    task_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("tasks.id", ondelete="SET NULL"))
    session_type: Mapped[str] = mapped_column(String(20), nullable=False)  # FOCUS, SHORT_BREAK, LONG_BREAK
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    planned_minutes: Mapped[int | None] = mapped_column(Integer)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    interrupted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="sessions")  # noqa: F821
    plan: Mapped["StudyPlan | None"] = relationship(back_populates="sessions")  # noqa: F821

    __table_args__ = (
        Index("ix_focus_sessions_user_started", "user_id", "started_at"),
    )
