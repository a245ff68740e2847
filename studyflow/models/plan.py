import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyflow.models.base import Base


class StudyPlan(Base):
    __tablename__ = "study_plans"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str | None] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")  # ACTIVE, COMPLETED, ARCHIVED
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0-100
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="plans")  # noqa: F821
    tasks: Mapped[list["Task"]] = relationship(back_populates="plan", cascade="all, delete-orphan")  # noqa: F821
    sessions: Mapped[list["FocusSession"]] = relationship(back_populates="plan", cascade="all, delete-orphan")  # noqa: F821
