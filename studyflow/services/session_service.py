import logging
import math
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.config import settings
from studyflow.exceptions import NotFoundError, StoreUnavailable, ValidationError
from studyflow.models.plan import StudyPlan
from studyflow.models.session import SESSION_TYPES, FocusSession
from studyflow.models.task import Task
from studyflow.services.clock import as_utc

logger = logging.getLogger(__name__)


def duration_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes between two instants, rounded half-up, never negative."""
    seconds = (as_utc(ended_at) - as_utc(started_at)).total_seconds()
    if seconds <= 0:
        return 0
    return int(math.floor(seconds / 60 + 0.5))


async def owned_links(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan_id: uuid.UUID | None,
    task_id: uuid.UUID | None,
) -> tuple[uuid.UUID | None, uuid.UUID | None]:
    """Plan and task ids that exist and belong to ``user_id``; missing ones become ``None``."""
    if plan_id is not None:
        plan_id = await db.scalar(
            select(StudyPlan.id).where(StudyPlan.id == plan_id, StudyPlan.user_id == user_id)
        )
    if task_id is not None:
        task_id = await db.scalar(
            select(Task.id).where(Task.id == task_id, Task.user_id == user_id)
        )
    return plan_id, task_id


async def check_links(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan_id: uuid.UUID | None = None,
    task_id: uuid.UUID | None = None,
) -> None:
    found_plan, found_task = await owned_links(db, user_id, plan_id, task_id)
    if plan_id is not None and found_plan is None:
        raise NotFoundError("Plan not found")
    if task_id is not None and found_task is None:
        raise NotFoundError("Task not found")


async def record_session(
    db: AsyncSession, user_id: uuid.UUID, data: dict
) -> FocusSession | None:
    """Persist one finished interval.

    The duration is always derived from the timestamps. Intervals shorter than
    ``MIN_SESSION_MINUTES`` are dropped and ``None`` is returned; that is not
    an error. Derived caches (streak, daily stats) are not touched here.
    """
    session_type = data["session_type"]
    if hasattr(session_type, "value"):
        session_type = session_type.value
    if session_type not in SESSION_TYPES:
        raise ValidationError(f"Invalid session type: {session_type}")
    await check_links(db, user_id, data.get("plan_id"), data.get("task_id"))

    started_at = as_utc(data["started_at"])
    ended_at = as_utc(data["ended_at"])
    minutes = duration_minutes(started_at, ended_at)
    if minutes < settings.MIN_SESSION_MINUTES:
        logger.debug("Dropping %s session of %d minutes for user %s", session_type, minutes, user_id)
        return None

    completed = bool(data.get("completed", False))
    session = FocusSession(
        user_id=user_id,
        plan_id=data.get("plan_id"),
        task_id=data.get("task_id"),
        session_type=session_type,
        started_at=started_at,
        ended_at=ended_at,
        duration_minutes=minutes,
        planned_minutes=data.get("planned_minutes"),
        completed=completed,
        interrupted=bool(data.get("interrupted", not completed)),
        notes=data.get("notes"),
    )
    try:
        db.add(session)
        await db.flush()
        await db.refresh(session)
    except IntegrityError as exc:
        logger.warning("Session for user %s rejected by the store: %s", user_id, exc.orig)
        raise ValidationError("Session references a missing plan or task") from exc
    except (OperationalError, DBAPIError) as exc:
        logger.exception("Failed to persist session for user %s", user_id)
        raise StoreUnavailable("Session store unavailable") from exc
    return session


async def get_sessions(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
    session_type: str | None = None,
    plan_id: uuid.UUID | None = None,
    completed: bool | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[FocusSession]:
    if start_date and end_date and as_utc(start_date) > as_utc(end_date):
        raise ValidationError("start_date must not be after end_date")

    query = select(FocusSession).where(FocusSession.user_id == user_id)
    if session_type:
        query = query.where(FocusSession.session_type == session_type)
    if plan_id is not None:
        query = query.where(FocusSession.plan_id == plan_id)
    if completed is not None:
        query = query.where(FocusSession.completed == completed)
    if start_date:
        query = query.where(FocusSession.started_at >= as_utc(start_date))
    if end_date:
        query = query.where(FocusSession.started_at <= as_utc(end_date))
    query = query.order_by(FocusSession.started_at.desc()).limit(limit).offset(offset)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_session(
    db: AsyncSession, user_id: uuid.UUID, session_id: uuid.UUID
) -> FocusSession | None:
    result = await db.execute(
        select(FocusSession).where(FocusSession.id == session_id, FocusSession.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_sessions_between(
    db: AsyncSession,
    user_id: uuid.UUID,
    start: datetime,
    end: datetime | None = None,
    session_type: str | None = "FOCUS",
    plan_id: uuid.UUID | None = None,
) -> list[FocusSession]:
    """Raw sessions whose start falls in ``[start, end)``, oldest first."""
    query = select(FocusSession).where(
        FocusSession.user_id == user_id,
        FocusSession.started_at >= as_utc(start),
    )
    if end is not None:
        query = query.where(FocusSession.started_at < as_utc(end))
    if session_type:
        query = query.where(FocusSession.session_type == session_type)
    if plan_id is not None:
        query = query.where(FocusSession.plan_id == plan_id)
    result = await db.execute(query.order_by(FocusSession.started_at.asc()))
    return list(result.scalars().all())
