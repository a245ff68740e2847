"""Per-day rollups kept as an incrementally updated, rebuildable cache.

Increments rely on the database's per-row upsert atomicity
(``INSERT ... ON CONFLICT DO UPDATE``); no application locking is done. Any
day can be recomputed from raw sessions and tasks with :func:`rebuild_day`.
"""
import uuid
from datetime import date, datetime, time, timedelta, tzinfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.database import dialect_insert
from studyflow.models.daily_stat import DailyStat
from studyflow.models.session import FocusSession
from studyflow.models.task import Task
from studyflow.services.clock import as_utc, local_date
from studyflow.services.metrics import focus_score, percent

COUNTER_COLUMNS = ("total_minutes", "sessions_completed", "sessions_interrupted", "tasks_completed")


def day_focus_score(sessions_completed: int, sessions_interrupted: int, tasks_completed: int) -> int:
    """Focus score for a single day.

    The completion term is the share of focus intervals run to the end; the
    consistency term is full for any day with activity.
    """
    attempted = sessions_completed + sessions_interrupted
    if attempted == 0 and tasks_completed == 0:
        return 0
    completion = percent(sessions_completed, attempted) if attempted else 100
    return focus_score(completion, 100)


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """UTC instants bounding a local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return as_utc(start), as_utc(end)


async def _upsert(
    db: AsyncSession, user_id: uuid.UUID, day: date, values: dict, increment: bool
) -> DailyStat:
    insert = dialect_insert(db)
    row = {name: 0 for name in COUNTER_COLUMNS}
    row.update(values)
    stmt = insert(DailyStat).values(id=uuid.uuid4(), user_id=user_id, date=day, focus_score=0, **row)
    if increment:
        updates = {name: getattr(DailyStat, name) + stmt.excluded[name] for name in values}
    else:
        updates = {name: stmt.excluded[name] for name in COUNTER_COLUMNS}
    updates["updated_at"] = func.now()
    await db.execute(
        stmt.on_conflict_do_update(index_elements=["user_id", "date"], set_=updates)
    )

    stat = await get_daily_stat(db, user_id, day)
    await db.refresh(stat)
    stat.focus_score = day_focus_score(
        stat.sessions_completed, stat.sessions_interrupted, stat.tasks_completed
    )
    await db.flush()
    return stat


async def apply_session(db: AsyncSession, session: FocusSession, tz: tzinfo) -> DailyStat | None:
    """Fold a freshly recorded session into its day. Breaks are not counted."""
    if session.session_type != "FOCUS":
        return None
    day = local_date(session.started_at, tz)
    if session.completed:
        values = {"total_minutes": session.duration_minutes, "sessions_completed": 1}
    else:
        values = {"sessions_interrupted": 1}
    return await _upsert(db, session.user_id, day, values, increment=True)


async def apply_task_completion(
    db: AsyncSession, user_id: uuid.UUID, completed_at: datetime, tz: tzinfo
) -> DailyStat:
    day = local_date(completed_at, tz)
    return await _upsert(db, user_id, day, {"tasks_completed": 1}, increment=True)


async def rebuild_day(db: AsyncSession, user_id: uuid.UUID, day: date, tz: tzinfo) -> DailyStat:
    """Recompute one day's counters from the raw records."""
    start, end = day_bounds(day, tz)
    sessions = await db.execute(
        select(FocusSession).where(
            FocusSession.user_id == user_id,
            FocusSession.session_type == "FOCUS",
            FocusSession.started_at >= start,
            FocusSession.started_at < end,
        )
    )
    values = {name: 0 for name in COUNTER_COLUMNS}
    for session in sessions.scalars().all():
        if session.completed:
            values["total_minutes"] += session.duration_minutes
            values["sessions_completed"] += 1
        else:
            values["sessions_interrupted"] += 1

    tasks = await db.execute(
        select(func.count(Task.id)).where(
            Task.user_id == user_id,
            Task.status == "COMPLETED",
            Task.completed_at >= start,
            Task.completed_at < end,
        )
    )
    values["tasks_completed"] = tasks.scalar_one()
    return await _upsert(db, user_id, day, values, increment=False)


async def get_daily_stat(db: AsyncSession, user_id: uuid.UUID, day: date) -> DailyStat | None:
    result = await db.execute(
        select(DailyStat).where(DailyStat.user_id == user_id, DailyStat.date == day)
    )
    return result.scalar_one_or_none()


async def get_daily_stats(
    db: AsyncSession, user_id: uuid.UUID, start: date, end: date | None = None
) -> list[DailyStat]:
    query = select(DailyStat).where(DailyStat.user_id == user_id, DailyStat.date >= start)
    if end is not None:
        query = query.where(DailyStat.date <= end)
    result = await db.execute(query.order_by(DailyStat.date.desc()))
    return list(result.scalars().all())
