import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, tzinfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.database import dialect_insert
from studyflow.models.session import FocusSession
from studyflow.models.study_streak import StudyStreak
from studyflow.services.clock import local_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakSnapshot:
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: date | None = None
    streak_start_date: date | None = None
    total_study_days: int = 0


def apply_activity(snapshot: StreakSnapshot, activity_date: date) -> StreakSnapshot:
    """Fold one day of qualifying activity into a streak.

    Same-day repeats change nothing. A gap of more than one day restarts the
    streak at 1. Dates earlier than ``last_study_date`` are ignored.
    """
    last = snapshot.last_study_date
    if last is None:
        current = 1
        start = activity_date
    else:
        gap = (activity_date - last).days
        if gap == 0:
            return snapshot
        if gap < 0:
            logger.warning(
                "Ignoring out-of-order study activity on %s (last study date %s)",
                activity_date,
                last,
            )
            return snapshot
        if gap == 1:
            current = snapshot.current_streak + 1
            start = snapshot.streak_start_date or last
        else:
            current = 1
            start = activity_date

    return replace(
        snapshot,
        current_streak=current,
        longest_streak=max(snapshot.longest_streak, current),
        last_study_date=activity_date,
        streak_start_date=start,
        total_study_days=snapshot.total_study_days + 1,
    )


def compute_streaks(dates: Iterable[date]) -> StreakSnapshot:
    """Streak state for a full activity history, in any order."""
    snapshot = StreakSnapshot()
    for day in sorted(set(dates)):
        snapshot = apply_activity(snapshot, day)
    return snapshot


def _snapshot(streak: StudyStreak) -> StreakSnapshot:
    return StreakSnapshot(
        current_streak=streak.current_streak or 0,
        longest_streak=streak.longest_streak or 0,
        last_study_date=streak.last_study_date,
        streak_start_date=streak.streak_start_date,
        total_study_days=streak.total_study_days or 0,
    )


def _store(streak: StudyStreak, snapshot: StreakSnapshot) -> None:
    streak.current_streak = snapshot.current_streak
    streak.longest_streak = snapshot.longest_streak
    streak.last_study_date = snapshot.last_study_date
    streak.streak_start_date = snapshot.streak_start_date
    streak.total_study_days = snapshot.total_study_days


async def get_streak(db: AsyncSession, user_id: uuid.UUID) -> StudyStreak | None:
    result = await db.execute(select(StudyStreak).where(StudyStreak.user_id == user_id))
    return result.scalar_one_or_none()


async def _get_or_create(db: AsyncSession, user_id: uuid.UUID) -> StudyStreak:
    """Fetch the user's streak row, inserting an empty one if missing.

    The insert is ``ON CONFLICT DO NOTHING`` so concurrent first writers
    converge on the same row.
    """
    streak = await get_streak(db, user_id)
    if streak is not None:
        return streak

    insert = dialect_insert(db)
    await db.execute(
        insert(StudyStreak)
        .values(
            id=uuid.uuid4(),
            user_id=user_id,
            current_streak=0,
            longest_streak=0,
            total_study_days=0,
        )
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    result = await db.execute(select(StudyStreak).where(StudyStreak.user_id == user_id))
    return result.scalar_one()


async def update_on_activity(
    db: AsyncSession, user_id: uuid.UUID, activity_date: date | datetime
) -> StudyStreak:
    if isinstance(activity_date, datetime):
        activity_date = activity_date.date()

    streak = await _get_or_create(db, user_id)
    before = _snapshot(streak)
    after = apply_activity(before, activity_date)
    if after != before:
        _store(streak, after)
    await db.flush()
    await db.refresh(streak)
    return streak


async def rebuild_streak(db: AsyncSession, user_id: uuid.UUID, tz: tzinfo) -> StudyStreak:
    """Recompute the streak singleton from raw completed focus sessions."""
    result = await db.execute(
        select(FocusSession.started_at).where(
            FocusSession.user_id == user_id,
            FocusSession.session_type == "FOCUS",
            FocusSession.completed == True,  # noqa: E712
        )
    )
    dates = {local_date(started_at, tz) for started_at in result.scalars().all()}

    streak = await _get_or_create(db, user_id)
    _store(streak, compute_streaks(dates))
    await db.flush()
    await db.refresh(streak)
    return streak
