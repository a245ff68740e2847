from collections import defaultdict
from datetime import datetime, time, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.exceptions import ValidationError
from studyflow.models.session import FocusSession
from studyflow.models.user import User
from studyflow.schemas.stats import ChartPoint, StatsResponse, StatsSummary, TodaySnapshot
from studyflow.schemas.streak import streak_summary
from studyflow.services import daily_stat_service, session_service, streak_service
from studyflow.services.analytics_service import days_elapsed, round_hours
from studyflow.services.clock import as_utc, local_datetime, resolve_timezone, utcnow
from studyflow.services.metrics import percent, round_half_up

PERIOD_LOOKBACK_DAYS = {"today": 0, "week": 7, "month": 30}


async def _period_start(
    db: AsyncSession, user: User, period: str, now: datetime, tz
) -> datetime:
    if period == "all":
        result = await db.execute(
            select(func.min(FocusSession.started_at)).where(FocusSession.user_id == user.id)
        )
        first = result.scalar_one_or_none()
        if first is None:
            return now
        local_first = local_datetime(first, tz).date()
        return as_utc(datetime.combine(local_first, time.min, tzinfo=tz))

    if period not in PERIOD_LOOKBACK_DAYS:
        raise ValidationError(f"Invalid period: {period}")
    start_day = local_datetime(now, tz).date() - timedelta(days=PERIOD_LOOKBACK_DAYS[period])
    return as_utc(datetime.combine(start_day, time.min, tzinfo=tz))


async def get_stats(
    db: AsyncSession,
    user: User,
    period: str = "today",
    now: datetime | None = None,
) -> StatsResponse:
    """Timer statistics: focus totals, streak, today's cached rollup and chart data."""
    tz = resolve_timezone(user.timezone)
    now = as_utc(now or utcnow())
    start = await _period_start(db, user, period, now, tz)

    focus_sessions = await session_service.get_sessions_between(db, user.id, start)
    sessions = [s for s in focus_sessions if s.completed]
    interrupted = len(focus_sessions) - len(sessions)

    total_minutes = sum(s.duration_minutes for s in sessions)
    elapsed = days_elapsed(start, now)

    by_date: dict[str, dict[str, int]] = defaultdict(lambda: {"sessions": 0, "minutes": 0})
    by_plan: dict[str, int] = defaultdict(int)
    for s in sessions:
        key = local_datetime(s.started_at, tz).date().isoformat()
        by_date[key]["sessions"] += 1
        by_date[key]["minutes"] += s.duration_minutes
        if s.plan_id:
            by_plan[str(s.plan_id)] += 1

    today_stat = await daily_stat_service.get_daily_stat(
        db, user.id, local_datetime(now, tz).date()
    )
    today = TodaySnapshot()
    if today_stat is not None:
        today = TodaySnapshot(
            sessions_completed=today_stat.sessions_completed,
            total_minutes=today_stat.total_minutes,
            tasks_completed=today_stat.tasks_completed,
            focus_score=today_stat.focus_score,
        )

    streak = await streak_service.get_streak(db, user.id)

    return StatsResponse(
        period=period,
        summary=StatsSummary(
            total_sessions=len(sessions),
            total_minutes=total_minutes,
            total_hours=round_hours(total_minutes),
            average_per_day=round_half_up(len(sessions) / elapsed * 10) / 10,
            completion_rate=percent(len(sessions), len(focus_sessions)),
            interrupted_sessions=interrupted,
        ),
        streak=streak_summary(streak),
        today=today,
        chart_data=[
            ChartPoint(date=day, **data) for day, data in sorted(by_date.items())
        ],
        by_plan=dict(by_plan),
    )
