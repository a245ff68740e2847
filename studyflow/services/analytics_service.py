import math
import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime, time, timedelta, tzinfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.exceptions import ValidationError
from studyflow.models.achievement import UserAchievement
from studyflow.models.plan import StudyPlan
from studyflow.models.session import FocusSession
from studyflow.models.task import Task
from studyflow.models.user import User
from studyflow.schemas.analytics import (
    ActivePlan,
    AnalyticsReport,
    DailyBreakdownEntry,
    DailyStatEntry,
    Distribution,
    HourBucket,
    Insights,
    Overview,
    PeakDay,
    PlanSummary,
    PlanTime,
    ReportWindow,
    Trends,
    WeekdayBucket,
    WeekdayEntry,
    WeeklyReport,
    WeeklySummary,
    WeeklyTrends,
)
from studyflow.schemas.streak import streak_summary
from studyflow.services import daily_stat_service, session_service, streak_service
from studyflow.services.clock import as_utc, local_datetime, resolve_timezone, utcnow
from studyflow.services.metrics import (
    consistency_score,
    focus_score,
    percent,
    round_half_up,
    safe_ratio,
    trend_percent,
)

PERIOD_LOOKBACK_DAYS = {"day": 0, "week": 7, "month": 30, "year": 365}
EXPECTED_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}

DAY_ABBREVIATIONS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


# ---------------------------------------------------------------------------
# Pure aggregation helpers
# ---------------------------------------------------------------------------


def period_window(period: str, now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """``[start, now]`` for a period; start is a local midnight N calendar days back."""
    if period not in PERIOD_LOOKBACK_DAYS:
        raise ValidationError(f"Invalid period: {period}")
    local_now = local_datetime(now, tz)
    start_day = local_now.date() - timedelta(days=PERIOD_LOOKBACK_DAYS[period])
    start = datetime.combine(start_day, time.min, tzinfo=tz)
    return as_utc(start), as_utc(now)


def previous_window(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    """The window of the same length immediately before ``start``."""
    return start - (end - start), start


def round_hours(minutes: int) -> float:
    return round_half_up(minutes / 60 * 10) / 10


def sunday_index(value: datetime) -> int:
    # Python weekday(): Monday=0 .. Sunday=6
    return (value.weekday() + 1) % 7


def hour_label(hour: int) -> str:
    if hour == 0:
        return "12AM"
    if hour < 12:
        return f"{hour}AM"
    if hour == 12:
        return "12PM"
    return f"{hour - 12}PM"


def daily_breakdown(
    sessions: Iterable[FocusSession],
    task_completions: Iterable[datetime],
    tz: tzinfo,
) -> list[DailyBreakdownEntry]:
    buckets: dict[str, dict[str, int]] = defaultdict(
        lambda: {"minutes": 0, "sessions": 0, "tasks": 0}
    )
    for s in sessions:
        key = local_datetime(s.started_at, tz).date().isoformat()
        buckets[key]["minutes"] += s.duration_minutes
        buckets[key]["sessions"] += 1
    for completed_at in task_completions:
        key = local_datetime(completed_at, tz).date().isoformat()
        buckets[key]["tasks"] += 1

    return [
        DailyBreakdownEntry(date=day, hours=round_hours(data["minutes"]), **data)
        for day, data in sorted(buckets.items())
    ]


def hourly_distribution(sessions: Iterable[FocusSession], tz: tzinfo) -> dict[int, int]:
    hours: dict[int, int] = defaultdict(int)
    for s in sessions:
        hours[local_datetime(s.started_at, tz).hour] += s.duration_minutes
    return dict(hours)


def peak_hours(hourly: dict[int, int], limit: int = 3) -> list[int]:
    """Top hours by minutes; earlier hour first on ties."""
    ranked = sorted(
        ((hour, minutes) for hour, minutes in hourly.items() if minutes > 0),
        key=lambda item: (-item[1], item[0]),
    )
    return [hour for hour, _ in ranked[:limit]]


def minutes_by_weekday(sessions: Iterable[FocusSession], tz: tzinfo) -> list[int]:
    buckets = [0] * 7
    for s in sessions:
        buckets[sunday_index(local_datetime(s.started_at, tz))] += s.duration_minutes
    return buckets


def most_productive_day(buckets: Sequence[int]) -> int:
    """Index (0=Sunday) of the largest bucket; the first one wins ties."""
    best = 0
    for index, minutes in enumerate(buckets):
        if minutes > buckets[best]:
            best = index
    return best


def days_elapsed(start: datetime, end: datetime) -> int:
    return max(1, math.ceil((end - start).total_seconds() / 86400))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def _task_counts(
    db: AsyncSession,
    user_id: uuid.UUID,
    start: datetime,
    plan_id: uuid.UUID | None = None,
) -> tuple[int, int, list[datetime]]:
    """(completed, total, completion timestamps) for tasks created since ``start``."""
    filters = [Task.user_id == user_id, Task.created_at >= start]
    if plan_id is not None:
        filters.append(Task.plan_id == plan_id)

    total = (await db.execute(select(func.count(Task.id)).where(*filters))).scalar_one()
    completed_rows = await db.execute(
        select(Task.completed_at).where(*filters, Task.status == "COMPLETED")
    )
    completed_at = list(completed_rows.scalars().all())
    return len(completed_at), total, [c for c in completed_at if c is not None]


async def _achievement_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(UserAchievement.id)).where(UserAchievement.user_id == user_id)
    )
    return result.scalar_one()


async def _plans(db: AsyncSession, user_id: uuid.UUID, statuses: Sequence[str]) -> list[StudyPlan]:
    result = await db.execute(
        select(StudyPlan)
        .where(StudyPlan.user_id == user_id, StudyPlan.status.in_(statuses))
        .order_by(StudyPlan.created_at.asc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


async def aggregate(
    db: AsyncSession,
    user: User,
    period: str = "week",
    plan_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> AnalyticsReport:
    """Full analytics report for one user over a look-back window.

    Totals count completed focus sessions only; interrupted focus sessions
    feed ``interrupted_sessions`` and ``focus_rate``. Every rate is guarded
    against empty input, so an account with no data yields zeros.
    """
    tz = resolve_timezone(user.timezone)
    now = as_utc(now or utcnow())
    start, end = period_window(period, now, tz)
    prev_start, prev_end = previous_window(start, end)

    focus_sessions = await session_service.get_sessions_between(
        db, user.id, start, plan_id=plan_id
    )
    sessions = [s for s in focus_sessions if s.completed]
    previous = [
        s
        for s in await session_service.get_sessions_between(
            db, user.id, prev_start, prev_end, plan_id=plan_id
        )
        if s.completed
    ]
    completed_tasks, total_tasks, task_completions = await _task_counts(
        db, user.id, start, plan_id=plan_id
    )

    total_minutes = sum(s.duration_minutes for s in sessions)
    total_sessions = len(sessions)
    interrupted = sum(1 for s in focus_sessions if s.interrupted)
    task_rate = percent(completed_tasks, total_tasks)

    breakdown = daily_breakdown(sessions, task_completions, tz)
    consistency = consistency_score(len(breakdown), EXPECTED_DAYS[period])

    hourly = hourly_distribution(sessions, tz)
    hour_buckets = [HourBucket(hour=h, minutes=m) for h, m in sorted(hourly.items())]
    weekday = minutes_by_weekday(sessions, tz)
    peaks = peak_hours(hourly)
    avg_length = safe_ratio(total_minutes, total_sessions)

    elapsed_days = days_elapsed(start, end)
    previous_minutes = sum(s.duration_minutes for s in previous)

    streak = await streak_service.get_streak(db, user.id)
    daily_stats = await daily_stat_service.get_daily_stats(
        db, user.id, local_datetime(start, tz).date()
    )
    plans = await _plans(db, user.id, ("ACTIVE", "COMPLETED"))

    return AnalyticsReport(
        period=period,
        window_start=start,
        window_end=end,
        overview=Overview(
            total_minutes=total_minutes,
            total_hours=round_hours(total_minutes),
            total_sessions=total_sessions,
            avg_session_length=avg_length,
            completed_tasks=completed_tasks,
            total_tasks=total_tasks,
            task_completion_rate=task_rate,
            interrupted_sessions=interrupted,
            focus_rate=percent(len(focus_sessions) - interrupted, len(focus_sessions)),
            avg_minutes_per_day=safe_ratio(total_minutes, elapsed_days),
            avg_sessions_per_day=round_half_up(total_sessions / elapsed_days * 10) / 10,
            consistency_score=consistency,
            focus_score=focus_score(task_rate, consistency),
        ),
        trends=Trends(
            study_time=trend_percent(total_minutes, previous_minutes),
            sessions=trend_percent(total_sessions, len(previous)),
        ),
        streak=streak_summary(streak),
        daily_breakdown=breakdown,
        hourly_distribution=hour_buckets,
        distribution=Distribution(
            by_hour=hour_buckets,
            by_day_of_week=[
                WeekdayBucket(day=name, day_index=i, minutes=weekday[i])
                for i, name in enumerate(DAY_ABBREVIATIONS)
            ],
        ),
        insights=Insights(
            most_productive_hours=[hour_label(h) for h in peaks],
            most_productive_day=DAY_NAMES[most_productive_day(weekday)],
            avg_session_length=avg_length,
        ),
        peak_hours=peaks,
        achievements=await _achievement_count(db, user.id),
        plans=[
            PlanSummary(
                id=str(p.id),
                title=p.title,
                color=p.color,
                progress=p.progress or 0,
                status=p.status,
            )
            for p in plans
        ],
        daily_stats=[DailyStatEntry.model_validate(stat) for stat in daily_stats],
    )


async def weekly_report(
    db: AsyncSession, user: User, now: datetime | None = None
) -> WeeklyReport:
    """This week (last 7 calendar days) against the 7 days before it."""
    tz = resolve_timezone(user.timezone)
    now = as_utc(now or utcnow())
    start, end = period_window("week", now, tz)
    prev_start = start - timedelta(days=7)

    current = [
        s for s in await session_service.get_sessions_between(db, user.id, start) if s.completed
    ]
    previous = [
        s
        for s in await session_service.get_sessions_between(db, user.id, prev_start, start)
        if s.completed
    ]

    completed_tasks = (
        await db.execute(
            select(func.count(Task.id)).where(
                Task.user_id == user.id,
                Task.status == "COMPLETED",
                Task.completed_at >= start,
            )
        )
    ).scalar_one()
    total_tasks = (
        await db.execute(
            select(func.count(Task.id)).where(Task.user_id == user.id, Task.created_at >= start)
        )
    ).scalar_one()

    current_minutes = sum(s.duration_minutes for s in current)
    previous_minutes = sum(s.duration_minutes for s in previous)
    minutes_trend = trend_percent(current_minutes, previous_minutes)

    days: list[WeekdayEntry] = []
    for index, name in enumerate(DAY_ABBREVIATIONS):
        day_sessions = [s for s in current if sunday_index(local_datetime(s.started_at, tz)) == index]
        minutes = sum(s.duration_minutes for s in day_sessions)
        days.append(
            WeekdayEntry(
                day=name,
                day_index=index,
                sessions=len(day_sessions),
                minutes=minutes,
                hours=round_hours(minutes),
            )
        )
    peak = days[most_productive_day([d.minutes for d in days])]

    plan_ids = {s.plan_id for s in current if s.plan_id is not None}
    titles: dict[uuid.UUID, str] = {}
    if plan_ids:
        rows = await db.execute(select(StudyPlan.id, StudyPlan.title).where(StudyPlan.id.in_(plan_ids)))
        titles = {row.id: row.title for row in rows.all()}

    by_plan: dict[str, dict] = {}
    for s in current:
        key = str(s.plan_id) if s.plan_id else "unassigned"
        if key not in by_plan:
            by_plan[key] = {
                "plan_id": key,
                "title": titles.get(s.plan_id, "Unassigned"),
                "minutes": 0,
                "sessions": 0,
            }
        by_plan[key]["minutes"] += s.duration_minutes
        by_plan[key]["sessions"] += 1

    active_plans = await _plans(db, user.id, ("ACTIVE",))
    streak = await streak_service.get_streak(db, user.id)

    return WeeklyReport(
        period=ReportWindow(start=start, end=end),
        summary=WeeklySummary(
            total_hours=round_hours(current_minutes),
            total_minutes=current_minutes,
            total_sessions=len(current),
            completed_tasks=completed_tasks,
            total_tasks=total_tasks,
            task_completion_rate=percent(completed_tasks, total_tasks),
            avg_minutes_per_day=safe_ratio(current_minutes, 7),
        ),
        trends=WeeklyTrends(
            study_time=minutes_trend,
            sessions=trend_percent(len(current), len(previous)),
            direction="up" if minutes_trend >= 0 else "down",
        ),
        streak=streak_summary(streak),
        daily_breakdown=days,
        peak_day=PeakDay(day=peak.day, hours=peak.hours, sessions=peak.sessions),
        by_plan=[
            PlanTime(hours=round_hours(p["minutes"]), **p) for p in by_plan.values()
        ],
        active_plans=[
            ActivePlan(id=str(p.id), title=p.title, progress=p.progress or 0, color=p.color)
            for p in active_plans
        ],
    )
