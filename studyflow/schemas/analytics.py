import datetime

from pydantic import BaseModel

from studyflow.schemas.streak import StreakResponse


class Overview(BaseModel):
    total_minutes: int
    total_hours: float
    total_sessions: int
    avg_session_length: int
    completed_tasks: int
    total_tasks: int
    task_completion_rate: int  # 0-100
    interrupted_sessions: int
    focus_rate: int  # 0-100
    avg_minutes_per_day: int
    avg_sessions_per_day: float
    consistency_score: int  # 0-100
    focus_score: int  # 0-100


class Trends(BaseModel):
    study_time: int  # signed percent vs previous window
    sessions: int


class DailyBreakdownEntry(BaseModel):
    date: str  # ISO date in the user's timezone
    minutes: int
    sessions: int
    tasks: int
    hours: float


class HourBucket(BaseModel):
    hour: int  # 0-23, user's timezone
    minutes: int


class WeekdayBucket(BaseModel):
    day: str  # Sun..Sat
    day_index: int  # 0=Sunday
    minutes: int


class Distribution(BaseModel):
    by_hour: list[HourBucket]
    by_day_of_week: list[WeekdayBucket]


class Insights(BaseModel):
    most_productive_hours: list[str]
    most_productive_day: str
    avg_session_length: int


class PlanSummary(BaseModel):
    id: str
    title: str
    color: str | None
    progress: int
    status: str


class DailyStatEntry(BaseModel):
    date: datetime.date
    total_minutes: int
    sessions_completed: int
    sessions_interrupted: int
    tasks_completed: int
    focus_score: int

    model_config = {"from_attributes": True}


class AnalyticsReport(BaseModel):
    period: str  # day, week, month, year
    window_start: datetime.datetime
    window_end: datetime.datetime
    overview: Overview
    trends: Trends
    streak: StreakResponse
    daily_breakdown: list[DailyBreakdownEntry]
    hourly_distribution: list[HourBucket]
    distribution: Distribution
    insights: Insights
    peak_hours: list[int]
    achievements: int
    plans: list[PlanSummary]
    daily_stats: list[DailyStatEntry]


# --- Weekly report ---


class ReportWindow(BaseModel):
    start: datetime.datetime
    end: datetime.datetime


class WeeklySummary(BaseModel):
    total_hours: float
    total_minutes: int
    total_sessions: int
    completed_tasks: int
    total_tasks: int
    task_completion_rate: int
    avg_minutes_per_day: int


class WeeklyTrends(BaseModel):
    study_time: int
    sessions: int
    direction: str  # "up" or "down"


class WeekdayEntry(BaseModel):
    day: str
    day_index: int
    sessions: int
    minutes: int
    hours: float


class PeakDay(BaseModel):
    day: str
    hours: float
    sessions: int


class PlanTime(BaseModel):
    plan_id: str  # "unassigned" for sessions without a plan
    title: str
    minutes: int
    sessions: int
    hours: float


class ActivePlan(BaseModel):
    id: str
    title: str
    progress: int
    color: str | None


class WeeklyReport(BaseModel):
    period: ReportWindow
    summary: WeeklySummary
    trends: WeeklyTrends
    streak: StreakResponse
    daily_breakdown: list[WeekdayEntry]
    peak_day: PeakDay
    by_plan: list[PlanTime]
    active_plans: list[ActivePlan]
