from pydantic import BaseModel

from studyflow.schemas.streak import StreakResponse


class StatsSummary(BaseModel):
    total_sessions: int
    total_minutes: int
    total_hours: float
    average_per_day: float
    completion_rate: int  # 0-100, completed vs interrupted focus intervals
    interrupted_sessions: int


class TodaySnapshot(BaseModel):
    sessions_completed: int = 0
    total_minutes: int = 0
    tasks_completed: int = 0
    focus_score: int = 0


class ChartPoint(BaseModel):
    date: str  # ISO date string
    sessions: int
    minutes: int


class StatsResponse(BaseModel):
    period: str  # today, week, month, all
    summary: StatsSummary
    streak: StreakResponse
    today: TodaySnapshot
    chart_data: list[ChartPoint]
    by_plan: dict[str, int]
