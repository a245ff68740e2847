import datetime

from pydantic import BaseModel


class StreakResponse(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: datetime.date | None = None
    streak_start_date: datetime.date | None = None
    total_study_days: int = 0

    model_config = {"from_attributes": True}


def streak_summary(streak) -> StreakResponse:
    """Snapshot of a StudyStreak row, or zeros when the user has none yet."""
    if streak is None:
        return StreakResponse()
    return StreakResponse.model_validate(streak)
