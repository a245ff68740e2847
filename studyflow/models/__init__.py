from studyflow.models.achievement import UserAchievement
from studyflow.models.base import Base
from studyflow.models.daily_stat import DailyStat
from studyflow.models.plan import StudyPlan
from studyflow.models.session import FocusSession
from studyflow.models.study_streak import StudyStreak
from studyflow.models.task import Task
from studyflow.models.timer_settings import TimerSettings
from studyflow.models.user import User

__all__ = [
    "Base",
    "DailyStat",
    "FocusSession",
    "StudyPlan",
    "StudyStreak",
    "Task",
    "TimerSettings",
    "User",
    "UserAchievement",
]
