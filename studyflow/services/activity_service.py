"""Event consumers run after a session is recorded or a task is completed.

The recorder only persists. These handlers keep the derived state current:
the streak update is required, the daily-stat cache update is best-effort
and isolated in a savepoint so a failure never loses the primary write.
"""
import logging
from datetime import tzinfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.models.session import FocusSession
from studyflow.models.task import Task
from studyflow.services import daily_stat_service, streak_service
from studyflow.services.clock import local_date

logger = logging.getLogger(__name__)


async def on_session_recorded(db: AsyncSession, session: FocusSession, tz: tzinfo) -> None:
    if session.session_type == "FOCUS" and session.completed:
        await streak_service.update_on_activity(
            db, session.user_id, local_date(session.started_at, tz)
        )

    try:
        async with db.begin_nested():
            await daily_stat_service.apply_session(db, session, tz)
    except (SQLAlchemyError, NotImplementedError):
        logger.warning(
            "Daily stat update dropped for session %s; rebuild the day to recover",
            session.id,
            exc_info=True,
        )


async def on_task_completed(db: AsyncSession, task: Task, tz: tzinfo) -> None:
    if task.completed_at is None:
        return
    try:
        async with db.begin_nested():
            await daily_stat_service.apply_task_completion(db, task.user_id, task.completed_at, tz)
    except (SQLAlchemyError, NotImplementedError):
        logger.warning(
            "Daily stat update dropped for task %s; rebuild the day to recover",
            task.id,
            exc_info=True,
        )
