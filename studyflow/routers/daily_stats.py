from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.database import get_db
from studyflow.dependencies import get_current_user
from studyflow.models.user import User
from studyflow.schemas.analytics import DailyStatEntry
from studyflow.services import daily_stat_service
from studyflow.services.clock import local_date, resolve_timezone, utcnow

router = APIRouter(prefix="/daily-stats", tags=["daily-stats"])


@router.post("/rebuild", response_model=DailyStatEntry)
async def rebuild_day(
    day: date | None = Query(default=None, alias="date"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Recompute one day's cached counters from raw sessions and tasks (default: today)."""
    tz = resolve_timezone(user.timezone)
    day = day or local_date(utcnow(), tz)
    return await daily_stat_service.rebuild_day(db, user.id, day, tz)
