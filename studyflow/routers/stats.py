from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.database import get_db
from studyflow.dependencies import get_current_user
from studyflow.models.user import User
from studyflow.schemas.stats import StatsResponse
from studyflow.services import stats_service

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=StatsResponse)
async def get_stats(
    period: str = Query(default="today", pattern="^(today|week|month|all)$"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.get_stats(db, user, period=period)
