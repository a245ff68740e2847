import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.database import get_db
from studyflow.dependencies import get_current_user
from studyflow.models.user import User
from studyflow.schemas.analytics import AnalyticsReport, WeeklyReport
from studyflow.services import analytics_service

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("", response_model=AnalyticsReport)
async def get_analytics(
    period: str = Query(default="week", pattern="^(day|week|month|year)$"),
    plan_id: uuid.UUID | None = Query(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.aggregate(db, user, period=period, plan_id=plan_id)


@router.get("/weekly", response_model=WeeklyReport)
async def get_weekly_report(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.weekly_report(db, user)
