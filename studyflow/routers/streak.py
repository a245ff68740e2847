from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.database import get_db
from studyflow.dependencies import get_current_user
from studyflow.models.user import User
from studyflow.schemas.streak import StreakResponse, streak_summary
from studyflow.services import streak_service
from studyflow.services.clock import resolve_timezone

router = APIRouter(prefix="/streak", tags=["streak"])


@router.get("", response_model=StreakResponse)
async def get_streak(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return streak_summary(await streak_service.get_streak(db, user.id))


@router.post("/rebuild", response_model=StreakResponse)
async def rebuild_streak(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Recompute the streak from recorded focus sessions."""
    streak = await streak_service.rebuild_streak(db, user.id, resolve_timezone(user.timezone))
    return streak_summary(streak)
