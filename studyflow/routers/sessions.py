import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.database import get_db
from studyflow.dependencies import get_current_user
from studyflow.exceptions import NotFoundError
from studyflow.models.user import User
from studyflow.schemas.session import SessionCreate, SessionRecordResult, SessionResponse
from studyflow.services import activity_service, session_service
from studyflow.services.clock import resolve_timezone

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=list[SessionResponse])
async def list_sessions(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session_type: str | None = Query(default=None, pattern="^(FOCUS|SHORT_BREAK|LONG_BREAK)$"),
    plan_id: uuid.UUID | None = Query(default=None),
    completed: bool | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await session_service.get_sessions(
        db, user.id, limit=limit, offset=offset,
        session_type=session_type, plan_id=plan_id, completed=completed,
        start_date=start_date, end_date=end_date,
    )


@router.post("", response_model=SessionRecordResult, status_code=201)
async def record_session(
    data: SessionCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session = await session_service.record_session(db, user.id, data.model_dump(exclude_none=True))
    if session is None:
        return JSONResponse(status_code=200, content={"recorded": False, "session": None})

    await activity_service.on_session_recorded(db, session, resolve_timezone(user.timezone))
    return SessionRecordResult(recorded=True, session=SessionResponse.model_validate(session))


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session = await session_service.get_session(db, user.id, session_id)
    if session is None:
        raise NotFoundError("Session not found")
    return session
