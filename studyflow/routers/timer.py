import asyncio
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.config import settings
from studyflow.database import async_session_factory, get_db
from studyflow.dependencies import authenticate_token, get_current_user, get_redis
from studyflow.exceptions import StudyflowError, UnauthorizedError
from studyflow.models.user import User
from studyflow.schemas.timer import (
    ModeRequest,
    PresetRequest,
    PresetResponse,
    StartRequest,
    TimerResponse,
    TimerSettingsResponse,
    TimerSettingsUpdate,
)
from studyflow.services import timer_machine, timer_service
from studyflow.services.timer_runner import TimerRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/timer", tags=["timer"])

ACTIONS = {
    "start": timer_machine.start,
    "pause": timer_machine.pause,
    "reset": timer_machine.reset,
    "skip": timer_machine.skip,
}


@router.get("", response_model=TimerResponse)
async def get_timer(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    return await timer_service.run(db, redis_client, user)


@router.post("/start", response_model=TimerResponse)
async def start_timer(
    data: StartRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    data = data or StartRequest()
    return await timer_service.run(
        db, redis_client, user, timer_machine.start, plan_id=data.plan_id, task_id=data.task_id
    )


@router.post("/pause", response_model=TimerResponse)
async def pause_timer(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    return await timer_service.run(db, redis_client, user, timer_machine.pause)


@router.post("/reset", response_model=TimerResponse)
async def reset_timer(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    return await timer_service.run(db, redis_client, user, timer_machine.reset)


@router.post("/skip", response_model=TimerResponse)
async def skip_interval(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    return await timer_service.run(db, redis_client, user, timer_machine.skip)


@router.post("/flush", response_model=TimerResponse)
async def flush_pending(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    """Retry writing finalized intervals left pending by a storage failure."""
    return await timer_service.run(db, redis_client, user)


@router.post("/mode", response_model=TimerResponse)
async def switch_mode(
    data: ModeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    return await timer_service.run(
        db, redis_client, user, timer_service.switch_mode_action(data.mode)
    )


@router.post("/preset", response_model=TimerResponse)
async def apply_preset(
    data: PresetRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    return await timer_service.apply_preset(db, redis_client, user, data.name)


@router.get("/presets", response_model=list[PresetResponse])
async def list_presets():
    return [PresetResponse(name=name, **lengths) for name, lengths in timer_machine.PRESETS.items()]


@router.get("/settings", response_model=TimerSettingsResponse)
async def get_settings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await timer_service.get_or_create_settings(db, user.id)


@router.patch("/settings", response_model=TimerSettingsResponse)
async def update_settings(
    data: TimerSettingsUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis_client=Depends(get_redis),
):
    return await timer_service.update_settings(
        db, redis_client, user, data.model_dump(exclude_unset=True)
    )


@router.websocket("/ws")
async def timer_stream(websocket: WebSocket, token: str | None = Query(default=None)):
    """Push the ticking timer once per interval; accepts ``{"action": ...}`` messages."""
    async with async_session_factory() as db:
        try:
            user = await authenticate_token(db, token)
        except UnauthorizedError:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()
    redis_client = websocket.app.state.redis
    lock = asyncio.Lock()

    async def push(action=None) -> None:
        async with lock, async_session_factory() as db:
            try:
                view = await timer_service.run(db, redis_client, user, action)
                await db.commit()
            except StudyflowError as exc:
                await websocket.send_json({"type": "error", "detail": exc.detail})
                return
        await websocket.send_json({"type": "timer", "data": view.model_dump(mode="json")})

    async with TimerRunner(push, interval=settings.TIMER_TICK_SECONDS):
        try:
            while True:
                try:
                    message = await websocket.receive_json()
                except ValueError:
                    await websocket.send_json({"type": "error", "detail": "Messages must be JSON"})
                    continue
                name = message.get("action") if isinstance(message, dict) else None
                if name == "ping":
                    await websocket.send_json({"type": "pong"})
                elif name in ACTIONS:
                    await push(ACTIONS[name])
                else:
                    await websocket.send_json({"type": "error", "detail": f"Unknown action: {name}"})
        except WebSocketDisconnect:
            logger.debug("Timer stream closed for user %s", user.id)
