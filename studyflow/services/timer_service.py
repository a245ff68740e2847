"""Per-user timer: Redis-held state driven by the pure timer machine.

Every call loads the user's timer, ticks it up to the current instant, applies
the requested transition and writes any finalized intervals through the
session recorder. Finalized intervals are kept as ``pending`` alongside the
timer state and dropped only once their write has been committed, so a
failed write is retried by the next call (or ``POST /timer/flush``).
"""
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime

from pydantic import BaseModel
from redis.exceptions import LockError
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.config import settings
from studyflow.database import dialect_insert
from studyflow.exceptions import StoreUnavailable, ValidationError
from studyflow.models.session import FocusSession
from studyflow.models.timer_settings import DEFAULT_TIMER_SETTINGS, TimerSettings
from studyflow.models.user import User
from studyflow.schemas.session import SessionResponse
from studyflow.schemas.timer import TimerResponse
from studyflow.services import activity_service, session_service, timer_machine
from studyflow.services.clock import local_datetime, resolve_timezone, utcnow
from studyflow.services.timer_machine import (
    FinalizeSession,
    TimerConfig,
    TimerMode,
    TimerState,
    Transition,
)

logger = logging.getLogger(__name__)

Action = Callable[[TimerState, TimerConfig, datetime], Transition]


class PendingSession(BaseModel):
    effect: FinalizeSession
    plan_id: uuid.UUID | None = None
    task_id: uuid.UUID | None = None


class StoredTimer(BaseModel):
    state: TimerState
    pending: list[PendingSession] = []
    plan_id: uuid.UUID | None = None
    task_id: uuid.UUID | None = None


def _key(user_id: uuid.UUID) -> str:
    return f"timer:{user_id}"


@asynccontextmanager
async def user_lock(redis_client, user_id: uuid.UUID) -> AsyncIterator[None]:
    """Hold the per-user Redis lock around one load, transition, flush and save."""
    lock = redis_client.lock(
        f"timer-lock:{user_id}",
        timeout=settings.TIMER_LOCK_TIMEOUT_SECONDS,
        blocking_timeout=settings.TIMER_LOCK_WAIT_SECONDS,
    )
    if not await lock.acquire():
        logger.warning("Timer lock for user %s not acquired in time", user_id)
        raise StoreUnavailable("Timer is busy")
    try:
        yield
    finally:
        try:
            await lock.release()
        except LockError:
            logger.warning("Timer lock for user %s expired before release", user_id)


# --- Settings ---


async def get_or_create_settings(db: AsyncSession, user_id: uuid.UUID) -> TimerSettings:
    result = await db.execute(select(TimerSettings).where(TimerSettings.user_id == user_id))
    row = result.scalar_one_or_none()
    if row is not None:
        return row

    insert = dialect_insert(db)
    await db.execute(
        insert(TimerSettings)
        .values(id=uuid.uuid4(), user_id=user_id, **DEFAULT_TIMER_SETTINGS)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    result = await db.execute(select(TimerSettings).where(TimerSettings.user_id == user_id))
    return result.scalar_one()


async def update_settings(
    db: AsyncSession, redis_client, user: User, data: dict
) -> TimerSettings:
    """Apply a partial settings update; an idle timer picks up the new length."""
    async with user_lock(redis_client, user.id):
        row = await get_or_create_settings(db, user.id)
        for key, value in data.items():
            if value is not None:
                setattr(row, key, value)
        await db.flush()
        await db.refresh(row)
        await db.commit()

        config = TimerConfig.model_validate(row)
        tz = resolve_timezone(user.timezone)
        now = local_datetime(utcnow(), tz)
        stored = await load(redis_client, user.id, config, now)
        if stored.state.started_at is None and not stored.state.running:
            stored.state = stored.state.model_copy(
                update={"remaining_seconds": config.length_seconds(stored.state.mode)}
            )
            await save(redis_client, user.id, stored)
    return row


# --- Redis persistence ---


async def load(redis_client, user_id: uuid.UUID, config: TimerConfig, now: datetime) -> StoredTimer:
    raw = await redis_client.get(_key(user_id))
    if raw is None:
        return StoredTimer(state=timer_machine.initial_state(config, now))
    return StoredTimer.model_validate_json(raw)


async def save(redis_client, user_id: uuid.UUID, stored: StoredTimer) -> None:
    await redis_client.set(
        _key(user_id), stored.model_dump_json(), ex=settings.TIMER_STATE_TTL_SECONDS
    )


# --- Effects ---


def _queue(stored: StoredTimer, transition: Transition) -> None:
    stored.state = transition.state
    stored.pending.extend(
        PendingSession(effect=effect, plan_id=stored.plan_id, task_id=stored.task_id)
        for effect in transition.effects
    )


async def flush_pending(db: AsyncSession, user: User, stored: StoredTimer) -> list[FocusSession]:
    """Write pending intervals oldest first, committing each before dropping it.

    Links to a plan or task that no longer exists are cleared before the
    write. An interval the store rejects outright is dropped with a warning so
    it cannot block the ones queued behind it.
    """
    tz = resolve_timezone(user.timezone)
    recorded: list[FocusSession] = []
    while stored.pending:
        item = stored.pending[0]
        try:
            plan_id, task_id = await session_service.owned_links(
                db, user.id, item.plan_id, item.task_id
            )
            if (plan_id, task_id) != (item.plan_id, item.task_id):
                logger.warning("Clearing dangling plan/task link on timer session for user %s", user.id)
                if stored.plan_id == item.plan_id and plan_id is None:
                    stored.plan_id = None
                if stored.task_id == item.task_id and task_id is None:
                    stored.task_id = None
            data = item.effect.model_dump()
            data.update(plan_id=plan_id, task_id=task_id)
            session = await session_service.record_session(db, user.id, data)
            if session is not None:
                await activity_service.on_session_recorded(db, session, tz)
            await db.commit()
        except (ValidationError, IntegrityError):
            await db.rollback()
            logger.warning("Dropping timer session rejected by the store for user %s", user.id)
            session = None
        except StoreUnavailable:
            await db.rollback()
            raise
        except (OperationalError, DBAPIError) as exc:
            await db.rollback()
            logger.exception("Failed to commit timer session for user %s", user.id)
            raise StoreUnavailable("Session store unavailable") from exc

        stored.pending.pop(0)
        if session is not None:
            recorded.append(session)
    return recorded


# --- Actions ---


async def run(
    db: AsyncSession,
    redis_client,
    user: User,
    action: Action | None = None,
    plan_id: uuid.UUID | None = None,
    task_id: uuid.UUID | None = None,
) -> TimerResponse:
    """Tick the user's timer to now, apply ``action`` and flush finalized intervals.

    Runs under the user's timer lock. The timer state is saved even when the
    flush fails, so nothing finalized is lost; the ``StoreUnavailable`` is
    re-raised for the caller.
    """
    if plan_id is not None or task_id is not None:
        await session_service.check_links(db, user.id, plan_id, task_id)

    tz = resolve_timezone(user.timezone)
    async with user_lock(redis_client, user.id):
        now = local_datetime(utcnow(), tz)
        row = await get_or_create_settings(db, user.id)
        config = TimerConfig.model_validate(row)

        stored = await load(redis_client, user.id, config, now)
        _queue(stored, timer_machine.tick(stored.state, config, now))

        if plan_id is not None or task_id is not None:
            stored.plan_id, stored.task_id = plan_id, task_id
        if action is not None:
            _queue(stored, action(stored.state, config, now))

        return await _finish(db, redis_client, user, stored, config)


async def apply_preset(db: AsyncSession, redis_client, user: User, name: str) -> TimerResponse:
    if name not in timer_machine.PRESETS:
        raise ValidationError(f"Unknown preset: {name}")

    tz = resolve_timezone(user.timezone)
    async with user_lock(redis_client, user.id):
        now = local_datetime(utcnow(), tz)
        row = await get_or_create_settings(db, user.id)
        config = TimerConfig.model_validate(row)

        stored = await load(redis_client, user.id, config, now)
        _queue(stored, timer_machine.tick(stored.state, config, now))
        transition, config = timer_machine.apply_preset(stored.state, config, name, now)
        _queue(stored, transition)

        for key, value in timer_machine.PRESETS[name].items():
            setattr(row, key, value)
        await db.flush()

        return await _finish(db, redis_client, user, stored, config)


def switch_mode_action(mode: str) -> Action:
    target = TimerMode(mode)

    def action(state: TimerState, config: TimerConfig, now: datetime) -> Transition:
        return timer_machine.switch_mode(state, config, target, now)

    return action


async def _finish(
    db: AsyncSession, redis_client, user: User, stored: StoredTimer, config: TimerConfig
) -> TimerResponse:
    try:
        recorded = await flush_pending(db, user, stored)
        await db.commit()
    finally:
        await save(redis_client, user.id, stored)
    return to_response(stored, config, recorded)


def to_response(
    stored: StoredTimer, config: TimerConfig, recorded: list[FocusSession] | None = None
) -> TimerResponse:
    state = stored.state
    return TimerResponse(
        mode=state.mode.value,
        remaining_seconds=state.remaining_seconds,
        length_seconds=config.length_seconds(state.mode),
        running=state.running,
        started_at=state.started_at,
        focus_count=state.focus_count,
        focus_seconds_today=state.focus_seconds_today,
        focus_day=state.focus_day,
        preset=state.preset,
        plan_id=stored.plan_id,
        task_id=stored.task_id,
        pending_sessions=len(stored.pending),
        recorded=[SessionResponse.model_validate(s) for s in recorded or []],
    )
