import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import WebSocketDisconnect, status
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import NullPool, create_engine, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session

import studyflow.routers.timer as timer_router
from studyflow.config import settings
from studyflow.exceptions import StoreUnavailable, ValidationError
from studyflow.main import app
from studyflow.models import Base
from studyflow.models.daily_stat import DailyStat
from studyflow.models.plan import StudyPlan
from studyflow.models.session import FocusSession
from studyflow.models.study_streak import StudyStreak
from studyflow.models.timer_settings import TimerSettings
from studyflow.models.user import User
from studyflow.services import session_service, timer_machine, timer_service


async def _rewind(fake_redis, user_id, minutes: int) -> None:
    """Shift the stored timer back in time, as if ``minutes`` had elapsed."""
    key = f"timer:{user_id}"
    stored = timer_service.StoredTimer.model_validate_json(await fake_redis.get(key))
    delta = timedelta(minutes=minutes)
    stored.state = stored.state.model_copy(update={
        "started_at": stored.state.started_at - delta,
        "last_tick_at": stored.state.last_tick_at - delta,
    })
    await fake_redis.set(key, stored.model_dump_json())


@pytest.mark.asyncio
async def test_get_timer_defaults(client):
    response = await client.get("/timer")
    assert response.status_code == 200
    data = response.json()
    assert data["mode"] == "FOCUS"
    assert data["remaining_seconds"] == 25 * 60
    assert data["running"] is False
    assert data["pending_sessions"] == 0


@pytest.mark.asyncio
async def test_start_and_pause(client):
    response = await client.post("/timer/start")
    assert response.json()["running"] is True
    assert response.json()["started_at"] is not None

    response = await client.post("/timer/pause")
    assert response.json()["running"] is False
    assert response.json()["started_at"] is not None


@pytest.mark.asyncio
async def test_skip_records_interrupted_session(client, fake_redis, test_user):
    await client.post("/timer/start")
    await _rewind(fake_redis, test_user.id, 10)

    response = await client.post("/timer/skip")
    data = response.json()
    assert data["mode"] == "SHORT_BREAK"
    assert data["pending_sessions"] == 0
    (recorded,) = data["recorded"]
    assert recorded["interrupted"] is True
    assert recorded["duration_minutes"] == 10

    sessions = (await client.get("/sessions")).json()
    assert len(sessions) == 1


@pytest.mark.asyncio
async def test_expiry_records_completed_session_and_streak(client, fake_redis, test_user):
    await client.post("/timer/start")
    await _rewind(fake_redis, test_user.id, 26)

    data = (await client.get("/timer")).json()
    assert data["mode"] == "SHORT_BREAK"
    assert data["focus_count"] == 1
    assert data["recorded"][0]["completed"] is True
    assert data["recorded"][0]["duration_minutes"] == 25

    streak = (await client.get("/streak")).json()
    assert streak["current_streak"] == 1


@pytest.mark.asyncio
async def test_quick_reset_is_not_recorded(client):
    await client.post("/timer/start")
    response = await client.post("/timer/reset")
    data = response.json()
    assert data["recorded"] == []
    assert data["pending_sessions"] == 0
    assert data["remaining_seconds"] == 25 * 60


@pytest.mark.asyncio
async def test_failed_write_stays_pending_until_flush(client, fake_redis, test_user, monkeypatch):
    await client.post("/timer/start")
    await _rewind(fake_redis, test_user.id, 10)

    original = session_service.record_session

    async def unavailable(*args, **kwargs):
        raise StoreUnavailable("Session store unavailable")

    monkeypatch.setattr(session_service, "record_session", unavailable)
    response = await client.post("/timer/skip")
    assert response.status_code == 503

    stored = timer_service.StoredTimer.model_validate_json(
        await fake_redis.get(f"timer:{test_user.id}")
    )
    assert len(stored.pending) == 1
    assert stored.state.mode.value == "SHORT_BREAK"

    monkeypatch.setattr(session_service, "record_session", original)
    response = await client.post("/timer/flush")
    assert response.status_code == 200
    assert response.json()["pending_sessions"] == 0
    assert len(response.json()["recorded"]) == 1


@pytest.mark.asyncio
async def test_switch_mode(client):
    response = await client.post("/timer/mode", json={"mode": "LONG_BREAK"})
    assert response.json()["mode"] == "LONG_BREAK"
    assert response.json()["remaining_seconds"] == 15 * 60

    response = await client.post("/timer/mode", json={"mode": "NAP"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_presets(client):
    response = await client.get("/timer/presets")
    names = [p["name"] for p in response.json()]
    assert names == ["pomodoro", "deep_work", "sprint", "extended"]

    response = await client.post("/timer/preset", json={"name": "sprint"})
    assert response.status_code == 200
    assert response.json()["remaining_seconds"] == 15 * 60
    assert response.json()["preset"] == "sprint"

    settings = (await client.get("/timer/settings")).json()
    assert settings["pomodoro_length"] == 15
    assert settings["short_break_length"] == 3

    response = await client.post("/timer/preset", json={"name": "marathon"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_settings_update(client):
    response = await client.get("/timer/settings")
    assert response.json()["long_break_interval"] == 4

    response = await client.patch("/timer/settings", json={"pomodoro_length": 40, "volume": 30})
    assert response.status_code == 200
    assert response.json()["pomodoro_length"] == 40

    # idle timer picks up the new length
    timer = (await client.get("/timer")).json()
    assert timer["remaining_seconds"] == 40 * 60


@pytest.mark.asyncio
async def test_settings_validation(client):
    response = await client.patch("/timer/settings", json={"pomodoro_length": 500})
    assert response.status_code == 422
    response = await client.patch("/timer/settings", json={"volume": -1})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_timer_state_uses_ttl(client, fake_redis, test_user):
    await client.get("/timer")
    assert fake_redis._ttls[f"timer:{test_user.id}"] > 0


async def _save_running_focus(fake_redis, user_id, minutes_ago: int) -> datetime:
    started = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    config = timer_machine.TimerConfig()
    state = timer_machine.start(timer_machine.initial_state(config, started), config, started).state
    await timer_service.save(fake_redis, user_id, timer_service.StoredTimer(state=state))
    return started


@pytest.mark.asyncio
async def test_concurrent_runs_record_one_expiry(session_factory, fake_redis, test_user):
    started = await _save_running_focus(fake_redis, test_user.id, 26)

    async def drive():
        async with session_factory() as db:
            view = await timer_service.run(db, fake_redis, test_user)
            await db.commit()
            return view

    views = await asyncio.gather(drive(), drive())
    assert sum(len(view.recorded) for view in views) == 1
    assert all(view.mode == "SHORT_BREAK" for view in views)

    async with session_factory() as db:
        sessions = await db.scalar(
            select(func.count()).select_from(FocusSession).where(FocusSession.user_id == test_user.id)
        )
        assert sessions == 1
        stat = await db.scalar(
            select(DailyStat).where(DailyStat.user_id == test_user.id, DailyStat.date == started.date())
        )
        assert stat.sessions_completed == 1
        streak = await db.scalar(select(StudyStreak).where(StudyStreak.user_id == test_user.id))
        assert streak.total_study_days == 1
        settings_rows = await db.scalar(
            select(func.count()).select_from(TimerSettings).where(TimerSettings.user_id == test_user.id)
        )
        assert settings_rows == 1


@pytest.mark.asyncio
async def test_get_or_create_settings_is_idempotent(session_factory, test_user):
    async with session_factory() as db:
        first = await timer_service.get_or_create_settings(db, test_user.id)
        first.pomodoro_length = 40
        await db.commit()

    async with session_factory() as db:
        again = await timer_service.get_or_create_settings(db, test_user.id)
        assert again.id == first.id
        assert again.pomodoro_length == 40


@pytest.mark.asyncio
async def test_start_with_unknown_plan_is_rejected(client):
    response = await client.post("/timer/start", json={"plan_id": str(uuid.uuid4())})
    assert response.status_code == 404
    assert response.json()["detail"] == "Plan not found"

    response = await client.post("/timer/start", json={"task_id": str(uuid.uuid4())})
    assert response.status_code == 404

    timer = (await client.get("/timer")).json()
    assert timer["running"] is False
    assert timer["plan_id"] is None


@pytest.mark.asyncio
async def test_deleted_plan_does_not_block_timer(client, fake_redis, test_user, db_session):
    plan = StudyPlan(user_id=test_user.id, title="Organic chemistry")
    db_session.add(plan)
    await db_session.commit()

    response = await client.post("/timer/start", json={"plan_id": str(plan.id)})
    assert response.status_code == 200
    await _rewind(fake_redis, test_user.id, 10)

    await db_session.execute(delete(StudyPlan).where(StudyPlan.id == plan.id))
    await db_session.commit()

    response = await client.post("/timer/skip")
    assert response.status_code == 200
    data = response.json()
    assert data["pending_sessions"] == 0
    assert data["plan_id"] is None
    (recorded,) = data["recorded"]
    assert recorded["plan_id"] is None
    assert recorded["duration_minutes"] == 10

    assert (await client.get("/timer")).status_code == 200


@pytest.mark.asyncio
async def test_rejected_write_is_dropped_not_retried(client, fake_redis, test_user, monkeypatch):
    await client.post("/timer/start")
    await _rewind(fake_redis, test_user.id, 10)

    async def rejected(*args, **kwargs):
        raise ValidationError("Session references a missing plan or task")

    monkeypatch.setattr(session_service, "record_session", rejected)
    response = await client.post("/timer/skip")
    assert response.status_code == 200
    assert response.json()["pending_sessions"] == 0
    assert response.json()["recorded"] == []
    assert response.json()["mode"] == "SHORT_BREAK"


@pytest.mark.asyncio
async def test_recorder_maps_integrity_error(db_session, test_user, monkeypatch):
    async def violated(*args, **kwargs):
        raise IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

    monkeypatch.setattr(db_session, "flush", violated)
    now = datetime.now(timezone.utc)
    with pytest.raises(ValidationError):
        await session_service.record_session(db_session, test_user.id, {
            "session_type": "FOCUS", "started_at": now, "ended_at": now + timedelta(minutes=5),
        })


# --- Websocket stream ---


def _access_token(user_id: uuid.UUID) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "type": "access", "iat": now, "exp": now + timedelta(minutes=15)}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _receive(ws, kind: str, **fields) -> dict:
    """Read frames until one of ``kind`` whose ``data`` carries ``fields``."""
    for _ in range(200):
        message = ws.receive_json()
        if message["type"] != kind:
            continue
        if all(message["data"][key] == value for key, value in fields.items()):
            return message
    raise AssertionError(f"No {kind} message with {fields}")


@pytest.fixture
def stream_user(tmp_path, monkeypatch, fake_redis) -> User:
    """File-backed database the websocket handler opens its own sessions on."""
    database = tmp_path / "timer_stream.db"
    sync_engine = create_engine(f"sqlite:///{database}")
    Base.metadata.create_all(sync_engine)
    user = User(id=uuid.uuid4(), email="stream@example.com", timezone="UTC")
    with Session(sync_engine, expire_on_commit=False) as db:
        db.add(user)
        db.commit()
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{database}", poolclass=NullPool)
    monkeypatch.setattr(
        timer_router,
        "async_session_factory",
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
    )
    monkeypatch.setattr(settings, "TIMER_TICK_SECONDS", 0.05)
    app.state.redis = fake_redis
    return user


def test_stream_rejects_bad_token(stream_user):
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/timer/ws?token=not-a-jwt"):
            pass
    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/timer/ws"):
            pass


def test_stream_pushes_and_dispatches_actions(stream_user, fake_redis):
    client = TestClient(app)
    with client.websocket_connect(f"/timer/ws?token={_access_token(stream_user.id)}") as ws:
        first = _receive(ws, "timer")
        assert first["data"]["running"] is False
        assert first["data"]["remaining_seconds"] == 25 * 60

        ws.send_json({"action": "ping"})
        _receive(ws, "pong")

        ws.send_json({"action": "start"})
        _receive(ws, "timer", running=True)
        # the runner keeps pushing while the client is idle
        _receive(ws, "timer", running=True)

        ws.send_json({"action": "dance"})
        assert _receive(ws, "error")["detail"] == "Unknown action: dance"

        ws.send_text("not json")
        assert _receive(ws, "error")["detail"] == "Messages must be JSON"

        ws.send_json({"action": "pause"})
        _receive(ws, "timer", running=False)

    stored = timer_service.StoredTimer.model_validate_json(fake_redis._store[f"timer:{stream_user.id}"])
    assert stored.state.running is False
    assert stored.state.started_at is not None
    assert not fake_redis._locks[f"timer-lock:{stream_user.id}"].locked()
