"""End-to-end integration test covering a full study day."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studyflow.database import get_db
from studyflow.dependencies import get_current_user
from studyflow.main import app
from studyflow.models import Base
from studyflow.models.plan import StudyPlan
from studyflow.models.user import User
from studyflow.services.timer_service import StoredTimer


@pytest.mark.asyncio
async def test_full_workflow(fake_redis):
    """Plan + task -> timer intervals -> manual session -> analytics, stats,
    streak -> rebuild caches and compare."""

    # Setup
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    test_user = User(
        id=uuid.uuid4(),
        email="integration@test.com",
        display_name="Integration Tester",
        timezone="UTC",
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    plan = StudyPlan(id=uuid.uuid4(), user_id=test_user.id, title="Thesis")
    async with session_factory() as session:
        session.add_all([test_user, plan])
        await session.commit()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_current_user():
        return test_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    redis = fake_redis
    app.state.redis = redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        # 1. Create a task under the plan
        task_resp = await client.post("/tasks", json={
            "title": "Draft literature review",
            "plan_id": str(plan.id),
            "priority": 2,
        })
        assert task_resp.status_code == 201
        task_id = task_resp.json()["id"]

        # 2. Record a manual focus session from earlier on
        started = datetime.now(timezone.utc) - timedelta(hours=2)
        manual_resp = await client.post("/sessions", json={
            "started_at": started.isoformat(),
            "ended_at": (started + timedelta(minutes=45)).isoformat(),
            "completed": True,
        })
        assert manual_resp.status_code == 201

        # 3. Start the timer on that task
        start_resp = await client.post("/timer/start", json={
            "plan_id": str(plan.id),
            "task_id": task_id,
        })
        assert start_resp.status_code == 200
        assert start_resp.json()["running"] is True

        # 4. Let the focus interval run out (rewind the stored timer)
        key = f"timer:{test_user.id}"
        stored = StoredTimer.model_validate_json(await redis.get(key))
        stored.state = stored.state.model_copy(update={
            "started_at": stored.state.started_at - timedelta(minutes=25),
            "last_tick_at": stored.state.last_tick_at - timedelta(minutes=25),
        })
        await redis.set(key, stored.model_dump_json())

        timer_resp = await client.get("/timer")
        timer = timer_resp.json()
        assert timer["mode"] == "SHORT_BREAK"
        assert len(timer["recorded"]) == 1
        assert timer["recorded"][0]["plan_id"] == str(plan.id)
        assert timer["recorded"][0]["task_id"] == task_id

        # 5. Complete the task
        done_resp = await client.patch(f"/tasks/{task_id}", json={"status": "COMPLETED"})
        assert done_resp.status_code == 200

        # 6. Analytics
        analytics = (await client.get("/analytics?period=week")).json()
        assert analytics["overview"]["total_sessions"] == 2
        assert analytics["overview"]["total_minutes"] == 70
        assert analytics["overview"]["task_completion_rate"] == 100
        assert analytics["streak"]["current_streak"] >= 1
        streak_before = analytics["streak"]

        filtered = (await client.get(f"/analytics?period=week&plan_id={plan.id}")).json()
        assert filtered["overview"]["total_minutes"] == 25

        # 7. Stats snapshot for today
        stats = (await client.get("/stats?period=today")).json()
        cached_today = stats["today"]

        # 8. Rebuilding the caches reproduces them
        rebuilt = (await client.post("/daily-stats/rebuild")).json()
        assert rebuilt["total_minutes"] == cached_today["total_minutes"]
        assert rebuilt["sessions_completed"] == cached_today["sessions_completed"]
        assert rebuilt["tasks_completed"] == cached_today["tasks_completed"]

        streak = (await client.post("/streak/rebuild")).json()
        assert streak["current_streak"] == streak_before["current_streak"]
        assert streak["longest_streak"] == streak_before["longest_streak"]
        assert streak["total_study_days"] == streak_before["total_study_days"]

    app.dependency_overrides.clear()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
