from datetime import date, datetime, timezone

import pytest

from studyflow.services import daily_stat_service

DAY = date(2026, 3, 4)


@pytest.mark.asyncio
async def test_rebuild_day_from_raw_records(db_session, test_user, make_session):
    await make_session(datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc), 25)
    await make_session(datetime(2026, 3, 4, 11, 0, tzinfo=timezone.utc), 40)
    await make_session(datetime(2026, 3, 4, 13, 0, tzinfo=timezone.utc), 8, completed=False)
    await make_session(datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc), 25)

    stat = await daily_stat_service.rebuild_day(db_session, test_user.id, DAY, timezone.utc)
    assert stat.total_minutes == 65
    assert stat.sessions_completed == 2
    assert stat.sessions_interrupted == 1
    assert stat.tasks_completed == 0
    assert stat.focus_score == daily_stat_service.day_focus_score(2, 1, 0)


@pytest.mark.asyncio
async def test_incremental_updates_match_rebuild(db_session, test_user, make_session):
    first = await make_session(datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc), 25)
    second = await make_session(datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc), 12, completed=False)
    await daily_stat_service.apply_session(db_session, first, timezone.utc)
    incremental = await daily_stat_service.apply_session(db_session, second, timezone.utc)
    snapshot = (incremental.total_minutes, incremental.sessions_completed, incremental.sessions_interrupted)

    rebuilt = await daily_stat_service.rebuild_day(db_session, test_user.id, DAY, timezone.utc)
    assert (rebuilt.total_minutes, rebuilt.sessions_completed, rebuilt.sessions_interrupted) == snapshot


@pytest.mark.asyncio
async def test_breaks_do_not_touch_daily_stats(db_session, test_user, make_session):
    pause = await make_session(datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc), 5, session_type="SHORT_BREAK")
    assert await daily_stat_service.apply_session(db_session, pause, timezone.utc) is None
    assert await daily_stat_service.get_daily_stat(db_session, test_user.id, DAY) is None


@pytest.mark.asyncio
async def test_rebuild_endpoint(client):
    response = await client.post("/daily-stats/rebuild?date=2026-03-04")
    assert response.status_code == 200
    data = response.json()
    assert data["date"] == "2026-03-04"
    assert data["total_minutes"] == 0
    assert data["focus_score"] == 0
