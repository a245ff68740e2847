import uuid

import pytest


@pytest.mark.asyncio
async def test_create_task(client):
    response = await client.post("/tasks", json={"title": "Read chapter 3", "priority": 2})
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Read chapter 3"
    assert data["status"] == "TODO"
    assert data["completed_at"] is None


@pytest.mark.asyncio
async def test_create_task_invalid_status(client):
    response = await client.post("/tasks", json={"title": "x", "status": "DONE"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_tasks_filter_by_status(client):
    await client.post("/tasks", json={"title": "A"})
    await client.post("/tasks", json={"title": "B", "status": "IN_PROGRESS"})

    response = await client.get("/tasks?status=IN_PROGRESS")
    assert response.status_code == 200
    assert [t["title"] for t in response.json()] == ["B"]

    response = await client.get("/tasks")
    assert [t["title"] for t in response.json()] == ["A", "B"]


@pytest.mark.asyncio
async def test_completing_task_stamps_and_counts(client):
    created = await client.post("/tasks", json={"title": "Flashcards"})
    task_id = created.json()["id"]

    response = await client.patch(f"/tasks/{task_id}", json={"status": "COMPLETED"})
    assert response.status_code == 200
    assert response.json()["completed_at"] is not None

    stats = (await client.get("/stats?period=today")).json()
    assert stats["today"]["tasks_completed"] == 1
    assert stats["today"]["focus_score"] == 100

    # completing again does not count twice
    await client.patch(f"/tasks/{task_id}", json={"status": "COMPLETED"})
    stats = (await client.get("/stats?period=today")).json()
    assert stats["today"]["tasks_completed"] == 1


@pytest.mark.asyncio
async def test_reopening_task_clears_completed_at(client):
    created = await client.post("/tasks", json={"title": "Essay", "status": "COMPLETED"})
    assert created.json()["completed_at"] is not None

    response = await client.patch(f"/tasks/{created.json()['id']}", json={"status": "TODO"})
    assert response.json()["completed_at"] is None


@pytest.mark.asyncio
async def test_update_missing_task(client):
    response = await client.patch(f"/tasks/{uuid.uuid4()}", json={"title": "nope"})
    assert response.status_code == 404
