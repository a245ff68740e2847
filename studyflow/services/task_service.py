import uuid

from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.models.task import Task
from studyflow.models.user import User
from studyflow.services import activity_service
from studyflow.services.clock import resolve_timezone, utcnow

_STATUS_ORDER = case(
    (Task.status == "TODO", 0),
    (Task.status == "IN_PROGRESS", 1),
    else_=2,
)


async def get_tasks(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan_id: uuid.UUID | None = None,
    status: str | None = None,
) -> list[Task]:
    query = select(Task).where(Task.user_id == user_id)
    if plan_id is not None:
        query = query.where(Task.plan_id == plan_id)
    if status is not None:
        query = query.where(Task.status == status)
    query = query.order_by(_STATUS_ORDER, Task.priority.desc(), Task.created_at.asc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_task(db: AsyncSession, user: User, data: dict) -> Task:
    task = Task(user_id=user.id, **data)
    if task.status == "COMPLETED":
        task.completed_at = utcnow()
    db.add(task)
    await db.flush()
    await db.refresh(task)
    if task.completed_at is not None:
        await activity_service.on_task_completed(db, task, resolve_timezone(user.timezone))
    return task


async def update_task(
    db: AsyncSession, user: User, task_id: uuid.UUID, data: dict
) -> Task | None:
    """Partial update. Moving into COMPLETED stamps ``completed_at`` and feeds the daily stats."""
    result = await db.execute(
        select(Task).where(Task.id == task_id, Task.user_id == user.id)
    )
    task = result.scalar_one_or_none()
    if task is None:
        return None

    was_completed = task.status == "COMPLETED"
    for key, value in data.items():
        if value is not None:
            setattr(task, key, value)

    newly_completed = task.status == "COMPLETED" and not was_completed
    if newly_completed:
        task.completed_at = utcnow()
    elif task.status != "COMPLETED":
        task.completed_at = None
    task.updated_at = utcnow()

    await db.flush()
    await db.refresh(task)
    if newly_completed:
        await activity_service.on_task_completed(db, task, resolve_timezone(user.timezone))
    return task
