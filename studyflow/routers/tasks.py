import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.database import get_db
from studyflow.dependencies import get_current_user
from studyflow.exceptions import NotFoundError
from studyflow.models.user import User
from studyflow.schemas.task import TaskCreate, TaskResponse, TaskUpdate
from studyflow.services import task_service

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    plan_id: uuid.UUID | None = Query(default=None),
    task_status: str | None = Query(
        default=None, alias="status", pattern="^(TODO|IN_PROGRESS|COMPLETED)$"
    ),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.get_tasks(db, user.id, plan_id=plan_id, status=task_status)


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    data: TaskCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.create_task(db, user, data.model_dump())


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: uuid.UUID,
    data: TaskUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    task = await task_service.update_task(
        db, user, task_id, data.model_dump(exclude_unset=True)
    )
    if task is None:
        raise NotFoundError("Task not found")
    return task
