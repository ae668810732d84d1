from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.auth import Actor, get_actor
from app.database import get_db
from app.models import Priority
from app.routers.common import unwrap
from app.schemas import TaskCreate, TaskDetail, TaskFilters, TaskMove, TaskResponse, TaskUpdate
from app.services.effects import SideEffects, get_side_effects
from app.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    """Create a new task at the end of its section"""
    return unwrap(await TaskService.create_task(task_data, actor, db, effects))


@router.get("/", response_model=list[TaskResponse])
async def get_tasks(
    project_id: str,
    assignee_id: str | None = None,
    priority: Priority | None = None,
    completed: bool | None = None,
    search: str | None = Query(default=None, max_length=200),
    db: AsyncSession = Depends(get_db),
):
    filters = TaskFilters(assignee_id=assignee_id, priority=priority, completed=completed, search=search)
    return await TaskService.list_tasks(project_id, filters, db)


@router.get("/{task_id}", response_model=TaskDetail)
async def get_task(task_id: str, db: AsyncSession = Depends(get_db)):
    """Get a specific task by ID"""

    task = await TaskService.get_task(task_id, db)

    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task with id {task_id} not found",
        )
    return task


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    task_data: TaskUpdate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return unwrap(await TaskService.update_task(task_id, task_data, actor, db, effects))


@router.post("/{task_id}/move", response_model=TaskResponse)
async def move_task(
    task_id: str,
    move: TaskMove,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    """Move a task to a section at the given order"""
    return unwrap(await TaskService.move_task(task_id, move.section_id, move.order, actor, db, effects))


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    """Delete a task"""
    unwrap(await TaskService.delete_task(task_id, actor, db, effects))


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def mark_task_complete(
    task_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    """Mark a task as completed"""
    return unwrap(await TaskService.update_task(task_id, TaskUpdate(completed=True), actor, db, effects))
