from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.auth import Actor, get_actor
from app.database import get_db
from app.routers.common import unwrap
from app.schemas import SubtaskCreate, SubtaskRead
from app.services.effects import SideEffects, get_side_effects
from app.services.subtask_service import SubtaskService

router = APIRouter(prefix="/subtasks", tags=["subtasks"])


@router.post("/", response_model=SubtaskRead, status_code=status.HTTP_201_CREATED)
async def create_subtask(
    data: SubtaskCreate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return unwrap(await SubtaskService.create_subtask(data.task_id, data.title, actor, db, effects))


@router.post("/{subtask_id}/toggle", response_model=SubtaskRead)
async def toggle_subtask(
    subtask_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return unwrap(await SubtaskService.toggle_subtask(subtask_id, actor, db, effects))
