from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.auth import Actor, get_actor
from app.database import get_db
from app.routers.common import unwrap
from app.schemas import TagCreate, TagRead, TagSummary, TaskTagAdd
from app.services.effects import SideEffects, get_side_effects
from app.services.tag_service import TagService

router = APIRouter(tags=["tags"])


@router.post("/tags/", response_model=TagRead, status_code=status.HTTP_201_CREATED)
async def create_tag(
    data: TagCreate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await TagService.create_tag(data, actor, db))


@router.get("/tags/", response_model=list[TagSummary])
async def list_tags(db: AsyncSession = Depends(get_db)):
    return await TagService.list_tags(db)


@router.delete("/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(
    tag_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await TagService.delete_tag(tag_id, actor, db, effects))


@router.post("/tasks/{task_id}/tags", response_model=TagRead, status_code=status.HTTP_201_CREATED)
async def add_tag_to_task(
    task_id: str,
    data: TaskTagAdd,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return unwrap(await TagService.add_tag_to_task(task_id, data.tag_id, actor, db, effects))


@router.delete("/tasks/{task_id}/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_tag_from_task(
    task_id: str,
    tag_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await TagService.remove_tag_from_task(task_id, tag_id, actor, db, effects))
