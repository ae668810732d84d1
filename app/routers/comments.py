from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.auth import Actor, get_actor
from app.database import get_db
from app.routers.common import unwrap
from app.schemas import CommentCreate, CommentRead
from app.services.comment_service import CommentService
from app.services.effects import SideEffects, get_side_effects

router = APIRouter(prefix="/comments", tags=["comments"])


@router.post("/", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def add_comment(
    data: CommentCreate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return unwrap(await CommentService.add_comment(data.task_id, data.content, actor, db, effects))


@router.get("/", response_model=list[CommentRead])
async def list_comments(task_id: str = Query(...), db: AsyncSession = Depends(get_db)):
    return await CommentService.list_comments(task_id, db)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await CommentService.delete_comment(comment_id, actor, db, effects))
