from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.auth import Actor, get_actor
from app.database import get_db
from app.routers.common import unwrap
from app.schemas import NotificationRead
from app.services.effects import SideEffects, get_side_effects
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationRead])
async def list_notifications(actor: Actor | None = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return await NotificationService.list_notifications(actor, db)


@router.get("/unread-count")
async def unread_count(
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return {"count": await NotificationService.unread_count(actor, db, effects=effects)}


@router.post("/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_all_read(
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await NotificationService.mark_all_read(actor, db, effects))


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_read(
    notification_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await NotificationService.mark_read(notification_id, actor, db, effects))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await NotificationService.delete_notification(notification_id, actor, db, effects))
