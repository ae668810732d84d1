from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.auth import Actor, get_actor
from app.database import get_db
from app.routers.common import unwrap
from app.schemas import InviteLink, InviteRead
from app.services.effects import SideEffects, get_side_effects
from app.services.invite_service import InviteService

router = APIRouter(prefix="/invites", tags=["invites"])


class InviteCreate(SQLModel):
    project_id: str
    email: str | None = None


@router.post("/", response_model=InviteLink, status_code=status.HTTP_201_CREATED)
async def create_invite(
    data: InviteCreate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await InviteService.create_invite_link(data.project_id, actor, db, invited_email=data.email))


@router.get("/{token}", response_model=InviteRead)
async def get_invite(token: str, db: AsyncSession = Depends(get_db)):
    invite = await InviteService.get_invite(token, db)
    if not invite:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid invite link")
    return invite


@router.post("/{token}/accept")
async def accept_invite(
    token: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    result = await InviteService.accept_invite(token, actor, db, effects)
    project_id = unwrap(result)
    return {"project_id": project_id, "already_member": bool((result.meta or {}).get("already_member"))}
