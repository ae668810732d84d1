from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.auth import Actor, get_actor
from app.database import get_db
from app.routers.common import unwrap
from app.schemas import TeamCreate, TeamMemberAdd, TeamRead
from app.services.effects import SideEffects, get_side_effects
from app.services.team_service import TeamService

router = APIRouter(prefix="/teams", tags=["teams"])


@router.post("/", response_model=TeamRead, status_code=status.HTTP_201_CREATED)
async def create_team(
    data: TeamCreate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return unwrap(await TeamService.create_team(data.name, actor, db, effects))


@router.get("/", response_model=list[TeamRead])
async def list_teams(
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return await TeamService.list_teams(actor, db, effects=effects)


@router.post("/{team_id}/members", status_code=status.HTTP_204_NO_CONTENT)
async def add_member(
    team_id: str,
    data: TeamMemberAdd,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await TeamService.add_member(team_id, data.user_id, actor, db, effects))


@router.delete("/{team_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    team_id: str,
    user_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await TeamService.remove_member(team_id, user_id, actor, db, effects))
