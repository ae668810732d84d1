from sqlalchemy import delete, func
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.decorators import async_cached
from app.cache.keys import projects_list_key, teams_list_key
from app.core.auth import Actor, require_actor
from app.core.config import get_settings
from app.core.errors import MutationResult
from app.models import Project, Team, TeamMember, User
from app.schemas import TeamRead, UserRead
from app.services.effects import SideEffects


class TeamService:
    @staticmethod
    async def create_team(name: str, actor: Actor | None, db: AsyncSession, effects: SideEffects):
        actor = require_actor(actor)
        name = (name or "").strip()
        if not name:
            return MutationResult.invalid("Team name is required")

        team = Team(name=name)
        db.add(team)
        db.add(TeamMember(user_id=actor.id, team_id=team.id, role="owner"))
        await db.commit()

        effects.invalidate(teams_list_key(actor.id), projects_list_key(actor.id))
        return MutationResult.success(TeamRead(id=team.id, name=team.name))

    @staticmethod
    async def list_teams(actor: Actor | None, db: AsyncSession, *, effects: SideEffects | None = None):
        actor = require_actor(actor)
        return await _team_list(actor.id, db, effects=effects)

    @staticmethod
    async def add_member(team_id: str, user_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects):
        actor = require_actor(actor)
        if not await db.get(Team, team_id):
            return MutationResult.not_found(f"Team with id {team_id} not found")
        if not await db.get(User, user_id):
            return MutationResult.not_found("User not found")

        existing = await db.exec(
            select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        )
        if existing.first():
            return MutationResult.invalid("User already in team")

        db.add(TeamMember(user_id=user_id, team_id=team_id, role="member"))
        await db.commit()

        effects.invalidate(
            teams_list_key(user_id),
            projects_list_key(user_id),
            teams_list_key(actor.id),
        )
        return MutationResult.success()

    @staticmethod
    async def remove_member(team_id: str, user_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects):
        actor = require_actor(actor)
        result = await db.exec(
            delete(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        )
        if not result.rowcount:
            return MutationResult.not_found("Team member not found")
        await db.commit()

        effects.invalidate(
            teams_list_key(user_id),
            projects_list_key(user_id),
            teams_list_key(actor.id),
        )
        return MutationResult.success()


@async_cached(lambda user_id, *_, **__: teams_list_key(user_id), ttl=lambda: get_settings().list_cache_ttl)
async def _team_list(user_id: str, db: AsyncSession, *, effects: SideEffects | None = None):
    team_ids = select(TeamMember.team_id).where(TeamMember.user_id == user_id)
    teams = (await db.exec(select(Team).where(col(Team.id).in_(team_ids)).order_by(Team.created_at))).all()

    rows = (
        await db.exec(
            select(TeamMember.team_id, User)
            .join(User, col(User.id) == col(TeamMember.user_id))
            .where(col(TeamMember.team_id).in_([t.id for t in teams]))
        )
    ).all()
    counts = dict(
        (
            await db.exec(
                select(Project.team_id, func.count(col(Project.id)))
                .where(col(Project.team_id).in_([t.id for t in teams]))
                .group_by(Project.team_id)
            )
        ).all()
    )

    members: dict[str, list[UserRead]] = {}
    for team_id, user in rows:
        members.setdefault(team_id, []).append(UserRead.model_validate(user, from_attributes=True))

    return [
        TeamRead(
            id=team.id,
            name=team.name,
            members=members.get(team.id, []),
            project_count=counts.get(team.id, 0),
        )
        for team in teams
    ]
