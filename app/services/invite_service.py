import logging
from datetime import datetime, timedelta, timezone

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.keys import project_key, projects_list_key, teams_list_key
from app.core.auth import Actor, require_actor
from app.core.config import get_settings
from app.core.errors import MutationResult
from app.models import InviteStatus, Project, ProjectInvite, TeamMember
from app.schemas import InviteLink, InviteRead
from app.services.effects import SideEffects
from app.services.task_service import project_link

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_expired(invite: ProjectInvite, now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return invite.status == InviteStatus.EXPIRED or _aware(invite.expires_at) < now


class InviteService:
    @staticmethod
    async def create_invite_link(
        project_id: str, actor: Actor | None, db: AsyncSession, invited_email: str | None = None
    ) -> MutationResult[InviteLink]:
        actor = require_actor(actor)
        project = await db.get(Project, project_id)
        if not project:
            return MutationResult.not_found("Project not found")

        settings = get_settings()
        invite = ProjectInvite(
            project_id=project.id,
            team_id=project.team_id,
            invited_by_id=actor.id,
            invited_email=invited_email.lower().strip() if invited_email else None,
            expires_at=datetime.now(timezone.utc) + timedelta(days=settings.invite_ttl_days),
        )
        db.add(invite)
        await db.commit()

        return MutationResult.success(
            InviteLink(token=invite.token, link=f"{settings.app_url}/invite/{invite.token}")
        )

    @staticmethod
    async def get_invite(token: str, db: AsyncSession) -> InviteRead | None:
        invite = (await db.exec(select(ProjectInvite).where(ProjectInvite.token == token))).first()
        if not invite:
            return None
        return InviteRead(
            token=invite.token,
            project_id=invite.project_id,
            team_id=invite.team_id,
            invited_by_id=invite.invited_by_id,
            status=InviteStatus(invite.status).value,
            expires_at=invite.expires_at,
            expired=is_expired(invite),
        )

    @staticmethod
    async def accept_invite(token: str, actor: Actor | None, db: AsyncSession, effects: SideEffects):
        """
        Join the invite's team.

        Touches the project detail and both sidebar lists of the new member,
        so all three keys are invalidated together.
        """
        actor = require_actor(actor)
        invite = (await db.exec(select(ProjectInvite).where(ProjectInvite.token == token))).first()
        if not invite:
            return MutationResult.not_found("Invalid invite link")

        if is_expired(invite):
            invite.status = InviteStatus.EXPIRED
            db.add(invite)
            await db.commit()
            return MutationResult.invalid("This invite has expired")

        existing = await db.exec(
            select(TeamMember).where(TeamMember.user_id == actor.id, TeamMember.team_id == invite.team_id)
        )
        if existing.first():
            return MutationResult.success(invite.project_id, already_member=True)

        db.add(TeamMember(user_id=actor.id, team_id=invite.team_id, role="member"))
        invite.status = InviteStatus.ACCEPTED
        db.add(invite)
        await db.commit()
        logger.info("User %s joined team %s via invite", actor.id, invite.team_id)

        project = await db.get(Project, invite.project_id)
        effects.notify(
            invite.invited_by_id,
            "invite_accepted",
            f'{actor.name} accepted your invite to "{project.name if project else "a project"}"',
            project_link(invite.project_id),
            actor_id=actor.id,
        )
        effects.invalidate(
            project_key(invite.project_id),
            teams_list_key(actor.id),
            projects_list_key(actor.id),
        )
        return MutationResult.success(invite.project_id)
