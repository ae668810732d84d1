import logging

from sqlalchemy import delete, func
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.decorators import async_cached
from app.cache.keys import project_key, projects_list_key
from app.core.auth import Actor, require_actor
from app.core.config import get_settings
from app.core.errors import MutationResult
from app.models import Comment, Project, ProjectInvite, Section, Tag, Task, TaskAssignee, TaskTag, TeamMember, User
from app.schemas import (
    ProjectCreate,
    ProjectDetail,
    ProjectSummary,
    ProjectUpdate,
    SectionRead,
    TagRead,
    TaskResponse,
    UserRead,
)
from app.services.effects import SideEffects
from app.services.task_service import delete_task_children, next_order, remove_calendar_events

logger = logging.getLogger(__name__)

DEFAULT_SECTIONS = ("To Do", "In Progress", "Done")

# Stored with NOT NULL columns; a patch may not clear them.
REQUIRED_FIELDS = ("name", "color")


async def team_member_ids(db: AsyncSession, team_id: str) -> list[str]:
    result = await db.exec(select(TeamMember.user_id).where(TeamMember.team_id == team_id))
    return list(result.all())


class ProjectService:
    @staticmethod
    async def create_project(
        data: ProjectCreate, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[ProjectSummary]:
        actor = require_actor(actor)
        name = (data.name or "").strip()
        if not name or not data.team_id:
            return MutationResult.invalid("Name and team are required")

        project = Project(
            name=name,
            description=data.description,
            color=data.color or "#6366f1",
            team_id=data.team_id,
            creator_id=actor.id,
        )
        db.add(project)
        for order, section_name in enumerate(DEFAULT_SECTIONS):
            db.add(Section(name=section_name, order=order, project_id=project.id))
        await db.commit()
        await db.refresh(project)

        members = await team_member_ids(db, project.team_id)
        effects.invalidate(*(projects_list_key(user_id) for user_id in members))
        return MutationResult.success(
            ProjectSummary.model_validate(project, from_attributes=True)
        )

    @staticmethod
    async def update_project(
        project_id: str, data: ProjectUpdate, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[ProjectSummary]:
        require_actor(actor)
        update_data = data.model_dump(exclude_unset=True)
        cleared = [field for field in REQUIRED_FIELDS if field in update_data and update_data[field] is None]
        if cleared:
            return MutationResult.invalid(f"{', '.join(cleared)} cannot be cleared")
        if "name" in update_data:
            update_data["name"] = update_data["name"].strip()
            if not update_data["name"]:
                return MutationResult.invalid("Name is required")

        project = await db.get(Project, project_id)
        if not project:
            return MutationResult.not_found(f"Project with id {project_id} not found")

        project.sqlmodel_update(update_data)
        db.add(project)
        await db.commit()
        await db.refresh(project)

        members = await team_member_ids(db, project.team_id)
        effects.invalidate(project_key(project.id), *(projects_list_key(u) for u in members))
        return MutationResult.success(ProjectSummary.model_validate(project, from_attributes=True))

    @staticmethod
    async def delete_project(
        project_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[None]:
        require_actor(actor)
        project = await db.get(Project, project_id)
        if not project:
            return MutationResult.not_found(f"Project with id {project_id} not found")

        members = await team_member_ids(db, project.team_id)
        await remove_calendar_events(db, await _tasks_with_events(db, Task.project_id == project_id), effects)

        await delete_task_children(db, select(Task.id).where(Task.project_id == project_id))
        await db.exec(delete(Task).where(Task.project_id == project_id))
        await db.exec(delete(Section).where(Section.project_id == project_id))
        await db.exec(delete(ProjectInvite).where(ProjectInvite.project_id == project_id))
        await db.delete(project)
        await db.commit()
        logger.info("Project %s deleted", project_id)

        effects.invalidate(project_key(project_id), *(projects_list_key(u) for u in members))
        return MutationResult.success()

    @staticmethod
    async def get_project(project_id: str, db: AsyncSession, *, effects: SideEffects | None = None):
        return await _project_detail(project_id, db, effects=effects)

    @staticmethod
    async def list_projects(actor: Actor | None, db: AsyncSession, *, effects: SideEffects | None = None):
        actor = require_actor(actor)
        return await _project_list(actor.id, db, effects=effects)

    @staticmethod
    async def create_section(
        project_id: str, name: str, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[SectionRead]:
        require_actor(actor)
        name = (name or "").strip()
        if not name:
            return MutationResult.invalid("Section name is required")
        if not await db.get(Project, project_id):
            return MutationResult.not_found(f"Project with id {project_id} not found")

        section = Section(
            name=name,
            project_id=project_id,
            order=await next_order(db, Section.order, Section.project_id, project_id),
        )
        db.add(section)
        await db.commit()
        await db.refresh(section)

        effects.invalidate(project_key(project_id))
        return MutationResult.success(SectionRead(id=section.id, name=section.name, order=section.order))

    @staticmethod
    async def delete_section(
        section_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[None]:
        require_actor(actor)
        section = await db.get(Section, section_id)
        if not section:
            return MutationResult.not_found(f"Section with id {section_id} not found")

        project_id = section.project_id
        await remove_calendar_events(db, await _tasks_with_events(db, Task.section_id == section_id), effects)

        await delete_task_children(db, select(Task.id).where(Task.section_id == section_id))
        await db.exec(delete(Task).where(Task.section_id == section_id))
        await db.delete(section)
        await db.commit()
        logger.info("Section %s deleted from project %s", section_id, project_id)

        effects.invalidate(project_key(project_id))
        return MutationResult.success()


async def _tasks_with_events(db: AsyncSession, condition) -> list[Task]:
    result = await db.exec(select(Task).where(condition, col(Task.calendar_event_id).is_not(None)))
    return list(result.all())


@async_cached(lambda project_id, *_, **__: project_key(project_id), ttl=lambda: get_settings().project_cache_ttl)
async def _project_detail(project_id: str, db: AsyncSession, *, effects: SideEffects | None = None):
    project = await db.get(Project, project_id)
    if not project:
        return None

    sections = (
        await db.exec(select(Section).where(Section.project_id == project_id).order_by(Section.order))
    ).all()
    tasks = (
        await db.exec(
            select(Task).where(Task.project_id == project_id).order_by(Task.order, Task.created_at)
        )
    ).all()
    task_ids = [t.id for t in tasks]
    links = (
        await db.exec(select(TaskAssignee).where(col(TaskAssignee.task_id).in_(task_ids)))
    ).all()
    tag_rows = (
        await db.exec(
            select(TaskTag.task_id, Tag)
            .join(Tag, col(Tag.id) == col(TaskTag.tag_id))
            .where(col(TaskTag.task_id).in_(task_ids))
            .order_by(Tag.name)
        )
    ).all()
    comment_counts = dict(
        (
            await db.exec(
                select(Comment.task_id, func.count())
                .where(col(Comment.task_id).in_(task_ids))
                .group_by(Comment.task_id)
            )
        ).all()
    )
    members = (
        await db.exec(
            select(User)
            .join(TeamMember, col(TeamMember.user_id) == col(User.id))
            .where(TeamMember.team_id == project.team_id)
        )
    ).all()

    extra: dict[str, list[str]] = {}
    for link in links:
        extra.setdefault(link.task_id, []).append(link.user_id)
    tags: dict[str, list[TagRead]] = {}
    for task_id, tag in tag_rows:
        tags.setdefault(task_id, []).append(TagRead.model_validate(tag))

    by_section: dict[str, list[TaskResponse]] = {s.id: [] for s in sections}
    for task in tasks:
        if task.section_id in by_section:
            by_section[task.section_id].append(
                TaskResponse.model_validate(
                    task,
                    update={
                        "assignee_ids": extra.get(task.id, []),
                        "tags": tags.get(task.id, []),
                        "comment_count": comment_counts.get(task.id, 0),
                    },
                )
            )

    return ProjectDetail(
        id=project.id,
        name=project.name,
        description=project.description,
        color=project.color,
        team_id=project.team_id,
        sections=[
            SectionRead(id=s.id, name=s.name, order=s.order, tasks=by_section[s.id]) for s in sections
        ],
        members=[UserRead.model_validate(m, from_attributes=True) for m in members],
    )


@async_cached(lambda user_id, *_, **__: projects_list_key(user_id), ttl=lambda: get_settings().list_cache_ttl)
async def _project_list(user_id: str, db: AsyncSession, *, effects: SideEffects | None = None):
    team_ids = select(TeamMember.team_id).where(TeamMember.user_id == user_id)
    result = await db.exec(
        select(Project, func.count(col(Task.id)))
        .outerjoin(Task, col(Task.project_id) == col(Project.id))
        .where(col(Project.team_id).in_(team_ids))
        .group_by(col(Project.id))
        .order_by(col(Project.created_at).desc())
    )
    return [
        ProjectSummary(
            id=project.id,
            name=project.name,
            description=project.description,
            color=project.color,
            team_id=project.team_id,
            task_count=count,
            created_at=project.created_at,
        )
        for project, count in result.all()
    ]
