import logging

from sqlalchemy import delete, func
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.keys import project_key
from app.core.auth import Actor, require_actor
from app.core.errors import MutationResult
from app.models import Tag, Task, TaskTag
from app.schemas import TagCreate, TagRead, TagSummary
from app.services.effects import SideEffects

logger = logging.getLogger(__name__)

DEFAULT_TAG_COLOR = "#6b7280"


class TagService:
    """Workspace-wide tags. Every change to a task's tags invalidates its project view."""

    @staticmethod
    async def create_tag(data: TagCreate, actor: Actor | None, db: AsyncSession) -> MutationResult[TagRead]:
        require_actor(actor)
        name = (data.name or "").strip()
        if not name:
            return MutationResult.invalid("Tag name is required")

        existing = await db.exec(select(Tag).where(Tag.name == name))
        if existing.first():
            return MutationResult.invalid("Tag already exists")

        tag = Tag(name=name, color=data.color or DEFAULT_TAG_COLOR)
        db.add(tag)
        await db.commit()
        await db.refresh(tag)
        return MutationResult.success(TagRead.model_validate(tag))

    @staticmethod
    async def list_tags(db: AsyncSession) -> list[TagSummary]:
        result = await db.exec(
            select(Tag, func.count(col(TaskTag.id)))
            .outerjoin(TaskTag, col(TaskTag.tag_id) == col(Tag.id))
            .group_by(col(Tag.id))
            .order_by(Tag.name)
        )
        return [
            TagSummary(id=tag.id, name=tag.name, color=tag.color, task_count=count)
            for tag, count in result.all()
        ]

    @staticmethod
    async def add_tag_to_task(
        task_id: str, tag_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[TagRead]:
        require_actor(actor)
        task = await db.get(Task, task_id)
        if not task:
            return MutationResult.not_found("Task not found")
        tag = await db.get(Tag, tag_id)
        if not tag:
            return MutationResult.not_found("Tag not found")

        existing = await db.exec(
            select(TaskTag).where(TaskTag.task_id == task_id, TaskTag.tag_id == tag_id)
        )
        if existing.first():
            return MutationResult.invalid("Tag already added to this task")

        db.add(TaskTag(task_id=task_id, tag_id=tag_id))
        await db.commit()

        effects.invalidate(project_key(task.project_id))
        return MutationResult.success(TagRead.model_validate(tag))

    @staticmethod
    async def remove_tag_from_task(
        task_id: str, tag_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[None]:
        require_actor(actor)
        link = (
            await db.exec(select(TaskTag).where(TaskTag.task_id == task_id, TaskTag.tag_id == tag_id))
        ).first()
        if not link:
            return MutationResult.not_found("Tag is not on this task")
        task = await db.get(Task, task_id)

        await db.delete(link)
        await db.commit()

        if task:
            effects.invalidate(project_key(task.project_id))
        return MutationResult.success()

    @staticmethod
    async def delete_tag(tag_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects) -> MutationResult[None]:
        require_actor(actor)
        tag = await db.get(Tag, tag_id)
        if not tag:
            return MutationResult.not_found("Tag not found")

        result = await db.exec(
            select(Task.project_id)
            .join(TaskTag, col(TaskTag.task_id) == col(Task.id))
            .where(TaskTag.tag_id == tag_id)
            .distinct()
        )
        project_ids = list(result.all())

        await db.exec(delete(TaskTag).where(TaskTag.tag_id == tag_id))
        await db.delete(tag)
        await db.commit()
        logger.info("Tag %s deleted from %s project(s)", tag_id, len(project_ids))

        effects.invalidate(*(project_key(project_id) for project_id in sorted(project_ids)))
        return MutationResult.success()
