from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.keys import project_key
from app.core.auth import Actor, require_actor
from app.core.errors import MutationResult
from app.models import Comment, Task
from app.schemas import CommentRead
from app.services.activity_service import log_activity
from app.services.effects import SideEffects
from app.services.task_service import project_link


def comment_recipients(task: Task, actor_id: str) -> list[str]:
    """Creator and primary assignee, without the commenter or duplicates."""
    recipients = []
    for user_id in (task.creator_id, task.assignee_id):
        if user_id and user_id != actor_id and user_id not in recipients:
            recipients.append(user_id)
    return recipients


class CommentService:
    @staticmethod
    async def add_comment(
        task_id: str, content: str, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[CommentRead]:
        actor = require_actor(actor)
        content = (content or "").strip()
        if not content:
            return MutationResult.invalid("Comment cannot be empty")

        task = await db.get(Task, task_id)
        if not task:
            return MutationResult.not_found("Task not found")

        comment = Comment(content=content, task_id=task_id, author_id=actor.id)
        db.add(comment)
        await db.commit()
        await db.refresh(comment)

        effects.record(log_activity, task_id, actor.id, "commented", {"content": content[:100]})
        for user_id in comment_recipients(task, actor.id):
            effects.notify(
                user_id,
                "commented",
                f'{actor.name} commented on "{task.title}"',
                project_link(task.project_id),
                actor_id=actor.id,
            )
        effects.invalidate(project_key(task.project_id))
        return MutationResult.success(CommentRead.model_validate(comment))

    @staticmethod
    async def delete_comment(
        comment_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[None]:
        require_actor(actor)
        comment = await db.get(Comment, comment_id)
        if not comment:
            return MutationResult.not_found("Comment not found")
        task = await db.get(Task, comment.task_id)

        await db.delete(comment)
        await db.commit()

        if task:
            effects.invalidate(project_key(task.project_id))
        return MutationResult.success()

    @staticmethod
    async def list_comments(task_id: str, db: AsyncSession) -> list[CommentRead]:
        result = await db.exec(
            select(Comment).where(Comment.task_id == task_id).order_by(Comment.created_at)
        )
        return [CommentRead.model_validate(comment) for comment in result.all()]
