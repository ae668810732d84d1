from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.keys import project_key
from app.core.auth import Actor, require_actor
from app.core.errors import MutationResult
from app.models import Subtask, Task
from app.schemas import SubtaskRead
from app.services.activity_service import log_activity
from app.services.effects import SideEffects
from app.services.task_service import next_order


class SubtaskService:
    @staticmethod
    async def create_subtask(task_id: str, title: str, actor: Actor | None, db: AsyncSession, effects: SideEffects):
        actor = require_actor(actor)
        title = (title or "").strip()
        if not title:
            return MutationResult.invalid("Subtask title is required")

        task = await db.get(Task, task_id)
        if not task:
            return MutationResult.not_found("Task not found")

        subtask = Subtask(
            title=title,
            task_id=task_id,
            order=await next_order(db, Subtask.order, Subtask.task_id, task_id),
        )
        db.add(subtask)
        await db.commit()
        await db.refresh(subtask)

        effects.record(log_activity, task_id, actor.id, "subtask_added", {"subtaskTitle": title})
        effects.invalidate(project_key(task.project_id))
        return MutationResult.success(SubtaskRead.model_validate(subtask))

    @staticmethod
    async def toggle_subtask(subtask_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects):
        actor = require_actor(actor)
        subtask = await db.get(Subtask, subtask_id)
        if not subtask:
            return MutationResult.not_found("Subtask not found")
        task = await db.get(Task, subtask.task_id)

        subtask.completed = not subtask.completed
        db.add(subtask)
        await db.commit()
        await db.refresh(subtask)

        effects.record(
            log_activity,
            subtask.task_id,
            actor.id,
            "subtask_completed" if subtask.completed else "subtask_uncompleted",
            {"subtaskTitle": subtask.title},
        )
        if task:
            effects.invalidate(project_key(task.project_id))
        return MutationResult.success(SubtaskRead.model_validate(subtask))
