import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.keys import project_key
from app.core.auth import Actor, require_actor
from app.core.errors import MutationResult
from app.models import ActivityLog, Comment, Priority, Section, Subtask, Tag, Task, TaskAssignee, TaskTag
from app.schemas import TagRead, TaskCreate, TaskDetail, TaskFilters, TaskResponse, TaskUpdate
from app.services.activity_service import log_activity, task_activities
from app.services.effects import SideEffects

logger = logging.getLogger(__name__)

# Changing any of these requires the calendar event to be rewritten.
CALENDAR_FIELDS = ("title", "description", "due_date", "start_date")

# Columns that are NOT NULL; a patch may change them but never clear them.
REQUIRED_FIELDS = ("title", "priority", "status", "completed")

# Rows keyed by task_id that go with the task.
TASK_CHILDREN = (TaskAssignee, Subtask, Comment, TaskTag, ActivityLog)


def project_link(project_id: str) -> str:
    return f"/dashboard/projects/{project_id}"


async def next_order(db: AsyncSession, column, parent_column, parent_id: str) -> int:
    """Max existing order under the parent + 1, or 0 when there is none."""
    result = await db.exec(select(func.max(column)).where(parent_column == parent_id))
    current = result.one()
    return 0 if current is None else current + 1


async def extra_assignee_ids(db: AsyncSession, task_id: str) -> list[str]:
    result = await db.exec(select(TaskAssignee.user_id).where(TaskAssignee.task_id == task_id))
    return list(result.all())


def same_value(current, incoming) -> bool:
    # SQLite hands datetimes back naive; treat those as UTC.
    if isinstance(current, datetime) and isinstance(incoming, datetime):
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        if incoming.tzinfo is None:
            incoming = incoming.replace(tzinfo=timezone.utc)
    return current == incoming


def all_assignees(task: Task, extra: list[str]) -> list[str]:
    ids = [task.assignee_id] if task.assignee_id else []
    return ids + [u for u in extra if u not in ids]


async def task_tags(db: AsyncSession, task_id: str) -> list[TagRead]:
    result = await db.exec(
        select(Tag)
        .join(TaskTag, col(TaskTag.tag_id) == col(Tag.id))
        .where(TaskTag.task_id == task_id)
        .order_by(Tag.name)
    )
    return [TagRead.model_validate(tag) for tag in result.all()]


async def comment_count(db: AsyncSession, task_id: str) -> int:
    result = await db.exec(select(func.count()).select_from(Comment).where(Comment.task_id == task_id))
    return int(result.one())


async def to_response(db: AsyncSession, task: Task) -> TaskResponse:
    return TaskResponse.model_validate(
        task,
        update={
            "assignee_ids": await extra_assignee_ids(db, task.id),
            "tags": await task_tags(db, task.id),
            "comment_count": await comment_count(db, task.id),
        },
    )


async def delete_task_children(db: AsyncSession, task_ids) -> None:
    """Delete rows referencing the tasks; ``task_ids`` is a list or an id subquery."""
    for model in TASK_CHILDREN:
        await db.exec(delete(model).where(col(model.task_id).in_(task_ids)))


async def remove_calendar_events(db: AsyncSession, tasks: list[Task], effects: SideEffects) -> None:
    """
    Delete the calendar event of every task that has one, for all assignees.

    Awaited before the rows go, since the event id lives on the task.
    Failures are logged and never block the delete.
    """
    for task in tasks:
        if not task.calendar_event_id:
            continue
        try:
            await effects.calendar.remove_task_from_calendars(
                db,
                task.id,
                task.calendar_event_id,
                all_assignees(task, await extra_assignee_ids(db, task.id)),
                clear_reference=False,
            )
        except Exception:
            logger.exception("Calendar cleanup failed for task %s", task.id)


class TaskService:
    @staticmethod
    async def create_task(
        task_data: TaskCreate, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[TaskResponse]:
        actor = require_actor(actor)

        title = (task_data.title or "").strip()
        if not title or not task_data.project_id or not task_data.section_id:
            return MutationResult.invalid("Title, project, and section are required")

        section = await db.get(Section, task_data.section_id)
        if not section or section.project_id != task_data.project_id:
            return MutationResult.not_found(f"Section with id {task_data.section_id} not found")

        task = Task(
            title=title,
            description=task_data.description or None,
            priority=task_data.priority,
            status=task_data.status,
            project_id=task_data.project_id,
            section_id=task_data.section_id,
            creator_id=actor.id,
            assignee_id=task_data.assignee_id or None,
            due_date=task_data.due_date,
            start_date=task_data.start_date,
            order=await next_order(db, Task.order, Task.section_id, task_data.section_id),
        )
        db.add(task)
        extra = [u for u in dict.fromkeys(task_data.assignee_ids) if u and u != task.assignee_id]
        for user_id in extra:
            db.add(TaskAssignee(task_id=task.id, user_id=user_id))
        await db.commit()
        await db.refresh(task)
        logger.info("Task %s created in section %s order=%s", task.id, task.section_id, task.order)

        assignees = all_assignees(task, extra)
        effects.record(log_activity, task.id, actor.id, "created", {"title": task.title})
        for user_id in assignees:
            if user_id != actor.id:
                effects.notify(
                    user_id,
                    "assigned",
                    f'{actor.name} assigned you to "{task.title}"',
                    project_link(task.project_id),
                    actor_id=actor.id,
                )
        if assignees:
            effects.record(effects.calendar.sync_task, task.id, assignees)
        effects.invalidate(project_key(task.project_id))

        return MutationResult.success(await to_response(db, task))

    @staticmethod
    async def update_task(
        task_id: str, task_data: TaskUpdate, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[TaskResponse]:
        actor = require_actor(actor)
        update_data = task_data.model_dump(exclude_unset=True)
        cleared = [field for field in REQUIRED_FIELDS if field in update_data and update_data[field] is None]
        if cleared:
            return MutationResult.invalid(f"{', '.join(cleared)} cannot be cleared")
        if "title" in update_data:
            update_data["title"] = update_data["title"].strip()
            if not update_data["title"]:
                return MutationResult.invalid("Title is required")

        task = await db.get(Task, task_id)
        if not task:
            return MutationResult.not_found(f"Task with id {task_id} not found")

        new_extra = update_data.pop("assignee_ids", None)
        before = {field: getattr(task, field) for field in update_data}
        changed = {field for field, value in update_data.items() if not same_value(before[field], value)}

        previous_extra = await extra_assignee_ids(db, task.id)
        extra = previous_extra
        extra_changed = new_extra is not None and set(new_extra) != set(previous_extra)

        if changed:
            task.sqlmodel_update({field: update_data[field] for field in changed})
            task.updated_at = datetime.now(timezone.utc)
            db.add(task)
        if extra_changed:
            # Delete-then-insert; these rows are not replaced atomically.
            await db.exec(delete(TaskAssignee).where(TaskAssignee.task_id == task.id))
            extra = [u for u in dict.fromkeys(new_extra) if u and u != task.assignee_id]
            for user_id in extra:
                db.add(TaskAssignee(task_id=task.id, user_id=user_id))
        if changed or extra_changed:
            await db.commit()
            await db.refresh(task)

        link = project_link(task.project_id)

        if "completed" in changed:
            effects.record(log_activity, task.id, actor.id, "completed" if task.completed else "uncompleted")
            if task.completed and task.creator_id != actor.id:
                effects.notify(
                    task.creator_id,
                    "completed",
                    f'{actor.name} completed "{task.title}"',
                    link,
                    actor_id=actor.id,
                )

        newly_assigned: list[str] = []
        if "assignee_id" in changed:
            effects.record(log_activity, task.id, actor.id, "assigned", {"assigneeId": task.assignee_id})
            if task.assignee_id:
                newly_assigned.append(task.assignee_id)
        if extra_changed:
            newly_assigned += [u for u in extra if u not in previous_extra and u not in newly_assigned]
        for user_id in newly_assigned:
            if user_id != actor.id:
                effects.notify(
                    user_id,
                    "assigned",
                    f'{actor.name} assigned you to "{task.title}"',
                    link,
                    actor_id=actor.id,
                )

        if "priority" in changed:
            effects.record(
                log_activity,
                task.id,
                actor.id,
                "updated",
                {"field": "priority", "from": Priority(before["priority"]).value, "to": Priority(task.priority).value},
            )

        if task.calendar_event_id and changed.intersection(CALENDAR_FIELDS):
            effects.record(effects.calendar.update_task_events, task.id, all_assignees(task, extra))
        elif newly_assigned and not task.calendar_event_id:
            effects.record(effects.calendar.sync_task, task.id, newly_assigned)

        # Invalidated even when nothing changed; the next read just repopulates.
        effects.invalidate(project_key(task.project_id))
        return MutationResult.success(await to_response(db, task))

    @staticmethod
    async def move_task(
        task_id: str, section_id: str, order: int, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[TaskResponse]:
        """
        Put a task in a section at the caller-computed order.

        Siblings are not renumbered; the board supplies a coherent order.
        """
        actor = require_actor(actor)
        task = await db.get(Task, task_id)
        if not task:
            return MutationResult.not_found(f"Task with id {task_id} not found")

        new_section = await db.get(Section, section_id)
        if not new_section or new_section.project_id != task.project_id:
            return MutationResult.not_found(f"Section with id {section_id} not found")

        old_section = await db.get(Section, task.section_id)
        old_section_id = task.section_id

        task.section_id = section_id
        task.order = order
        task.updated_at = datetime.now(timezone.utc)
        db.add(task)
        await db.commit()
        await db.refresh(task)

        if old_section_id != section_id:
            effects.record(
                log_activity,
                task.id,
                actor.id,
                "moved",
                {"from": old_section.name if old_section else None, "to": new_section.name},
            )
        effects.invalidate(project_key(task.project_id))
        return MutationResult.success(await to_response(db, task))

    @staticmethod
    async def delete_task(
        task_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects
    ) -> MutationResult[None]:
        actor = require_actor(actor)
        task = await db.get(Task, task_id)
        if not task:
            return MutationResult.not_found(f"Task with id {task_id} not found")

        await remove_calendar_events(db, [task], effects)

        project_id = task.project_id
        await delete_task_children(db, [task.id])
        await db.delete(task)
        await db.commit()
        logger.info("Task %s deleted by %s", task_id, actor.id)

        effects.invalidate(project_key(project_id))
        return MutationResult.success()

    @staticmethod
    async def get_task(task_id: str, db: AsyncSession) -> TaskDetail | None:
        task = await db.get(Task, task_id)
        if not task:
            return None
        section = await db.get(Section, task.section_id)
        subtasks = await db.exec(
            select(Subtask).where(Subtask.task_id == task.id).order_by(Subtask.order)
        )
        comments = await db.exec(
            select(Comment).where(Comment.task_id == task.id).order_by(Comment.created_at)
        )
        response = await to_response(db, task)
        return TaskDetail(
            **response.model_dump(),
            section_name=section.name if section else "",
            subtasks=list(subtasks.all()),
            comments=list(comments.all()),
            activity=await task_activities(db, task.id),
        )

    @staticmethod
    async def list_tasks(project_id: str, filters: TaskFilters, db: AsyncSession) -> list[TaskResponse]:
        query = select(Task).where(Task.project_id == project_id)
        if filters.assignee_id:
            query = query.where(Task.assignee_id == filters.assignee_id)
        if filters.priority:
            query = query.where(Task.priority == filters.priority)
        if filters.completed is not None:
            query = query.where(Task.completed == filters.completed)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.where(
                or_(col(Task.title).ilike(pattern), col(Task.description).ilike(pattern))
            )
        query = query.order_by(Task.order, Task.created_at)

        result = await db.exec(query)
        return [await to_response(db, task) for task in result.all()]
