from sqlalchemy import func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.decorators import async_cached
from app.cache.keys import unread_count_key
from app.core.auth import Actor, require_actor
from app.core.config import get_settings
from app.core.errors import MutationResult
from app.models import Notification
from app.services.effects import SideEffects


class NotificationService:
    @staticmethod
    async def list_notifications(actor: Actor | None, db: AsyncSession, limit: int = 50):
        actor = require_actor(actor)
        result = await db.exec(
            select(Notification)
            .where(Notification.user_id == actor.id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        return list(result.all())

    @staticmethod
    async def unread_count(actor: Actor | None, db: AsyncSession, *, effects: SideEffects | None = None) -> int:
        actor = require_actor(actor)
        return await _unread_count(actor.id, db, effects=effects)

    @staticmethod
    async def mark_read(notification_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects):
        actor = require_actor(actor)
        notification = await db.get(Notification, notification_id)
        if not notification or notification.user_id != actor.id:
            return MutationResult.not_found("Notification not found")

        notification.read = True
        db.add(notification)
        await db.commit()

        effects.invalidate(unread_count_key(actor.id))
        return MutationResult.success()

    @staticmethod
    async def mark_all_read(actor: Actor | None, db: AsyncSession, effects: SideEffects):
        actor = require_actor(actor)
        await db.exec(
            update(Notification)
            .where(Notification.user_id == actor.id, Notification.read == False)  # noqa: E712
            .values(read=True)
        )
        await db.commit()

        effects.invalidate(unread_count_key(actor.id))
        return MutationResult.success()

    @staticmethod
    async def delete_notification(notification_id: str, actor: Actor | None, db: AsyncSession, effects: SideEffects):
        actor = require_actor(actor)
        notification = await db.get(Notification, notification_id)
        if not notification or notification.user_id != actor.id:
            return MutationResult.not_found("Notification not found")

        await db.delete(notification)
        await db.commit()

        effects.invalidate(unread_count_key(actor.id))
        return MutationResult.success()


@async_cached(lambda user_id, *_, **__: unread_count_key(user_id), ttl=lambda: get_settings().unread_cache_ttl)
async def _unread_count(user_id: str, db: AsyncSession, *, effects: SideEffects | None = None) -> int:
    result = await db.exec(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
    )
    return int(result.one())
