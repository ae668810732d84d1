"""
Deferred, best-effort side effects of a mutation.

Mutations call these only after their primary write has been committed.
Each job runs after the response is sent (FastAPI ``BackgroundTasks``),
opens its own session when it needs one, and logs instead of raising.

Usage:
    effects.record(log_activity, task.id, actor.id, "created")
    effects.notify(user_id, "assigned", message, link, actor_id=actor.id)
    effects.invalidate(project_key(task.project_id))
"""

import logging
from typing import Any, Awaitable, Callable

from fastapi import BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.keys import unread_count_key
from app.cache.layer import CacheLayer, cache_layer
from app.database import get_session_factory
from app.integrations.google_calendar import GoogleCalendar, google_calendar
from app.models import Notification

logger = logging.getLogger(__name__)

SessionWriter = Callable[..., Awaitable[Any]]


class SideEffects:
    def __init__(
        self,
        background: BackgroundTasks,
        session_factory: async_sessionmaker[AsyncSession],
        cache: CacheLayer | None = None,
        calendar: GoogleCalendar | None = None,
    ):
        self.background = background
        self.session_factory = session_factory
        self.cache = cache or cache_layer
        self.calendar = calendar or google_calendar

    def defer(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> None:
        """Schedule a coroutine function to run after the response."""
        self.background.add_task(self._run, fn, *args, **kwargs)

    def record(self, writer: SessionWriter, *args, **kwargs) -> None:
        """Schedule ``writer(session, *args, **kwargs)`` in a fresh session, then commit."""
        self.defer(self._in_session, writer, *args, **kwargs)

    def notify(
        self,
        user_id: str,
        kind: str,
        message: str,
        link: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        self.defer(self._notify, user_id, kind, message, link, actor_id)

    def invalidate(self, *keys: str) -> None:
        """Delete cache keys together once the response is out."""
        if keys:
            self.defer(self.cache.delete, *keys)

    async def drain(self) -> None:
        """Run pending jobs now; used outside a request and in tests."""
        tasks, self.background.tasks = list(self.background.tasks), []
        for task in tasks:
            await task()

    async def _run(self, fn, *args, **kwargs) -> None:
        name = getattr(fn, "__qualname__", repr(fn))
        try:
            await fn(*args, **kwargs)
        except Exception:
            logger.exception("Side effect %s failed", name)

    async def _in_session(self, writer: SessionWriter, *args, **kwargs) -> None:
        async with self.session_factory() as session:
            await writer(session, *args, **kwargs)
            await session.commit()

    async def _notify(self, user_id, kind, message, link, actor_id) -> None:
        async with self.session_factory() as session:
            session.add(
                Notification(
                    type=kind,
                    message=message,
                    link=link,
                    user_id=user_id,
                    actor_id=actor_id,
                )
            )
            await session.commit()
        await self.cache.delete(unread_count_key(user_id))


def get_side_effects(
    background_tasks: BackgroundTasks,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SideEffects:
    return SideEffects(background_tasks, session_factory)
