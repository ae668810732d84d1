"""
Google Calendar sync for tasks.

One all-day event per task per linked account. Every call is best-effort:
a user without a linked Google account is a silent no-op, and HTTP or
token failures are logged and swallowed.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

import httpx
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import Settings, get_settings
from app.models import Account, Task

logger = logging.getLogger(__name__)


@dataclass
class CalendarTask:
    id: str
    title: str
    project_id: str
    description: str | None = None
    start_date: datetime | None = None
    due_date: datetime | None = None
    calendar_event_id: str | None = None

    @classmethod
    def from_task(cls, task: Task) -> "CalendarTask":
        return cls(
            id=task.id,
            title=task.title,
            project_id=task.project_id,
            description=task.description,
            start_date=task.start_date,
            due_date=task.due_date,
            calendar_event_id=task.calendar_event_id,
        )


def event_dates(task: CalendarTask, today: date | None = None) -> tuple[str, str]:
    """
    All-day range for a task: start on start_date, else due_date, else today;
    end on due_date (or start). The end date is exclusive, hence +1 day.
    """
    today = today or datetime.now(timezone.utc).date()
    start = (task.start_date or task.due_date)
    start_day = start.date() if start else today
    due_day = task.due_date.date() if task.due_date else start_day
    return start_day.isoformat(), (due_day + timedelta(days=1)).isoformat()


class GoogleCalendar:
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    async def start(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.google_calendar_api,
                timeout=10.0,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            )
            logger.info("Google Calendar client started")

    async def stop(self):
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Google Calendar client stopped")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Google Calendar client not started")
        return self._client

    async def _access_token(self, session: AsyncSession, user_id: str) -> str | None:
        result = await session.exec(
            select(Account).where(Account.user_id == user_id, Account.provider == "google")
        )
        account = result.first()
        if account is None or not account.access_token or not account.refresh_token:
            return None
        return account.access_token

    def _event_body(self, task: CalendarTask) -> dict:
        start, end = event_dates(task)
        link = f"{self.settings.app_url}/dashboard/projects/{task.project_id}"
        return {
            "summary": f"📋 {task.title}",
            "description": "\n".join([task.description or "", "", f"View in app: {link}"]),
            "start": {"date": start},
            "end": {"date": end},
            "reminders": {
                "useDefault": False,
                "overrides": [{"method": "popup", "minutes": 60}],
            },
        }

    async def create_event(self, session: AsyncSession, user_id: str, task: CalendarTask) -> str | None:
        """Returns the created event id, or None."""
        try:
            token = await self._access_token(session, user_id)
            if token is None:
                logger.debug("No Google account linked for user %s, skipping", user_id)
                return None

            response = await self.client.post(
                "/calendars/primary/events",
                json=self._event_body(task),
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            event_id = response.json().get("id")
            logger.info("Calendar event %s created for task %s", event_id, task.id)
            return event_id
        except Exception:
            logger.exception("Failed to create calendar event for user %s", user_id)
            return None

    async def update_event(
        self, session: AsyncSession, user_id: str, event_id: str, task: CalendarTask
    ) -> None:
        try:
            token = await self._access_token(session, user_id)
            if token is None:
                return
            response = await self.client.put(
                f"/calendars/primary/events/{event_id}",
                json=self._event_body(task),
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
        except Exception:
            logger.exception("Failed to update calendar event %s", event_id)

    async def delete_event(self, session: AsyncSession, user_id: str, event_id: str) -> None:
        try:
            token = await self._access_token(session, user_id)
            if token is None:
                return
            response = await self.client.delete(
                f"/calendars/primary/events/{event_id}",
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
        except Exception:
            logger.exception("Failed to delete calendar event %s", event_id)

    async def sync_task(self, session: AsyncSession, task_id: str, assignee_ids: list[str]) -> None:
        """
        Create an event for each assignee with Google linked.

        The first event id created is stored on the task.
        """
        task = await session.get(Task, task_id)
        if task is None:
            return
        payload = CalendarTask.from_task(task)
        for user_id in assignee_ids:
            event_id = await self.create_event(session, user_id, payload)
            if event_id and not task.calendar_event_id:
                task.calendar_event_id = event_id
                payload.calendar_event_id = event_id
                session.add(task)

    async def update_task_events(self, session: AsyncSession, task_id: str, assignee_ids: list[str]) -> None:
        task = await session.get(Task, task_id)
        if task is None or not task.calendar_event_id:
            return
        payload = CalendarTask.from_task(task)
        for user_id in assignee_ids:
            await self.update_event(session, user_id, task.calendar_event_id, payload)

    async def remove_task_from_calendars(
        self,
        session: AsyncSession,
        task_id: str,
        event_id: str | None,
        assignee_ids: list[str],
        clear_reference: bool = True,
    ) -> int:
        """Delete the task's event for every assignee; returns the attempt count."""
        if not event_id:
            return 0

        attempts = 0
        for user_id in assignee_ids:
            attempts += 1
            await self.delete_event(session, user_id, event_id)

        if clear_reference:
            task = await session.get(Task, task_id)
            if task is not None:
                task.calendar_event_id = None
                session.add(task)
        return attempts


google_calendar = GoogleCalendar()
