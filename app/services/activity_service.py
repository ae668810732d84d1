import json
from typing import Any

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.models import ActivityLog


async def log_activity(
    session: AsyncSession,
    task_id: str,
    user_id: str,
    action: str,
    details: dict[str, Any] | None = None,
) -> None:
    session.add(
        ActivityLog(
            action=action,
            details=json.dumps(details) if details is not None else None,
            task_id=task_id,
            user_id=user_id,
        )
    )


async def task_activities(session: AsyncSession, task_id: str, limit: int = 50) -> list[ActivityLog]:
    result = await session.exec(
        select(ActivityLog)
        .where(ActivityLog.task_id == task_id)
        .order_by(ActivityLog.created_at.desc())
        .limit(limit)
    )
    return list(result.all())
