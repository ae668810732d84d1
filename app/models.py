import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Column, Field, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TrackingStatus(str, Enum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    OFF_TRACK = "off_track"


class InviteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


def _timestamp(nullable: bool = False):
    return Column(DateTime(timezone=True), nullable=nullable)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(max_length=200)
    email: str = Field(max_length=320, unique=True, index=True)
    avatar: str | None = None


class Team(SQLModel, table=True):
    __tablename__ = "teams"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(min_length=1, max_length=200)
    created_at: datetime = Field(default_factory=get_utc_now, sa_column=_timestamp())


class TeamMember(SQLModel, table=True):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("user_id", "team_id"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    team_id: str = Field(foreign_key="teams.id", index=True)
    role: str = Field(default="member")


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    color: str = Field(default="#6366f1")
    team_id: str = Field(foreign_key="teams.id", index=True)
    creator_id: str = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=get_utc_now, sa_column=_timestamp())


class Section(SQLModel, table=True):
    __tablename__ = "sections"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(min_length=1, max_length=200)
    order: int = Field(default=0)
    project_id: str = Field(foreign_key="projects.id", index=True)


class TaskBase(SQLModel):
    """Base model with shared fields"""

    title: str = Field(min_length=1, max_length=200, index=True)
    description: str | None = Field(default=None)
    priority: Priority = Field(default=Priority.MEDIUM)
    status: TrackingStatus = Field(default=TrackingStatus.ON_TRACK)


class Task(TaskBase, table=True):
    """Database model"""

    __tablename__ = "tasks"

    id: str = Field(default_factory=new_id, primary_key=True)
    completed: bool = Field(default=False)
    order: int = Field(default=0)
    section_id: str = Field(foreign_key="sections.id", index=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    creator_id: str = Field(foreign_key="users.id")
    assignee_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    due_date: datetime | None = Field(default=None, sa_column=_timestamp(nullable=True))
    start_date: datetime | None = Field(default=None, sa_column=_timestamp(nullable=True))
    calendar_event_id: str | None = None
    created_at: datetime = Field(default_factory=get_utc_now, sa_column=_timestamp())
    updated_at: datetime | None = Field(default=None, sa_column=_timestamp(nullable=True))


class TaskAssignee(SQLModel, table=True):
    """Additional assignees beyond the primary one."""

    __tablename__ = "task_assignees"
    __table_args__ = (UniqueConstraint("task_id", "user_id"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    task_id: str = Field(foreign_key="tasks.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)


class Subtask(SQLModel, table=True):
    __tablename__ = "subtasks"

    id: str = Field(default_factory=new_id, primary_key=True)
    title: str = Field(min_length=1, max_length=200)
    completed: bool = Field(default=False)
    order: int = Field(default=0)
    task_id: str = Field(foreign_key="tasks.id", index=True)


class Comment(SQLModel, table=True):
    __tablename__ = "comments"

    id: str = Field(default_factory=new_id, primary_key=True)
    content: str
    task_id: str = Field(foreign_key="tasks.id", index=True)
    author_id: str = Field(foreign_key="users.id")
    created_at: datetime = Field(default_factory=get_utc_now, sa_column=_timestamp())


class Tag(SQLModel, table=True):
    """Workspace-wide label; names are unique."""

    __tablename__ = "tags"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(max_length=50, unique=True, index=True)
    color: str = Field(default="#6b7280")


class TaskTag(SQLModel, table=True):
    __tablename__ = "task_tags"
    __table_args__ = (UniqueConstraint("task_id", "tag_id"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    task_id: str = Field(foreign_key="tasks.id", index=True)
    tag_id: str = Field(foreign_key="tags.id", index=True)


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_logs"

    id: str = Field(default_factory=new_id, primary_key=True)
    action: str
    details: str | None = None  # JSON encoded
    task_id: str = Field(index=True)
    user_id: str
    created_at: datetime = Field(default_factory=get_utc_now, sa_column=_timestamp())


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: str = Field(default_factory=new_id, primary_key=True)
    type: str
    message: str
    link: str | None = None
    user_id: str = Field(foreign_key="users.id", index=True)
    actor_id: str | None = None
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=get_utc_now, sa_column=_timestamp())


class Account(SQLModel, table=True):
    """Linked OAuth account; tokens are refreshed outside this service."""

    __tablename__ = "accounts"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    provider: str = Field(default="google")
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int | None = None


class ProjectInvite(SQLModel, table=True):
    __tablename__ = "project_invites"

    id: str = Field(default_factory=new_id, primary_key=True)
    token: str = Field(default_factory=lambda: uuid.uuid4().hex, unique=True, index=True)
    project_id: str = Field(foreign_key="projects.id")
    team_id: str = Field(foreign_key="teams.id")
    invited_by_id: str = Field(foreign_key="users.id")
    invited_email: str | None = None
    status: InviteStatus = Field(default=InviteStatus.PENDING)
    expires_at: datetime = Field(sa_column=_timestamp())
    created_at: datetime = Field(default_factory=get_utc_now, sa_column=_timestamp())
