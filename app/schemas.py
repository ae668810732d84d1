from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models import Priority, TaskBase, TrackingStatus


class UserRead(SQLModel):
    id: str
    name: str
    email: str
    avatar: str | None = None


# ---- tasks ----


class TaskCreate(SQLModel):
    """Schema for creating a task. Required fields are checked by the service."""

    title: str = ""
    description: str | None = None
    project_id: str = ""
    section_id: str = ""
    priority: Priority = Priority.MEDIUM
    status: TrackingStatus = TrackingStatus.ON_TRACK
    assignee_id: str | None = None
    assignee_ids: list[str] = Field(default_factory=list)
    due_date: datetime | None = None
    start_date: datetime | None = None


class TaskUpdate(SQLModel):
    """
    Schema for patching a task - all fields optional.

    Omitted fields are left untouched; an explicit null clears the field.
    """

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    priority: Priority | None = None
    status: TrackingStatus | None = None
    completed: bool | None = None
    assignee_id: str | None = None
    assignee_ids: list[str] | None = None
    due_date: datetime | None = None
    start_date: datetime | None = None


class TaskMove(SQLModel):
    section_id: str
    order: int = Field(ge=0)


class TaskFilters(SQLModel):
    assignee_id: str | None = None
    priority: Priority | None = None
    completed: bool | None = None
    search: str | None = None


class TagRead(SQLModel):
    id: str
    name: str
    color: str

    model_config = {"from_attributes": True}


class TaskResponse(TaskBase):
    """Schema for task responses"""

    id: str
    completed: bool
    order: int
    section_id: str
    project_id: str
    creator_id: str
    assignee_id: str | None = None
    assignee_ids: list[str] = Field(default_factory=list)
    tags: list[TagRead] = Field(default_factory=list)
    comment_count: int = 0
    due_date: datetime | None = None
    start_date: datetime | None = None
    calendar_event_id: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubtaskRead(SQLModel):
    id: str
    title: str
    completed: bool
    order: int
    task_id: str

    model_config = {"from_attributes": True}


class ActivityRead(SQLModel):
    id: str
    action: str
    details: str | None = None
    task_id: str
    user_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CommentRead(SQLModel):
    id: str
    content: str
    task_id: str
    author_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TaskDetail(TaskResponse):
    section_name: str
    subtasks: list[SubtaskRead] = Field(default_factory=list)
    comments: list[CommentRead] = Field(default_factory=list)
    activity: list[ActivityRead] = Field(default_factory=list)


# ---- projects / sections ----


class ProjectCreate(SQLModel):
    name: str = ""
    description: str | None = None
    color: str = "#6366f1"
    team_id: str = ""


class ProjectUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    color: str | None = None


class SectionCreate(SQLModel):
    project_id: str
    name: str = ""


class SectionRead(SQLModel):
    id: str
    name: str
    order: int
    tasks: list[TaskResponse] = Field(default_factory=list)


class ProjectDetail(SQLModel):
    id: str
    name: str
    description: str | None = None
    color: str
    team_id: str
    sections: list[SectionRead] = Field(default_factory=list)
    members: list[UserRead] = Field(default_factory=list)


class ProjectSummary(SQLModel):
    id: str
    name: str
    description: str | None = None
    color: str
    team_id: str
    task_count: int = 0
    created_at: datetime


# ---- teams ----


class TeamCreate(SQLModel):
    name: str = ""


class TeamMemberAdd(SQLModel):
    user_id: str


class TeamRead(SQLModel):
    id: str
    name: str
    members: list[UserRead] = Field(default_factory=list)
    project_count: int = 0


# ---- notifications / invites / subtasks ----


class NotificationRead(SQLModel):
    id: str
    type: str
    message: str
    link: str | None = None
    user_id: str
    actor_id: str | None = None
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class InviteLink(SQLModel):
    token: str
    link: str


class InviteRead(SQLModel):
    token: str
    project_id: str
    team_id: str
    invited_by_id: str
    status: str
    expires_at: datetime
    expired: bool


class SubtaskCreate(SQLModel):
    task_id: str
    title: str = ""


# ---- comments / tags ----


class CommentCreate(SQLModel):
    task_id: str
    content: str = ""


class TagCreate(SQLModel):
    name: str = ""
    color: str | None = None


class TagSummary(TagRead):
    task_count: int = 0


class TaskTagAdd(SQLModel):
    tag_id: str
