# tests/test_supplements.py

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text
from sqlmodel import select

from app.cache.keys import project_key, projects_list_key, teams_list_key
from app.core.auth import Actor
from app.core.errors import FailureKind
from app.models import (
    ActivityLog,
    Comment,
    InviteStatus,
    Project,
    ProjectInvite,
    Section,
    Subtask,
    Tag,
    Task,
    TaskAssignee,
    TaskTag,
    TeamMember,
    User,
)
from app.schemas import ProjectCreate, ProjectUpdate
from app.services.invite_service import InviteService, is_expired
from app.services.project_service import ProjectService
from app.services.subtask_service import SubtaskService
from app.services.team_service import TeamService


# ---- projects / sections ----


@pytest.mark.asyncio
async def test_create_project_adds_default_sections_and_invalidates_member_lists(seed, db, effects, fake_redis) -> None:
    result = await ProjectService.create_project(
        ProjectCreate(name="  Roadmap ", team_id=seed.team.id), seed.as_alice, db, effects
    )
    await effects.drain()

    assert result.value.name == "Roadmap"
    sections = (await db.exec(select(Section).where(Section.project_id == result.value.id).order_by(Section.order))).all()
    assert [s.name for s in sections] == ["To Do", "In Progress", "Done"]
    assert sorted(fake_redis.deleted[-1]) == sorted(
        f"test:l2:{projects_list_key(u.id)}" for u in (seed.alice, seed.bob, seed.carol)
    )


@pytest.mark.asyncio
async def test_create_project_requires_name_and_team(seed, db, effects) -> None:
    assert (await ProjectService.create_project(ProjectCreate(name="", team_id=seed.team.id), seed.as_alice, db, effects)).kind == FailureKind.VALIDATION
    assert (await ProjectService.create_project(ProjectCreate(name="X"), seed.as_alice, db, effects)).kind == FailureKind.VALIDATION


@pytest.mark.asyncio
async def test_project_list_counts_tasks_and_refreshes_after_update(seed, db, effects) -> None:
    db.add(Task(title="One", project_id=seed.project.id, section_id=seed.todo.id, creator_id=seed.alice.id))
    await db.commit()

    listed = await ProjectService.list_projects(seed.as_bob, db, effects=effects)
    await effects.drain()
    assert [(p["name"], p["task_count"]) for p in listed] == [("Launch", 1)]

    await ProjectService.update_project(seed.project.id, ProjectUpdate(name="Launch v2"), seed.as_alice, db, effects)
    await effects.drain()

    listed = await ProjectService.list_projects(seed.as_bob, db, effects=effects)
    assert listed[0]["name"] == "Launch v2"
    assert listed[0]["color"] == "#6366f1"


@pytest.mark.asyncio
async def test_create_section_appends(seed, db, effects, cache) -> None:
    await cache.set(project_key(seed.project.id), {"old": True}, 60)

    result = await ProjectService.create_section(seed.project.id, "Review", seed.as_alice, db, effects)
    await effects.drain()

    assert (result.value.name, result.value.order) == ("Review", 3)
    assert await cache.get(project_key(seed.project.id)) is None


@pytest.mark.asyncio
async def test_delete_section_removes_its_tasks(seed, db, effects) -> None:
    db.add(Task(title="Doomed", project_id=seed.project.id, section_id=seed.done.id, creator_id=seed.alice.id))
    await db.commit()

    assert (await ProjectService.delete_section(seed.done.id, seed.as_alice, db, effects)).ok
    assert (await db.exec(select(Task).where(Task.section_id == seed.done.id))).all() == []
    assert (await ProjectService.delete_section(seed.done.id, seed.as_alice, db, effects)).kind == FailureKind.NOT_FOUND


async def _task_with_children(db, seed, section, **kwargs) -> Task:
    task = Task(title="Loaded", project_id=seed.project.id, section_id=section.id, creator_id=seed.alice.id, **kwargs)
    tag = Tag(name=f"tag-{section.name}")
    db.add_all([task, tag])
    await db.flush()
    db.add_all(
        [
            TaskAssignee(task_id=task.id, user_id=seed.carol.id),
            Subtask(title="Step", task_id=task.id),
            Comment(content="note", task_id=task.id, author_id=seed.bob.id),
            TaskTag(task_id=task.id, tag_id=tag.id),
            ActivityLog(action="created", task_id=task.id, user_id=seed.alice.id),
        ]
    )
    await db.commit()
    return task


async def _remaining(db, task_id) -> list:
    rows = []
    for model in (TaskAssignee, Subtask, Comment, TaskTag, ActivityLog):
        rows += (await db.exec(select(model).where(model.task_id == task_id))).all()
    return rows


@pytest.mark.asyncio
async def test_foreign_keys_are_enforced(db) -> None:
    assert (await db.exec(text("PRAGMA foreign_keys"))).one()[0] == 1


@pytest.mark.asyncio
async def test_delete_section_removes_task_children(seed, db, effects) -> None:
    task = await _task_with_children(db, seed, seed.doing)

    result = await ProjectService.delete_section(seed.doing.id, seed.as_alice, db, effects)

    assert result.ok
    assert await db.get(Task, task.id) is None
    assert await _remaining(db, task.id) == []
    assert len((await db.exec(select(Tag))).all()) == 1


@pytest.mark.asyncio
async def test_delete_project_removes_everything_under_it(seed, db, effects, calendar, fake_redis) -> None:
    task = await _task_with_children(db, seed, seed.todo, assignee_id=seed.bob.id, calendar_event_id="evt-9")
    await InviteService.create_invite_link(seed.project.id, seed.as_alice, db)

    result = await ProjectService.delete_project(seed.project.id, seed.as_alice, db, effects)
    await effects.drain()

    assert result.ok
    assert calendar.removed == [(task.id, "evt-9", [seed.bob.id, seed.carol.id])]
    assert await _remaining(db, task.id) == []
    assert (await db.exec(select(ProjectInvite))).all() == []
    assert (await db.exec(select(Section))).all() == []
    assert await db.get(Project, seed.project.id) is None
    assert f"test:l2:{project_key(seed.project.id)}" in fake_redis.deleted[-1]


@pytest.mark.asyncio
async def test_delete_project_survives_calendar_failure(seed, db, effects, calendar) -> None:
    calendar.remove_task_from_calendars = AsyncMock(side_effect=RuntimeError("boom"))
    await _task_with_children(db, seed, seed.todo, calendar_event_id="evt-3")

    assert (await ProjectService.delete_project(seed.project.id, seed.as_alice, db, effects)).ok
    assert await db.get(Project, seed.project.id) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("patch", [{"name": None}, {"color": None}, {"name": "  "}])
async def test_update_project_rejects_clearing_name_or_color(seed, db, effects, patch) -> None:
    result = await ProjectService.update_project(
        seed.project.id, ProjectUpdate.model_validate(patch), seed.as_alice, db, effects
    )

    assert result.kind == FailureKind.VALIDATION
    assert effects.background.tasks == []
    stored = await db.get(Project, seed.project.id)
    assert (stored.name, stored.color) == ("Launch", "#6366f1")


@pytest.mark.asyncio
async def test_get_missing_project(db, effects) -> None:
    assert await ProjectService.get_project("missing", db, effects=effects) is None
    assert effects.background.tasks == []


# ---- teams ----


@pytest.mark.asyncio
async def test_create_team_makes_actor_owner(seed, db, effects) -> None:
    result = await TeamService.create_team("Design", seed.as_bob, db, effects)

    membership = (await db.exec(select(TeamMember).where(TeamMember.team_id == result.value.id))).one()
    assert (membership.user_id, membership.role) == (seed.bob.id, "owner")
    assert (await TeamService.create_team(" ", seed.as_bob, db, effects)).kind == FailureKind.VALIDATION


@pytest.mark.asyncio
async def test_add_member_invalidates_both_users(seed, db, effects, fake_redis) -> None:
    dana = User(name="Dana", email="dana@example.com")
    db.add(dana)
    await db.commit()

    result = await TeamService.add_member(seed.team.id, dana.id, seed.as_alice, db, effects)
    await effects.drain()

    assert result.ok
    assert fake_redis.deleted[-1] == (
        f"test:l2:{teams_list_key(dana.id)}",
        f"test:l2:{projects_list_key(dana.id)}",
        f"test:l2:{teams_list_key(seed.alice.id)}",
    )
    again = await TeamService.add_member(seed.team.id, dana.id, seed.as_alice, db, effects)
    assert again.kind == FailureKind.VALIDATION


@pytest.mark.asyncio
async def test_team_list_and_remove_member(seed, db, effects) -> None:
    teams = await TeamService.list_teams(Actor(id=seed.carol.id), db, effects=effects)
    await effects.drain()
    assert [t["name"] for t in teams] == ["Core"]
    assert teams[0]["project_count"] == 1
    assert len(teams[0]["members"]) == 3

    assert (await TeamService.remove_member(seed.team.id, seed.carol.id, seed.as_alice, db, effects)).ok
    await effects.drain()

    assert await TeamService.list_teams(Actor(id=seed.carol.id), db, effects=effects) == []
    missing = await TeamService.remove_member(seed.team.id, seed.carol.id, seed.as_alice, db, effects)
    assert missing.kind == FailureKind.NOT_FOUND


# ---- subtasks ----


@pytest.mark.asyncio
async def test_subtask_create_and_toggle_log_activity(seed, db, effects, session_factory) -> None:
    task = Task(title="Parent", project_id=seed.project.id, section_id=seed.todo.id, creator_id=seed.alice.id)
    db.add(task)
    await db.commit()

    first = await SubtaskService.create_subtask(task.id, "Step one", seed.as_alice, db, effects)
    second = await SubtaskService.create_subtask(task.id, "Step two", seed.as_alice, db, effects)
    toggled = await SubtaskService.toggle_subtask(first.value.id, seed.as_bob, db, effects)
    await effects.drain()

    assert [first.value.order, second.value.order] == [0, 1]
    assert toggled.value.completed is True
    async with session_factory() as session:
        actions = [a.action for a in (await session.exec(select(ActivityLog).where(ActivityLog.task_id == task.id))).all()]
    assert sorted(actions) == ["subtask_added", "subtask_added", "subtask_completed"]


@pytest.mark.asyncio
async def test_subtask_requires_title_and_task(seed, db, effects) -> None:
    assert (await SubtaskService.create_subtask("t", "", seed.as_alice, db, effects)).kind == FailureKind.VALIDATION
    assert (await SubtaskService.create_subtask("missing", "x", seed.as_alice, db, effects)).kind == FailureKind.NOT_FOUND
    assert (await SubtaskService.toggle_subtask("missing", seed.as_alice, db, effects)).kind == FailureKind.NOT_FOUND


# ---- invites ----


@pytest.mark.asyncio
async def test_invite_link_expires_after_a_week(seed, db) -> None:
    result = await InviteService.create_invite_link(seed.project.id, seed.as_alice, db, invited_email=" Dana@Example.com ")

    invite = (await db.exec(select(ProjectInvite).where(ProjectInvite.token == result.value.token))).one()
    assert invite.invited_email == "dana@example.com"
    assert result.value.link.endswith(f"/invite/{invite.token}")
    assert not is_expired(invite)
    assert is_expired(invite, now=datetime.now(timezone.utc) + timedelta(days=8))

    details = await InviteService.get_invite(invite.token, db)
    assert (details.status, details.expired) == ("pending", False)


@pytest.mark.asyncio
async def test_expired_invite_is_rejected_and_marked(seed, db, effects) -> None:
    invite = ProjectInvite(
        project_id=seed.project.id,
        team_id=seed.team.id,
        invited_by_id=seed.alice.id,
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )
    db.add(invite)
    await db.commit()

    result = await InviteService.accept_invite(invite.token, Actor(id="newcomer", name="Eve"), db, effects)

    assert result.kind == FailureKind.VALIDATION
    await db.refresh(invite)
    assert invite.status == InviteStatus.EXPIRED
    assert effects.background.tasks == []


@pytest.mark.asyncio
async def test_accept_invalidates_project_and_new_member_lists(seed, db, effects, fake_redis) -> None:
    db.add(User(id="newcomer", name="Eve", email="eve@example.com"))
    await db.commit()
    link = await InviteService.create_invite_link(seed.project.id, seed.as_alice, db)

    result = await InviteService.accept_invite(link.value.token, Actor(id="newcomer", name="Eve"), db, effects)
    await effects.drain()

    assert result.value == seed.project.id
    assert (
        f"test:l2:{project_key(seed.project.id)}",
        f"test:l2:{teams_list_key('newcomer')}",
        f"test:l2:{projects_list_key('newcomer')}",
    ) in fake_redis.deleted


@pytest.mark.asyncio
async def test_existing_member_accepting_is_a_no_op(seed, db, effects) -> None:
    link = await InviteService.create_invite_link(seed.project.id, seed.as_alice, db)

    result = await InviteService.accept_invite(link.value.token, seed.as_bob, db, effects)

    assert result.ok
    assert result.meta == {"already_member": True}
    assert effects.background.tasks == []
