# tests/test_api.py

import httpx
import pytest
from fastapi import BackgroundTasks
from sqlmodel import select

from app.board.optimistic import OptimisticBoard, http_move_commit
from app.database import get_db, get_session_factory
from app.main import app as api
from app.models import ActivityLog, TeamMember, User
from app.services.effects import SideEffects, get_side_effects


@pytest.fixture()
async def client(session_factory, cache, calendar):
    async def override_db():
        async with session_factory() as session:
            yield session

    def override_effects(background_tasks: BackgroundTasks) -> SideEffects:
        return SideEffects(background_tasks, session_factory, cache=cache, calendar=calendar)

    api.dependency_overrides[get_db] = override_db
    api.dependency_overrides[get_session_factory] = lambda: session_factory
    api.dependency_overrides[get_side_effects] = override_effects

    transport = httpx.ASGITransport(app=api)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

    api.dependency_overrides.clear()


def as_user(user) -> dict:
    return {"x-user-id": user.id, "x-user-name": user.name}


@pytest.mark.asyncio
async def test_health(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_mutation_without_identity_is_401(client, seed) -> None:
    response = await client.post(
        "/tasks/", json={"title": "x", "project_id": seed.project.id, "section_id": seed.todo.id}
    )
    assert response.status_code == 401

    response = await client.post("/tasks/anything/move", json={"section_id": seed.doing.id, "order": 0})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_validation_and_not_found_status_codes(client, seed) -> None:
    headers = as_user(seed.alice)

    missing_title = await client.post(
        "/tasks/", json={"project_id": seed.project.id, "section_id": seed.todo.id}, headers=headers
    )
    assert missing_title.status_code == 422

    missing_task = await client.patch("/tasks/nope", json={"title": "x"}, headers=headers)
    assert missing_task.status_code == 404

    negative_order = await client.post(
        "/tasks/nope/move", json={"section_id": seed.todo.id, "order": -1}, headers=headers
    )
    assert negative_order.status_code == 422


@pytest.mark.asyncio
async def test_board_flow_create_read_move(client, seed, session_factory) -> None:
    headers = as_user(seed.alice)
    for title in ("Outline", "Research", "Draft spec"):
        response = await client.post(
            "/tasks/",
            json={"title": title, "project_id": seed.project.id, "section_id": seed.todo.id},
            headers=headers,
        )
        assert response.status_code == 201
    assert response.json()["order"] == 2
    draft_id = response.json()["id"]

    board_payload = (await client.get(f"/projects/{seed.project.id}")).json()
    assert [t["title"] for t in board_payload["sections"][0]["tasks"]] == ["Outline", "Research", "Draft spec"]
    assert sorted(m["name"] for m in board_payload["members"]) == ["Alice", "Bob", "Carol"]

    client.headers.update(headers)
    board = OptimisticBoard(board_payload["sections"], commit=http_move_commit(client))
    assert await board.move(draft_id, seed.doing.id, 0) is True
    assert board.gate.count == 0

    # background invalidation already ran, so the read reflects the move
    refreshed = (await client.get(f"/projects/{seed.project.id}")).json()
    assert board.receive_server_state(refreshed["sections"])
    assert board.snapshot()[seed.doing.id] == [draft_id]

    async with session_factory() as session:
        moved = (await session.exec(select(ActivityLog).where(ActivityLog.action == "moved"))).one()
    assert moved.task_id == draft_id


@pytest.mark.asyncio
async def test_failed_server_move_keeps_board_local(client, seed) -> None:
    client.headers.update(as_user(seed.alice))
    created = await client.post(
        "/tasks/", json={"title": "Orphan", "project_id": seed.project.id, "section_id": seed.todo.id}
    )
    task_id = created.json()["id"]
    board_payload = (await client.get(f"/projects/{seed.project.id}")).json()
    board = OptimisticBoard(board_payload["sections"], commit=http_move_commit(client))

    await client.delete(f"/tasks/{task_id}")
    assert await board.move(task_id, seed.done.id, 0) is False

    assert board.snapshot()[seed.done.id] == [task_id]
    assert board.gate.count == 0


@pytest.mark.asyncio
async def test_patch_and_complete(client, seed) -> None:
    client.headers.update(as_user(seed.alice))
    created = await client.post(
        "/tasks/",
        json={
            "title": "Dated",
            "project_id": seed.project.id,
            "section_id": seed.todo.id,
            "due_date": "2026-11-01T00:00:00Z",
        },
    )
    task_id = created.json()["id"]

    patched = await client.patch(f"/tasks/{task_id}", json={"due_date": None})
    assert patched.json()["due_date"] is None
    assert patched.json()["title"] == "Dated"

    completed = await client.post(f"/tasks/{task_id}/complete", headers=as_user(seed.bob))
    assert completed.json()["completed"] is True

    unread = await client.get("/notifications/unread-count")
    assert unread.json() == {"count": 1}


@pytest.mark.asyncio
async def test_patch_cannot_clear_required_fields(client, seed) -> None:
    client.headers.update(as_user(seed.alice))
    created = await client.post(
        "/tasks/", json={"title": "Keep", "project_id": seed.project.id, "section_id": seed.todo.id}
    )
    task_id = created.json()["id"]

    for field in ("title", "priority", "status", "completed"):
        response = await client.patch(f"/tasks/{task_id}", json={field: None})
        assert response.status_code == 422, field

    cleared_name = await client.patch(f"/projects/{seed.project.id}", json={"name": None})
    assert cleared_name.status_code == 422

    task = (await client.get(f"/tasks/{task_id}")).json()
    assert (task["title"], task["priority"], task["completed"]) == ("Keep", "medium", False)


@pytest.mark.asyncio
async def test_invite_accept(client, seed, db, session_factory) -> None:
    db.add(User(id="outsider", name="Dana", email="dana@example.com"))
    await db.commit()
    outsider_headers = {"x-user-id": "outsider", "x-user-name": "Dana"}

    created = await client.post("/invites/", json={"project_id": seed.project.id}, headers=as_user(seed.alice))
    assert created.status_code == 201
    token = created.json()["token"]
    assert created.json()["link"].endswith(f"/invite/{token}")

    accepted = await client.post(f"/invites/{token}/accept", headers=outsider_headers)
    assert accepted.json() == {"project_id": seed.project.id, "already_member": False}

    again = await client.post(f"/invites/{token}/accept", headers=outsider_headers)
    assert again.json() == {"project_id": seed.project.id, "already_member": True}

    async with session_factory() as session:
        memberships = (await session.exec(select(TeamMember).where(TeamMember.user_id == "outsider"))).all()
    assert len(memberships) == 1

    alice_unread = await client.get("/notifications/unread-count", headers=as_user(seed.alice))
    assert alice_unread.json() == {"count": 1}


@pytest.mark.asyncio
async def test_unknown_invite(client, seed) -> None:
    response = await client.post("/invites/missing/accept", headers=as_user(seed.bob))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_comments_and_tags_show_on_the_board(client, seed) -> None:
    client.headers.update(as_user(seed.alice))
    created = await client.post(
        "/tasks/",
        json={"title": "Tagged", "project_id": seed.project.id, "section_id": seed.todo.id, "assignee_id": seed.bob.id},
    )
    task_id = created.json()["id"]
    await client.get(f"/projects/{seed.project.id}")

    tag = await client.post("/tags/", json={"name": "backend"})
    assert tag.status_code == 201
    assert tag.json()["color"] == "#6b7280"
    assert (await client.post("/tags/", json={"name": "backend"})).status_code == 422

    added = await client.post(f"/tasks/{task_id}/tags", json={"tag_id": tag.json()["id"]})
    assert added.status_code == 201
    comment = await client.post("/comments/", json={"task_id": task_id, "content": "Looks good"})
    assert comment.status_code == 201
    assert (await client.post("/comments/", json={"task_id": task_id, "content": " "})).status_code == 422

    board = (await client.get(f"/projects/{seed.project.id}")).json()
    card = board["sections"][0]["tasks"][0]
    assert [t["name"] for t in card["tags"]] == ["backend"]
    assert card["comment_count"] == 1

    detail = (await client.get(f"/tasks/{task_id}")).json()
    assert [c["content"] for c in detail["comments"]] == ["Looks good"]

    bob_unread = await client.get("/notifications/unread-count", headers=as_user(seed.bob))
    assert bob_unread.json() == {"count": 2}

    removed = await client.delete(f"/tasks/{task_id}/tags/{tag.json()['id']}")
    assert removed.status_code == 204
    listed = (await client.get("/tags/")).json()
    assert [(t["name"], t["task_count"]) for t in listed] == [("backend", 0)]
