"""
Integration tests for subtasks (checklist items under a task).

Covers:
- Creation by anyone who can see the parent task
- Toggle round-trip and partial updates
- Edit rights: creator, parent task assignee or admin; 403 for other members
- Visibility inherited from the parent task's project
"""

from __future__ import annotations

import uuid

import pytest


async def _create_subtask(client, actor, task, title="step"):
    resp = await client.post(f"/api/v1/tasks/{task['id']}/subtasks", json={"title": title}, headers=actor.headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
async def team(seed):
    """Admin, an assignee, a plain member, an outsider and one task."""
    admin = await seed.admin()
    assignee = await seed.user("Assignee")
    member = await seed.user("Member")
    outsider = await seed.user("Outsider")
    project = await seed.project(admin, members=[assignee, member])
    task = await seed.task(admin, project, assignees=[assignee])
    return {
        "admin": admin,
        "assignee": assignee,
        "member": member,
        "outsider": outsider,
        "project": project,
        "task": task,
    }


class TestSubtaskCreation:
    async def test_member_creates_subtask(self, client, team, fake_redis):
        subtask = await _create_subtask(client, team["member"], team["task"], "Draft outline")

        assert subtask["title"] == "Draft outline"
        assert subtask["is_completed"] is False
        assert subtask["task_id"] == team["task"]["id"]
        assert subtask["created_by"] == str(team["member"].id)
        assert fake_redis.events("subtasks")[-1].type.value == "INSERT"

    async def test_outsider_cannot_create(self, client, team):
        resp = await client.post(
            f"/api/v1/tasks/{team['task']['id']}/subtasks",
            json={"title": "sneaky"},
            headers=team["outsider"].headers,
        )
        assert resp.status_code == 404

    async def test_empty_title_is_rejected(self, client, team):
        resp = await client.post(
            f"/api/v1/tasks/{team['task']['id']}/subtasks", json={"title": ""}, headers=team["member"].headers
        )
        assert resp.status_code == 422

    async def test_listed_oldest_first(self, client, team):
        first = await _create_subtask(client, team["member"], team["task"], "first")
        second = await _create_subtask(client, team["assignee"], team["task"], "second")

        listed = (await client.get(f"/api/v1/tasks/{team['task']['id']}/subtasks", headers=team["member"].headers)).json()
        assert [s["id"] for s in listed] == [first["id"], second["id"]]


class TestSubtaskEditing:
    async def test_toggle_twice_restores_value(self, client, team):
        subtask = await _create_subtask(client, team["member"], team["task"])
        url = f"/api/v1/subtasks/{subtask['id']}/toggle"

        once = await client.post(url, headers=team["member"].headers)
        assert once.json()["is_completed"] is True
        twice = await client.post(url, headers=team["member"].headers)
        assert twice.json()["is_completed"] is False

    @pytest.mark.parametrize("editor", ["member", "assignee", "admin"])
    async def test_allowed_editors(self, client, team, editor):
        """The creator (member here), a task assignee and an admin may edit."""
        subtask = await _create_subtask(client, team["member"], team["task"])

        resp = await client.patch(
            f"/api/v1/subtasks/{subtask['id']}",
            json={"title": f"edited by {editor}"},
            headers=team[editor].headers,
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == f"edited by {editor}"

    async def test_other_member_is_forbidden(self, client, seed, team):
        other = await seed.user("Other")
        await client.post(
            f"/api/v1/projects/{team['project']['id']}/members",
            json={"user_id": str(other.id)},
            headers=team["admin"].headers,
        )
        subtask = await _create_subtask(client, team["member"], team["task"])

        # Visible but not editable
        assert (await client.get(f"/api/v1/subtasks/{subtask['id']}", headers=other.headers)).status_code == 200
        for resp in (
            await client.post(f"/api/v1/subtasks/{subtask['id']}/toggle", headers=other.headers),
            await client.patch(f"/api/v1/subtasks/{subtask['id']}", json={"title": "x"}, headers=other.headers),
            await client.delete(f"/api/v1/subtasks/{subtask['id']}", headers=other.headers),
        ):
            assert resp.status_code == 403
            assert resp.json()["error"]["code"] == "FORBIDDEN"

    async def test_outsider_gets_404(self, client, team):
        subtask = await _create_subtask(client, team["member"], team["task"])
        resp = await client.get(f"/api/v1/subtasks/{subtask['id']}", headers=team["outsider"].headers)
        assert resp.status_code == 404

    async def test_partial_update(self, client, team):
        subtask = await _create_subtask(client, team["assignee"], team["task"], "keep me")

        resp = await client.patch(
            f"/api/v1/subtasks/{subtask['id']}",
            json={"description": "more detail", "is_completed": True},
            headers=team["assignee"].headers,
        )
        body = resp.json()
        assert body["title"] == "keep me"
        assert body["description"] == "more detail"
        assert body["is_completed"] is True

    async def test_delete(self, client, team, fake_redis):
        subtask = await _create_subtask(client, team["assignee"], team["task"])

        resp = await client.delete(f"/api/v1/subtasks/{subtask['id']}", headers=team["assignee"].headers)
        assert resp.status_code == 204
        assert (await client.get(f"/api/v1/subtasks/{subtask['id']}", headers=team["admin"].headers)).status_code == 404

        deleted = fake_redis.events("subtasks")[-1]
        assert deleted.type.value == "DELETE"
        assert deleted.get("task_id") == team["task"]["id"]

    async def test_unknown_subtask_is_404(self, client, team):
        resp = await client.get(f"/api/v1/subtasks/{uuid.uuid4()}", headers=team["admin"].headers)
        assert resp.status_code == 404
