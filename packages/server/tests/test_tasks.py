"""
Integration tests for Task endpoints: visibility, the status workflow,
assignment notifications, filters and the board.

Tests cover:
- Task CRUD (admin-only) and inherited visibility
- Status changes by any actor who can see the task
- Reassignment notifying only newly added assignees
- Search/filter and board grouping
"""

from __future__ import annotations

import uuid

import pytest

from teamboard_shared.schemas.common import TASK_STATUS_ORDER, TaskStatus
from teamboard_shared.schemas.tasks import TaskCreate, TaskUpdate


async def _notifications(client, actor):
    return (await client.get("/api/v1/notifications/", headers=actor.headers)).json()["data"]


# ---------------------------------------------------------------------------
# Unit tests: schemas
# ---------------------------------------------------------------------------


class TestTaskSchemas:
    def test_title_bounds(self):
        project_id = uuid.uuid4()
        with pytest.raises(ValueError):
            TaskCreate(title="", project_id=project_id)
        with pytest.raises(ValueError):
            TaskCreate(title="t" * 101, project_id=project_id)
        assert TaskCreate(title="t" * 100, project_id=project_id).priority.value == "medium"

    def test_update_is_partial(self):
        update = TaskUpdate(assignee_ids=[])
        assert update.model_dump(exclude_unset=True) == {"assignee_ids": []}

    def test_board_order(self):
        assert [s.value for s in TASK_STATUS_ORDER] == [
            "todo", "in_progress", "review", "to_modify", "completed", "cancelled",
        ]


# ---------------------------------------------------------------------------
# Integration tests: visibility and CRUD
# ---------------------------------------------------------------------------


class TestTaskVisibility:
    async def test_member_sees_task_outsider_does_not(self, client, seed):
        """Admin creates project P with [U1 leader, U2] and task T for U2; U3 sees nothing."""
        admin = await seed.admin()
        u1 = await seed.user("U1")
        u2 = await seed.user("U2")
        u3 = await seed.user("U3")
        project = await seed.project(admin, members=[u1, u2], leaders=[u1])
        task = await seed.task(admin, project, assignees=[u2], title="T")

        assert task["status"] == "todo"
        assert task["assignee_ids"] == [str(u2.id)]
        assert task["project_name"] == project["name"]

        for member in (u1, u2):
            assert (await client.get(f"/api/v1/tasks/{task['id']}", headers=member.headers)).status_code == 200
            listed = (await client.get("/api/v1/tasks/", headers=member.headers)).json()
            assert [t["id"] for t in listed] == [task["id"]]

        hidden = await client.get(f"/api/v1/tasks/{task['id']}", headers=u3.headers)
        assert hidden.status_code == 404
        assert (await client.get("/api/v1/tasks/", headers=u3.headers)).json() == []

    async def test_unapproved_user_gets_no_task_data(self, client, seed):
        admin = await seed.admin()
        pending = await seed.user("Pending", approved=False)
        project = await seed.project(admin, members=[pending])
        task = await seed.task(admin, project)

        for path in ("/api/v1/tasks/", "/api/v1/tasks/board", f"/api/v1/tasks/{task['id']}"):
            resp = await client.get(path, headers=pending.headers)
            assert resp.status_code == 403, path

    async def test_only_admin_creates_edits_deletes(self, client, seed):
        admin = await seed.admin()
        dev = await seed.user("Dev")
        project = await seed.project(admin, members=[dev])
        task = await seed.task(admin, project, assignees=[dev])

        create = await client.post(
            "/api/v1/tasks/", json={"title": "x", "project_id": project["id"]}, headers=dev.headers
        )
        assert create.status_code == 403
        edit = await client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "y"}, headers=dev.headers)
        assert edit.status_code == 403
        delete = await client.delete(f"/api/v1/tasks/{task['id']}", headers=dev.headers)
        assert delete.status_code == 403

    async def test_create_in_unknown_project_is_404(self, client, seed):
        admin = await seed.admin()
        resp = await client.post(
            "/api/v1/tasks/", json={"title": "x", "project_id": str(uuid.uuid4())}, headers=admin.headers
        )
        assert resp.status_code == 404

    async def test_create_validates_dates(self, client, seed):
        admin = await seed.admin()
        project = await seed.project(admin)
        resp = await client.post(
            "/api/v1/tasks/",
            json={
                "title": "x",
                "project_id": project["id"],
                "start_date": "2026-06-10T00:00:00Z",
                "end_date": "2026-06-01T00:00:00Z",
            },
            headers=admin.headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_update_fields(self, client, seed):
        admin = await seed.admin()
        project = await seed.project(admin)
        task = await seed.task(admin, project)

        resp = await client.patch(
            f"/api/v1/tasks/{task['id']}",
            json={"title": "Better title", "priority": "urgent", "description": "details"},
            headers=admin.headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert (body["title"], body["priority"], body["description"]) == ("Better title", "urgent", "details")

    async def test_delete_task(self, client, seed):
        admin = await seed.admin()
        project = await seed.project(admin)
        task = await seed.task(admin, project)

        assert (await client.delete(f"/api/v1/tasks/{task['id']}", headers=admin.headers)).status_code == 204
        assert (await client.get(f"/api/v1/tasks/{task['id']}", headers=admin.headers)).status_code == 404

        refreshed = (await client.get(f"/api/v1/projects/{project['id']}", headers=admin.headers)).json()
        assert refreshed["task_count"] == 0


# ---------------------------------------------------------------------------
# Integration tests: status workflow
# ---------------------------------------------------------------------------


class TestTaskStatus:
    @pytest.mark.parametrize("target", [s.value for s in TaskStatus])
    async def test_any_status_reachable_from_todo(self, client, seed, target):
        admin = await seed.admin()
        dev = await seed.user("Dev")
        project = await seed.project(admin, members=[dev])
        task = await seed.task(admin, project)

        resp = await client.patch(f"/api/v1/tasks/{task['id']}/status", json={"status": target}, headers=dev.headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == target

    async def test_backwards_moves_are_allowed(self, client, seed):
        admin = await seed.admin()
        project = await seed.project(admin)
        task = await seed.task(admin, project)
        url = f"/api/v1/tasks/{task['id']}/status"

        for status in ("completed", "to_modify", "todo", "cancelled", "in_progress"):
            resp = await client.patch(url, json={"status": status}, headers=admin.headers)
            assert resp.json()["status"] == status

    async def test_same_status_is_a_no_op(self, client, seed, fake_redis):
        admin = await seed.admin()
        project = await seed.project(admin)
        task = await seed.task(admin, project)
        before = len(fake_redis.events("tasks"))

        resp = await client.patch(f"/api/v1/tasks/{task['id']}/status", json={"status": "todo"}, headers=admin.headers)
        assert resp.status_code == 200
        assert len(fake_redis.events("tasks")) == before

    async def test_status_change_is_published(self, client, seed, fake_redis):
        admin = await seed.admin()
        project = await seed.project(admin)
        task = await seed.task(admin, project)

        await client.patch(f"/api/v1/tasks/{task['id']}/status", json={"status": "review"}, headers=admin.headers)

        update = fake_redis.events("tasks")[-1]
        assert update.type.value == "UPDATE"
        assert update.record["status"] == "review"
        assert update.old_record["status"] == "todo"

    async def test_outsider_cannot_move_task(self, client, seed):
        admin = await seed.admin()
        outsider = await seed.user("Outsider")
        project = await seed.project(admin)
        task = await seed.task(admin, project)

        resp = await client.patch(
            f"/api/v1/tasks/{task['id']}/status", json={"status": "review"}, headers=outsider.headers
        )
        assert resp.status_code == 404

    async def test_invalid_status_is_rejected(self, client, seed):
        admin = await seed.admin()
        project = await seed.project(admin)
        task = await seed.task(admin, project)

        resp = await client.patch(f"/api/v1/tasks/{task['id']}/status", json={"status": "done"}, headers=admin.headers)
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Integration tests: assignments and notifications
# ---------------------------------------------------------------------------


class TestAssignments:
    async def test_create_notifies_every_assignee(self, client, seed):
        admin = await seed.admin()
        a = await seed.user("A")
        b = await seed.user("B")
        project = await seed.project(admin, members=[a, b])
        task = await seed.task(admin, project, assignees=[a, b], title="Ship it")

        for actor in (a, b):
            data = await _notifications(client, actor)
            assert len(data) == 1
            assert data[0]["type"] == "assignment"
            assert data[0]["related_type"] == "task"
            assert data[0]["related_id"] == task["id"]
            assert data[0]["message"] == 'You have been assigned to the task: "Ship it"'
            assert data[0]["read"] is False

    async def test_reassignment_notifies_only_new_assignees(self, client, seed):
        """{A, B} -> {B, C} notifies only C."""
        admin = await seed.admin()
        a = await seed.user("A")
        b = await seed.user("B")
        c = await seed.user("C")
        project = await seed.project(admin, members=[a, b, c])
        task = await seed.task(admin, project, assignees=[a, b])

        resp = await client.patch(
            f"/api/v1/tasks/{task['id']}",
            json={"assignee_ids": [str(b.id), str(c.id)]},
            headers=admin.headers,
        )
        assert resp.status_code == 200
        assert set(resp.json()["assignee_ids"]) == {str(b.id), str(c.id)}

        assert len(await _notifications(client, a)) == 1
        assert len(await _notifications(client, b)) == 1
        assert len(await _notifications(client, c)) == 1

    async def test_zero_assignees_is_valid(self, client, seed):
        admin = await seed.admin()
        a = await seed.user("A")
        project = await seed.project(admin, members=[a])
        task = await seed.task(admin, project, assignees=[a])

        resp = await client.patch(f"/api/v1/tasks/{task['id']}", json={"assignee_ids": []}, headers=admin.headers)
        assert resp.status_code == 200
        assert resp.json()["assignee_ids"] == []

    async def test_edit_without_assignees_keeps_them(self, client, seed):
        admin = await seed.admin()
        a = await seed.user("A")
        project = await seed.project(admin, members=[a])
        task = await seed.task(admin, project, assignees=[a])

        resp = await client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "Renamed"}, headers=admin.headers)
        assert resp.json()["assignee_ids"] == [str(a.id)]
        assert len(await _notifications(client, a)) == 1

    async def test_failed_reassignment_changes_nothing(self, client, seed):
        """Delete-old/insert-new run in one transaction."""
        admin = await seed.admin()
        a = await seed.user("A")
        project = await seed.project(admin, members=[a])
        task = await seed.task(admin, project, assignees=[a])

        resp = await client.patch(
            f"/api/v1/tasks/{task['id']}",
            json={"assignee_ids": [str(uuid.uuid4())]},
            headers=admin.headers,
        )
        assert resp.status_code == 422

        current = (await client.get(f"/api/v1/tasks/{task['id']}", headers=admin.headers)).json()
        assert current["assignee_ids"] == [str(a.id)]

    async def test_duplicate_assignees_are_collapsed(self, client, seed):
        admin = await seed.admin()
        a = await seed.user("A")
        project = await seed.project(admin, members=[a])
        task = await seed.task(admin, project, assignees=[a, a])

        assert task["assignee_ids"] == [str(a.id)]
        assert len(await _notifications(client, a)) == 1


# ---------------------------------------------------------------------------
# Integration tests: filters and board
# ---------------------------------------------------------------------------


class TestTaskQueries:
    async def test_filters(self, client, seed):
        admin = await seed.admin()
        a = await seed.user("A")
        p1 = await seed.project(admin, members=[a], name="P1")
        p2 = await seed.project(admin, name="P2")
        t1 = await seed.task(admin, p1, assignees=[a], title="Fix login bug", priority="high")
        t2 = await seed.task(admin, p1, title="Write docs", description="Mention the LOGIN flow")
        t3 = await seed.task(admin, p2, title="Other project")

        async def ids(query):
            resp = await client.get(f"/api/v1/tasks/{query}", headers=admin.headers)
            return {t["id"] for t in resp.json()}

        assert await ids(f"?project_id={p1['id']}") == {t1["id"], t2["id"]}
        assert await ids("?priority=high") == {t1["id"]}
        assert await ids(f"?assignee_id={a.id}") == {t1["id"]}
        assert await ids("?q=login") == {t1["id"], t2["id"]}
        assert await ids("?q=OTHER") == {t3["id"]}

        await client.patch(f"/api/v1/tasks/{t2['id']}/status", json={"status": "review"}, headers=admin.headers)
        assert await ids("?status=review") == {t2["id"]}

    async def test_newest_first(self, client, seed):
        admin = await seed.admin()
        project = await seed.project(admin)
        first = await seed.task(admin, project, title="first")
        second = await seed.task(admin, project, title="second")

        listed = (await client.get("/api/v1/tasks/", headers=admin.headers)).json()
        assert [t["id"] for t in listed] == [second["id"], first["id"]]

    async def test_board_groups_by_status(self, client, seed):
        admin = await seed.admin()
        dev = await seed.user("Dev")
        project = await seed.project(admin, members=[dev])
        other = await seed.project(admin, name="Hidden")
        t1 = await seed.task(admin, project, title="one")
        t2 = await seed.task(admin, project, title="two")
        await seed.task(admin, other, title="invisible")
        await client.patch(f"/api/v1/tasks/{t2['id']}/status", json={"status": "completed"}, headers=dev.headers)

        board = (await client.get("/api/v1/tasks/board", headers=dev.headers)).json()
        columns = {c["status"]: [t["id"] for t in c["tasks"]] for c in board["columns"]}

        assert [c["status"] for c in board["columns"]] == [s.value for s in TASK_STATUS_ORDER]
        assert columns["todo"] == [t1["id"]]
        assert columns["completed"] == [t2["id"]]
        assert sum(len(v) for v in columns.values()) == 2

    async def test_board_for_hidden_project_is_404(self, client, seed):
        admin = await seed.admin()
        dev = await seed.user("Dev")
        project = await seed.project(admin)

        resp = await client.get(f"/api/v1/tasks/board?project_id={project['id']}", headers=dev.headers)
        assert resp.status_code == 404
