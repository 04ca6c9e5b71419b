"""
Tests for project endpoints and project topic authorization.
"""

from uuid import uuid4

import pytest

from app.schemas.user import Identity, UserRole
from app.services.auth_service import create_token_for_user
from app.websocket.room_auth import check_room_access

from conftest import FakeWebSocket


def identity_of(user) -> Identity:
    return Identity(user_id=user.id, name=user.name, role=UserRole(user.role))


@pytest.mark.asyncio
class TestCreateProject:
    async def test_creator_becomes_member(self, client, manager_headers, manager_user):
        response = await client.post(
            "/api/projects",
            headers=manager_headers,
            json={"title": "Mobile App", "priority": "high"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "planning"
        assert data["created_by"] == str(manager_user.id)
        assert data["member_count"] == 1
        assert data["members"][0]["id"] == str(manager_user.id)
        assert data["project_number"] == 1

    async def test_employee_cannot_create(self, client, employee_headers):
        response = await client.post("/api/projects", headers=employee_headers, json={"title": "Nope"})
        assert response.status_code == 403


@pytest.mark.asyncio
class TestReadProjects:
    async def test_members_see_their_projects(
        self, client, employee_headers, other_headers, admin_headers, test_project
    ):
        response = await client.get("/api/projects", headers=employee_headers)
        assert response.json()["total"] == 1

        response = await client.get("/api/projects", headers=other_headers)
        assert response.json()["total"] == 0

        response = await client.get("/api/projects", headers=admin_headers)
        assert response.json()["total"] == 1

    async def test_status_filter(self, client, manager_headers, test_project):
        response = await client.get("/api/projects", headers=manager_headers, params={"status": "active"})
        assert response.json()["total"] == 1

        response = await client.get("/api/projects", headers=manager_headers, params={"status": "completed"})
        assert response.json()["total"] == 0

    async def test_outsider_cannot_get_project(self, client, other_headers, test_project):
        response = await client.get(f"/api/projects/{test_project.id}", headers=other_headers)
        assert response.status_code == 403

    async def test_missing_project(self, client, admin_headers):
        response = await client.get(f"/api/projects/{uuid4()}", headers=admin_headers)
        assert response.status_code == 404


@pytest.mark.asyncio
class TestUpdateAndDelete:
    async def test_update(self, client, manager_headers, test_project):
        response = await client.put(
            f"/api/projects/{test_project.id}",
            headers=manager_headers,
            json={"status": "on-hold"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "on-hold"
        assert response.json()["title"] == test_project.title

    async def test_only_admin_deletes(self, client, manager_headers, admin_headers, test_project):
        response = await client.delete(f"/api/projects/{test_project.id}", headers=manager_headers)
        assert response.status_code == 403

        response = await client.delete(f"/api/projects/{test_project.id}", headers=admin_headers)
        assert response.status_code == 204

        response = await client.get(f"/api/projects/{test_project.id}", headers=admin_headers)
        assert response.status_code == 404


@pytest.mark.asyncio
class TestMembership:
    async def test_add_member_is_idempotent(self, client, manager_headers, test_project, other_employee):
        for _ in range(2):
            response = await client.post(
                f"/api/projects/{test_project.id}/members",
                headers=manager_headers,
                json={"user_id": str(other_employee.id)},
            )
            assert response.status_code == 200
            assert response.json()["member_count"] == 3

    async def test_add_unknown_user(self, client, manager_headers, test_project):
        response = await client.post(
            f"/api/projects/{test_project.id}/members",
            headers=manager_headers,
            json={"user_id": str(uuid4())},
        )
        assert response.status_code == 404

    async def test_remove_member(self, client, manager_headers, test_project, employee_user):
        response = await client.delete(
            f"/api/projects/{test_project.id}/members/{employee_user.id}", headers=manager_headers
        )
        assert response.status_code == 200
        assert response.json()["member_count"] == 1

    async def test_removed_member_leaves_project_topic(
        self, app, client, manager_headers, test_project, employee_user
    ):
        lifecycle = app.state.ws_lifecycle
        topic = f"project:{test_project.id}"
        ws = FakeWebSocket()
        connection = await lifecycle.handshake(ws, create_token_for_user(employee_user))
        assert await lifecycle.join(connection, topic) is True

        response = await client.delete(
            f"/api/projects/{test_project.id}/members/{employee_user.id}", headers=manager_headers
        )

        assert response.status_code == 200
        assert app.state.ws_manager.is_subscribed(connection.connection_id, topic) is False
        assert ws.closed is None
        assert await lifecycle.join(connection, topic) is False

    async def test_creator_cannot_be_removed(self, client, manager_headers, test_project, manager_user):
        response = await client.delete(
            f"/api/projects/{test_project.id}/members/{manager_user.id}", headers=manager_headers
        )
        assert response.status_code == 400


@pytest.mark.asyncio
class TestRoomAccess:
    """Tests for check_room_access, which guards topic joins."""

    async def test_own_user_topic_only(self, app, employee_user, other_employee):
        identity = identity_of(employee_user)

        assert await check_room_access(identity, f"user:{employee_user.id}") is True
        assert await check_room_access(identity, f"user:{other_employee.id}") is False

    async def test_project_topic_requires_membership(self, app, test_project, employee_user, other_employee):
        topic = f"project:{test_project.id}"

        assert await check_room_access(identity_of(employee_user), topic) is True
        assert await check_room_access(identity_of(other_employee), topic) is False

    async def test_admin_joins_any_project(self, app, admin_user):
        assert await check_room_access(identity_of(admin_user), f"project:{uuid4()}") is True

    async def test_invalid_topic(self, app, employee_user):
        identity = identity_of(employee_user)
        assert await check_room_access(identity, "project:not-a-uuid") is False
        assert await check_room_access(identity, "team:123") is False

    async def test_new_member_is_not_stuck_with_cached_denial(
        self, app, client, manager_headers, test_project, other_employee
    ):
        topic = f"project:{test_project.id}"
        assert await check_room_access(identity_of(other_employee), topic) is False

        await client.post(
            f"/api/projects/{test_project.id}/members",
            headers=manager_headers,
            json={"user_id": str(other_employee.id)},
        )

        assert await check_room_access(identity_of(other_employee), topic) is True
