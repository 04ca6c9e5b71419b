"""Tests for the notification endpoints."""

from uuid import uuid4

import pytest

from app.models import Notification
from app.websocket.messages import user_topic

from conftest import subscribe


@pytest.mark.asyncio
class TestListNotifications:
    async def test_only_own_notifications(
        self, client, employee_headers, other_headers, test_notification
    ):
        response = await client.get("/api/notifications", headers=employee_headers)

        assert response.status_code == 200
        assert [n["id"] for n in response.json()] == [str(test_notification.id)]

        response = await client.get("/api/notifications", headers=other_headers)
        assert response.json() == []

    async def test_unread_only_and_limit(
        self, client, db_session, employee_headers, employee_user, test_notification
    ):
        for i in range(3):
            db_session.add(Notification(
                message=f"Old news {i}",
                type="task_assigned",
                recipient_id=employee_user.id,
                is_read=True,
            ))
        await db_session.commit()

        response = await client.get(
            "/api/notifications", headers=employee_headers, params={"unread_only": True}
        )
        assert [n["id"] for n in response.json()] == [str(test_notification.id)]

        response = await client.get("/api/notifications", headers=employee_headers, params={"limit": 2})
        assert len(response.json()) == 2

    async def test_count(self, client, employee_headers, test_notification):
        response = await client.get("/api/notifications/count", headers=employee_headers)

        assert response.status_code == 200
        assert response.json() == {"total": 1, "unread": 1}

    async def test_requires_authentication(self, client):
        response = await client.get("/api/notifications")
        assert response.status_code == 401


@pytest.mark.asyncio
class TestMarkRead:
    async def test_mark_read_syncs_other_sessions(
        self, client, ws_manager, employee_headers, employee_user, test_notification
    ):
        other_tab = await subscribe(ws_manager, user_topic(employee_user.id), employee_user.id)

        response = await client.patch(
            f"/api/notifications/{test_notification.id}/read", headers=employee_headers
        )

        assert response.status_code == 200
        assert response.json()["is_read"] is True
        assert other_tab.events("notification:read") == [{
            "type": "notification:read",
            "data": {"notification_id": str(test_notification.id)},
        }]

    async def test_cannot_read_someone_elses(self, client, other_headers, test_notification):
        response = await client.patch(
            f"/api/notifications/{test_notification.id}/read", headers=other_headers
        )
        assert response.status_code == 404

    async def test_unknown_notification(self, client, employee_headers):
        response = await client.patch(f"/api/notifications/{uuid4()}/read", headers=employee_headers)
        assert response.status_code == 404

    async def test_mark_all_read(self, client, db_session, employee_headers, employee_user, test_notification):
        db_session.add(Notification(
            message="Another",
            type="task_assigned",
            recipient_id=employee_user.id,
        ))
        await db_session.commit()

        response = await client.patch("/api/notifications/read-all", headers=employee_headers)

        assert response.status_code == 200
        assert response.json() == {"updated": 2}

        response = await client.get("/api/notifications/count", headers=employee_headers)
        assert response.json() == {"total": 2, "unread": 0}
