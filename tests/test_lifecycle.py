"""
Tests for the per-connection lifecycle.

Covers the handshake (accept, reject, per-user limit), inbound dispatch,
typing indicators, presence broadcasts, heartbeat, idle timeout and
teardown. Sockets are in-memory fakes; no server is started.
"""

import asyncio
import json
from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import WebSocketDisconnect
from jose import jwt

from app.config import settings
from app.schemas.user import Identity, UserRole
from app.services.auth_service import create_access_token, verify_token
from app.websocket.lifecycle import (
    CLOSE_GOING_AWAY,
    CLOSE_IDLE_TIMEOUT,
    CLOSE_NORMAL,
    CLOSE_TOO_MANY_CONNECTIONS,
    CLOSE_UNAUTHENTICATED,
    ConnectionLifecycle,
    ConnectionState,
)
from app.websocket.manager import ConnectionManager
from app.websocket.registry import SessionRegistry


def make_token(name: str = "Alice", user_id=None, role: str = "employee", **kwargs) -> str:
    return create_access_token(
        {"sub": str(user_id or uuid4()), "name": name, "role": role},
        **kwargs,
    )


@pytest_asyncio.fixture
async def build_lifecycle():
    """Factory for lifecycles with custom limits; all are shut down afterwards."""
    built = []

    def _build(**kwargs) -> ConnectionLifecycle:
        kwargs.setdefault("heartbeat_interval", 3600)
        lc = ConnectionLifecycle(
            registry=SessionRegistry(),
            manager=ConnectionManager(),
            verifier=verify_token,
            **kwargs,
        )
        built.append(lc)
        return lc

    yield _build
    for lc in built:
        await lc.shutdown()


class TestHandshake:
    """Tests for accepting and rejecting connections."""

    @pytest.mark.asyncio
    async def test_missing_token_is_rejected(self, lifecycle, make_ws):
        ws = make_ws()

        connection = await lifecycle.handshake(ws, None)

        assert connection is None
        assert ws.closed == (CLOSE_UNAUTHENTICATED, "Authentication required")
        assert not ws.accepted
        assert len(lifecycle.registry) == 0

    @pytest.mark.asyncio
    async def test_garbage_token_is_rejected(self, lifecycle, make_ws):
        ws = make_ws()

        assert await lifecycle.handshake(ws, "not-a-jwt") is None
        assert ws.closed == (CLOSE_UNAUTHENTICATED, "Invalid token")

    @pytest.mark.asyncio
    async def test_expired_token_is_rejected(self, lifecycle, make_ws):
        ws = make_ws()
        token = make_token(expires_delta=timedelta(seconds=-5))

        assert await lifecycle.handshake(ws, token) is None
        assert ws.closed == (CLOSE_UNAUTHENTICATED, "Token expired")
        assert len(lifecycle.registry) == 0

    @pytest.mark.asyncio
    async def test_wrong_signature_is_rejected(self, lifecycle, make_ws):
        ws = make_ws()
        token = jwt.encode({"sub": str(uuid4()), "name": "Mallory"}, "another-secret", algorithm=settings.jwt_algorithm)

        assert await lifecycle.handshake(ws, token) is None
        assert ws.closed == (CLOSE_UNAUTHENTICATED, "Invalid token signature")

    @pytest.mark.asyncio
    async def test_valid_token_activates_connection(self, lifecycle, make_ws):
        user_id = uuid4()
        ws = make_ws()

        connection = await lifecycle.handshake(ws, make_token("Alice", user_id))

        assert connection is not None
        assert ws.accepted
        assert ws.closed is None
        assert lifecycle.state(connection.connection_id) is ConnectionState.ACTIVE
        assert lifecycle.registry.get(connection.connection_id).user_id == user_id

        assert ws.sent[0] == {
            "type": "connected",
            "data": {
                "connection_id": connection.connection_id,
                "user_id": str(user_id),
                "name": "Alice",
            },
        }
        assert ws.sent[1] == {
            "type": "onlineUsers",
            "data": {"users": [{"user_id": str(user_id), "name": "Alice"}]},
        }

    @pytest.mark.asyncio
    async def test_bearer_prefix_is_accepted(self, lifecycle, make_ws):
        ws = make_ws()

        connection = await lifecycle.handshake(ws, f"Bearer {make_token()}")

        assert connection is not None
        assert ws.accepted

    @pytest.mark.asyncio
    async def test_connection_limit(self, build_lifecycle, make_ws):
        """A user over the per-user limit is closed with 4029."""
        lc = build_lifecycle(max_connections_per_user=1)
        token = make_token("Alice", uuid4())

        first = await lc.handshake(make_ws(), token)
        second_ws = make_ws()
        second = await lc.handshake(second_ws, token)

        assert first is not None
        assert second is None
        assert second_ws.closed == (CLOSE_TOO_MANY_CONNECTIONS, "Too many connections")
        assert len(lc.registry) == 1


class TestDispatch:
    """Tests for routing inbound messages."""

    @pytest.mark.asyncio
    async def test_join_and_leave_project(self, lifecycle, make_ws):
        connection = await lifecycle.handshake(make_ws(), make_token())
        project_id = str(uuid4())

        await lifecycle.dispatch(connection, {"type": "join:project", "data": {"project_id": project_id}})
        assert lifecycle.manager.is_subscribed(connection.connection_id, f"project:{project_id}")

        await lifecycle.dispatch(connection, {"type": "leave:project", "data": {"project_id": project_id}})
        assert not lifecycle.manager.is_subscribed(connection.connection_id, f"project:{project_id}")

    @pytest.mark.asyncio
    async def test_malformed_message_keeps_connection_active(self, lifecycle, make_ws):
        ws = make_ws()
        connection = await lifecycle.handshake(ws, make_token())

        await lifecycle.dispatch(connection, {"type": "explode"})
        await lifecycle.dispatch(connection, {"type": "join:project", "data": {}})

        errors = ws.events("error")
        assert len(errors) == 2
        assert all(e["data"]["error"] == "INVALID_MESSAGE" for e in errors)
        assert lifecycle.state(connection.connection_id) is ConnectionState.ACTIVE

    @pytest.mark.asyncio
    async def test_forbidden_join(self, build_lifecycle, make_ws):
        async def deny(identity, topic):
            return False

        lc = build_lifecycle(room_authorizer=deny)
        ws = make_ws()
        connection = await lc.handshake(ws, make_token())

        await lc.dispatch(connection, {"type": "join:project", "data": {"project_id": "p1"}})

        assert not lc.manager.is_subscribed(connection.connection_id, "project:p1")
        assert ws.events("error")[-1]["data"]["error"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_pong_records_heartbeat(self, lifecycle, make_ws):
        connection = await lifecycle.handshake(make_ws(), make_token())
        assert connection.last_heartbeat is None

        await lifecycle.dispatch(connection, {"type": "pong", "data": {"timestamp": 1700000000000}})

        assert connection.last_heartbeat is not None

    @pytest.mark.asyncio
    async def test_messages_after_close_are_dropped(self, lifecycle, make_ws):
        ws = make_ws()
        connection = await lifecycle.handshake(ws, make_token())
        await lifecycle.close(connection)
        sent_before = len(ws.sent)

        await lifecycle.dispatch(connection, {"type": "explode"})

        assert len(ws.sent) == sent_before


class TestTyping:
    """Typing indicators go to everyone in the topic except the sender."""

    @pytest.mark.asyncio
    async def test_typing_excludes_sender(self, lifecycle, make_ws):
        ws_a, ws_b = make_ws(), make_ws()
        a = await lifecycle.handshake(ws_a, make_token("Alice"))
        b = await lifecycle.handshake(ws_b, make_token("Bob"))
        for conn in (a, b):
            await lifecycle.dispatch(conn, {"type": "join:project", "data": {"project_id": "P"}})

        await lifecycle.dispatch(a, {"type": "startTyping", "data": {"topic": "project:P"}})
        await lifecycle.dispatch(a, {"type": "stopTyping", "data": {"topic": "project:P"}})

        assert ws_a.events("userTyping") == []
        assert ws_b.events("userTyping") == [{
            "type": "userTyping",
            "data": {"user_id": str(a.user_id), "name": "Alice", "topic": "project:P"},
        }]
        assert ws_b.events("userStoppedTyping")[0]["data"] == {
            "user_id": str(a.user_id),
            "topic": "project:P",
        }

    @pytest.mark.asyncio
    async def test_typing_not_seen_outside_topic(self, lifecycle, make_ws):
        ws_a, ws_c = make_ws(), make_ws()
        a = await lifecycle.handshake(ws_a, make_token("Alice"))
        await lifecycle.handshake(ws_c, make_token("Carol"))
        await lifecycle.dispatch(a, {"type": "join:project", "data": {"project_id": "P"}})

        await lifecycle.dispatch(a, {"type": "startTyping", "data": {"topic": "project:P"}})

        assert ws_c.events("userTyping") == []

    @pytest.mark.asyncio
    async def test_typing_requires_subscription(self, lifecycle, make_ws):
        ws_a, ws_b = make_ws(), make_ws()
        a = await lifecycle.handshake(ws_a, make_token("Alice"))
        b = await lifecycle.handshake(ws_b, make_token("Bob"))
        await lifecycle.dispatch(b, {"type": "join:project", "data": {"project_id": "P"}})

        await lifecycle.dispatch(a, {"type": "startTyping", "data": {"topic": "project:P"}})
        await lifecycle.dispatch(a, {"type": "stopTyping", "data": {"topic": "project:P"}})

        assert ws_b.events("userTyping") == []
        assert ws_b.events("userStoppedTyping") == []
        assert [e["data"]["error"] for e in ws_a.events("error")] == ["FORBIDDEN", "FORBIDDEN"]

    @pytest.mark.asyncio
    async def test_typing_cannot_reach_another_users_topic(self, lifecycle, make_ws):
        ws_a, ws_b = make_ws(), make_ws()
        a = await lifecycle.handshake(ws_a, make_token("Alice"))
        b = await lifecycle.handshake(ws_b, make_token("Bob"))
        await lifecycle.dispatch(b, {"type": "join:user", "data": {"user_id": str(b.user_id)}})

        await lifecycle.dispatch(a, {"type": "startTyping", "data": {"topic": f"user:{b.user_id}"}})

        assert ws_b.events("userTyping") == []


class TestAccountCheck:
    """The optional identity loader replaces token claims with the stored account."""

    @pytest.mark.asyncio
    async def test_missing_account_is_rejected(self, build_lifecycle, make_ws):
        async def no_account(identity):
            return None

        lc = build_lifecycle(identity_loader=no_account)
        ws = make_ws()

        connection = await lc.handshake(ws, make_token("Alice"))

        assert connection is None
        assert ws.closed == (CLOSE_UNAUTHENTICATED, "Account disabled")
        assert not ws.accepted
        assert len(lc.registry) == 0

    @pytest.mark.asyncio
    async def test_stored_role_and_name_win_over_token(self, build_lifecycle, make_ws):
        async def demoted(identity):
            return Identity(user_id=identity.user_id, name="Alice B.", role=UserRole.EMPLOYEE)

        lc = build_lifecycle(identity_loader=demoted)
        ws = make_ws()

        connection = await lc.handshake(ws, make_token("Alice", role="admin"))

        assert connection.identity.role == UserRole.EMPLOYEE
        assert ws.events("connected")[0]["data"]["name"] == "Alice B."


class TestEviction:
    @pytest.mark.asyncio
    async def test_evict_from_topic_unsubscribes_every_session(self, lifecycle, make_ws):
        user_id = uuid4()
        tabs = [await lifecycle.handshake(make_ws(), make_token("Alice", user_id=user_id)) for _ in range(2)]
        for conn in tabs:
            await lifecycle.dispatch(conn, {"type": "join:project", "data": {"project_id": "P"}})
            await lifecycle.dispatch(conn, {"type": "join:project", "data": {"project_id": "Q"}})

        evicted = await lifecycle.evict_from_topic(user_id, "project:P")

        assert evicted == 2
        assert lifecycle.manager.get_room_count("project:P") == 0
        assert lifecycle.manager.get_room_count("project:Q") == 2
        assert all(lifecycle.state(c.connection_id) is ConnectionState.ACTIVE for c in tabs)

    @pytest.mark.asyncio
    async def test_evict_without_sessions_is_a_no_op(self, lifecycle):
        assert await lifecycle.evict_from_topic(uuid4(), "project:P") == 0


class TestPresence:
    """Tests for onlineUsers broadcasts and teardown."""

    @pytest.mark.asyncio
    async def test_disconnect_broadcasts_online_users(self, lifecycle, make_ws):
        ws_a, ws_b = make_ws(), make_ws()
        a = await lifecycle.handshake(ws_a, make_token("Alice"))
        b = await lifecycle.handshake(ws_b, make_token("Bob"))

        assert {u["name"] for u in ws_a.events("onlineUsers")[-1]["data"]["users"]} == {"Alice", "Bob"}

        await lifecycle.close(b, reason="client disconnect")

        latest = ws_a.events("onlineUsers")[-1]["data"]["users"]
        assert latest == [{"user_id": str(a.user_id), "name": "Alice"}]
        assert b.connection_id not in lifecycle.registry
        assert lifecycle.manager.get_connection(b.connection_id) is None

    @pytest.mark.asyncio
    async def test_online_users_are_deduplicated(self, lifecycle, make_ws):
        user_id = uuid4()
        token = make_token("Alice", user_id)
        await lifecycle.handshake(make_ws(), token)
        await lifecycle.handshake(make_ws(), token)

        assert len(lifecycle.registry) == 2
        assert lifecycle.online_users() == [{"user_id": str(user_id), "name": "Alice"}]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, lifecycle, make_ws):
        ws = make_ws()
        connection = await lifecycle.handshake(ws, make_token())
        await lifecycle.dispatch(connection, {"type": "join:project", "data": {"project_id": "P"}})

        assert await lifecycle.close(connection) is True
        assert await lifecycle.close(connection) is False

        assert lifecycle.state(connection.connection_id) is ConnectionState.CLOSED
        assert len(lifecycle.registry) == 0
        assert lifecycle.manager.get_room_count("project:P") == 0
        assert ws.closed is None

    @pytest.mark.asyncio
    async def test_close_user_closes_every_session(self, lifecycle, make_ws):
        user_id = uuid4()
        token = make_token("Alice", user_id)
        tabs = [make_ws(), make_ws()]
        for ws in tabs:
            await lifecycle.handshake(ws, token)
        bystander = make_ws()
        await lifecycle.handshake(bystander, make_token("Bob"))

        closed = await lifecycle.close_user(user_id)

        assert closed == 2
        assert all(ws.closed == (CLOSE_NORMAL, "logout") for ws in tabs)
        assert bystander.closed is None
        assert lifecycle.registry.connections_for_user(user_id) == set()

    @pytest.mark.asyncio
    async def test_shutdown_closes_everything(self, lifecycle, make_ws):
        sockets = [make_ws(), make_ws()]
        for ws in sockets:
            await lifecycle.handshake(ws, make_token())

        await lifecycle.shutdown()

        assert all(ws.closed[0] == CLOSE_GOING_AWAY for ws in sockets)
        assert len(lifecycle.registry) == 0
        assert lifecycle.manager.total_connections == 0


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_ping_is_sent_periodically(self, build_lifecycle, make_ws):
        lc = build_lifecycle(heartbeat_interval=0.01)
        ws = make_ws()
        await lc.handshake(ws, make_token())

        await asyncio.sleep(0.05)

        pings = ws.events("ping")
        assert len(pings) >= 2
        assert isinstance(pings[0]["data"]["timestamp"], int)

    @pytest.mark.asyncio
    async def test_heartbeat_stops_when_send_fails(self, build_lifecycle, make_ws):
        lc = build_lifecycle(heartbeat_interval=0.01)
        ws = make_ws()
        connection = await lc.handshake(ws, make_token())
        ws.fail_sends = True

        await asyncio.sleep(0.05)

        assert lc._heartbeats[connection.connection_id].done()


class TestReceiveLoop:
    """Tests for ConnectionLifecycle.run."""

    @pytest.mark.asyncio
    async def test_rejected_handshake_returns_immediately(self, lifecycle, make_ws):
        ws = make_ws()

        await lifecycle.run(ws, None)

        assert ws.closed[0] == CLOSE_UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_frames_are_dispatched_until_disconnect(self, lifecycle, make_ws):
        ws = make_ws()
        ws.feed(json.dumps({"type": "join:project", "data": {"project_id": "P"}}))
        ws.feed(WebSocketDisconnect(code=1000))

        await lifecycle.run(ws, make_token())

        assert len(lifecycle.registry) == 0
        assert lifecycle.manager.total_rooms == 0
        assert ws.events("error") == []
        assert ws.closed is None

    @pytest.mark.asyncio
    async def test_invalid_json_and_oversized_frames(self, build_lifecycle, make_ws):
        lc = build_lifecycle(max_message_size=64)
        ws = make_ws()
        ws.feed("{not json")
        ws.feed("x" * 65)
        ws.feed(WebSocketDisconnect(code=1000))

        await lc.run(ws, make_token())

        assert [e["data"]["error"] for e in ws.events("error")] == ["INVALID_JSON", "MESSAGE_TOO_LARGE"]

    @pytest.mark.asyncio
    async def test_idle_connection_is_closed(self, build_lifecycle, make_ws):
        lc = build_lifecycle(idle_timeout=0.05)
        ws = make_ws()

        await lc.run(ws, make_token())

        assert ws.closed == (CLOSE_IDLE_TIMEOUT, "idle timeout")
        assert len(lc.registry) == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_still_cleans_up(self, lifecycle, make_ws):
        ws = make_ws()
        ws.feed(RuntimeError("transport exploded"))

        await lifecycle.run(ws, make_token())

        assert len(lifecycle.registry) == 0
        assert lifecycle.manager.total_connections == 0
