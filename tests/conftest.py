"""Shared pytest fixtures for backend tests."""

import asyncio
import os
import sys
from typing import Any, AsyncGenerator, Optional
from uuid import uuid4

# Settings are read at import time; configure them before importing app modules
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-unit-tests-only")
os.environ.setdefault("DB_WARMUP_ON_STARTUP", "false")

# Add app to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import bcrypt
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import build_engine, build_session_maker, create_schema, drop_schema, get_db
from app.main import create_app
from app.models import Comment, Notification, Project, Task, User
from app.schemas.user import Identity, UserRole
from app.services.auth_service import create_token_for_user, verify_token
from app.websocket import room_auth
from app.websocket.lifecycle import ConnectionLifecycle
from app.websocket.manager import ConnectionManager, WebSocketConnection
from app.websocket.registry import SessionRegistry


def get_test_password_hash(password: str) -> str:
    """
    Generate a password hash for testing.

    Uses bcrypt directly to avoid passlib version detection issues.
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


TEST_PASSWORD = "TestPassword123!"

# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def engine():
    """Create a test database engine with SQLite."""
    engine = build_engine(SQLALCHEMY_DATABASE_URL, echo=False)
    await create_schema(engine)

    yield engine

    await drop_schema(engine)
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker:
    return build_session_maker(engine)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session


# ============================================================================
# Application
# ============================================================================


@pytest.fixture
def app(db_session: AsyncSession, session_maker, monkeypatch) -> FastAPI:
    """A fresh application with isolated real-time state, bound to the test database."""
    application = create_app()

    async def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(room_auth, "session_factory", session_maker)
    room_auth.clear_cache()
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client for the application."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
def ws_manager(app: FastAPI) -> ConnectionManager:
    """The connection manager the application publishes through."""
    return app.state.ws_manager


# ============================================================================
# Users
# ============================================================================


async def _create_user(db: AsyncSession, name: str, email: str, role: str) -> User:
    user = User(
        id=uuid4(),
        name=name,
        email=email,
        password_hash=get_test_password_hash(TEST_PASSWORD),
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Ada Admin", "admin@example.com", "admin")


@pytest_asyncio.fixture
async def manager_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Max Manager", "manager@example.com", "manager")


@pytest_asyncio.fixture
async def employee_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Eve Employee", "employee@example.com", "employee")


@pytest_asyncio.fixture
async def other_employee(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Oscar Other", "other@example.com", "employee")


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_token_for_user(user)}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return _headers(admin_user)


@pytest.fixture
def manager_headers(manager_user: User) -> dict:
    return _headers(manager_user)


@pytest.fixture
def employee_headers(employee_user: User) -> dict:
    return _headers(employee_user)


@pytest.fixture
def other_headers(other_employee: User) -> dict:
    return _headers(other_employee)


# ============================================================================
# Domain data
# ============================================================================


@pytest_asyncio.fixture
async def test_project(db_session: AsyncSession, manager_user: User, employee_user: User) -> Project:
    """A project created by the manager with the employee as a member."""
    project = Project(
        id=uuid4(),
        title="Website Redesign",
        description="Refresh the marketing site",
        status="active",
        created_by=manager_user.id,
    )
    project.members.append(manager_user)
    project.members.append(employee_user)
    db_session.add(project)
    await db_session.commit()
    await db_session.refresh(project)
    return project


@pytest_asyncio.fixture
async def test_task(db_session: AsyncSession, test_project: Project, manager_user: User, employee_user: User) -> Task:
    """A task in the test project assigned to the employee."""
    task = Task(
        id=uuid4(),
        project_id=test_project.id,
        title="Build landing page",
        description="Hero, pricing and footer",
        status="todo",
        priority="high",
        created_by=manager_user.id,
        assignee_id=employee_user.id,
    )
    db_session.add(task)
    await db_session.commit()
    await db_session.refresh(task)
    return task


@pytest_asyncio.fixture
async def test_comment(db_session: AsyncSession, test_task: Task, employee_user: User) -> Comment:
    comment = Comment(
        id=uuid4(),
        task_id=test_task.id,
        author_id=employee_user.id,
        content="Started on the hero section",
    )
    db_session.add(comment)
    await db_session.commit()
    await db_session.refresh(comment)
    return comment


@pytest_asyncio.fixture
async def test_notification(db_session: AsyncSession, employee_user: User, test_task: Task) -> Notification:
    notification = Notification(
        id=uuid4(),
        message='You have been assigned to task: "Build landing page"',
        type="task_assigned",
        recipient_id=employee_user.id,
        related_task_id=test_task.id,
        related_project_id=test_task.project_id,
        is_read=False,
    )
    db_session.add(notification)
    await db_session.commit()
    await db_session.refresh(notification)
    return notification


# ============================================================================
# Real-time
# ============================================================================


class FakeWebSocket:
    """In-memory stand-in for a Starlette WebSocket."""

    def __init__(self) -> None:
        self.accepted = False
        self.closed: Optional[tuple[int, Optional[str]]] = None
        self.sent: list[dict[str, Any]] = []
        self.fail_sends = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, message: dict[str, Any]) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is closed")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = (code, reason)

    async def receive_text(self) -> str:
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    def feed(self, item) -> None:
        """Queue a text frame (or an exception to raise) for ``receive_text``."""
        self._incoming.put_nowait(item)

    def events(self, event_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == event_type]


@pytest.fixture
def make_ws():
    return FakeWebSocket


@pytest_asyncio.fixture
async def lifecycle() -> AsyncGenerator[ConnectionLifecycle, None]:
    """An isolated lifecycle whose heartbeat never fires during a test."""
    lc = ConnectionLifecycle(
        registry=SessionRegistry(),
        manager=ConnectionManager(),
        verifier=verify_token,
        heartbeat_interval=3600,
    )
    yield lc
    await lc.shutdown()


async def subscribe(manager: ConnectionManager, topic: str, user_id=None) -> FakeWebSocket:
    """Attach a fake socket to ``topic`` on ``manager`` and return it."""
    ws = FakeWebSocket()
    connection = WebSocketConnection(
        websocket=ws,
        identity=Identity(user_id=user_id or uuid4(), name="Watcher", role=UserRole.EMPLOYEE),
    )
    await manager.add_connection(connection)
    await manager.join(connection.connection_id, topic)
    return ws
