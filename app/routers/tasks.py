"""Tasks CRUD API endpoints.

All endpoints require authentication.

Access Control:
- Create/Update/Assign tasks: admins and managers
- List tasks: employees only see tasks assigned to them
- Change status: admins, managers, and the assignee

Status changes broadcast ``task:updated`` to ``project:<id>``; assignment
stores a notification and pushes it to ``user:<assignee>``.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.user import User
from ..schemas.common import Page, page_count
from ..schemas.task import (
    TaskAssign,
    TaskCreate,
    TaskPriority,
    TaskResponse,
    TaskStatus,
    TaskStatusUpdate,
    TaskUpdate,
)
from ..schemas.user import UserRole
from ..services import task_service
from ..services.auth_service import get_current_user, require_roles
from ..websocket.manager import ConnectionManager, get_connection_manager

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])

manager_roles = require_roles(UserRole.ADMIN, UserRole.MANAGER)


@router.post(
    "",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a task",
    responses={
        201: {"description": "Task created"},
        403: {"description": "Only admins and managers can create tasks"},
        404: {"description": "Project or assignee not found"},
    },
)
async def create_task(
    task_data: TaskCreate,
    current_user: User = Depends(manager_roles),
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    return await task_service.create_task(db, task_data, current_user)


@router.get(
    "",
    response_model=Page[TaskResponse],
    summary="List tasks",
)
async def list_tasks(
    project: Optional[UUID] = Query(None, description="Filter by project"),
    status_filter: Optional[TaskStatus] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[TaskPriority] = Query(None, description="Filter by priority"),
    assigned_to: Optional[UUID] = Query(None, description="Filter by assignee (ignored for employees)"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Page[TaskResponse]:
    """
    List tasks, newest first.

    Employees only ever see tasks assigned to them.
    """
    tasks, total = await task_service.list_tasks(
        db,
        current_user,
        project_id=project,
        status_filter=status_filter,
        priority=priority,
        assigned_to=assigned_to,
        page=page,
        limit=limit,
    )
    return Page[TaskResponse](
        items=[TaskResponse.model_validate(t) for t in tasks],
        total=total,
        page=page,
        pages=page_count(total, limit),
    )


@router.get(
    "/{task_id}",
    response_model=TaskResponse,
    summary="Get a task",
)
async def get_task(
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    task = await task_service.get_task_or_404(db, task_id)
    task_service.ensure_can_view(task, current_user)
    return task


@router.put(
    "/{task_id}",
    response_model=TaskResponse,
    summary="Update a task",
)
async def update_task(
    task_id: UUID,
    task_data: TaskUpdate,
    current_user: User = Depends(manager_roles),
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    task = await task_service.get_task_or_404(db, task_id)
    return await task_service.update_task(db, task, task_data)


@router.patch(
    "/{task_id}/status",
    response_model=TaskResponse,
    summary="Change a task's status",
    description="Change the status and broadcast task:updated to everyone watching the project.",
    responses={
        403: {"description": "Employees can only move tasks assigned to them"},
        404: {"description": "Task not found"},
    },
)
async def update_task_status(
    task_id: UUID,
    status_data: TaskStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> TaskResponse:
    task = await task_service.get_task_or_404(db, task_id)
    return await task_service.update_task_status(
        db, task, status_data.status, current_user, connection_manager
    )


@router.post(
    "/{task_id}/assign",
    response_model=TaskResponse,
    summary="Assign a task",
    description="Assign the task and notify the assignee in real time.",
    responses={
        403: {"description": "Only admins and managers can assign tasks"},
        404: {"description": "Task or user not found"},
    },
)
async def assign_task(
    task_id: UUID,
    assignment: TaskAssign,
    current_user: User = Depends(manager_roles),
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> TaskResponse:
    task = await task_service.get_task_or_404(db, task_id)
    return await task_service.assign_task(
        db, task, assignment.user_id, current_user, connection_manager
    )
