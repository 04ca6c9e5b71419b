"""Task service: CRUD, status changes and assignment.

Status changes and assignments commit first and then hand a
``DomainMutation`` to the notification service, so a failed real-time
delivery never fails the write.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.counter import next_sequence
from ..models.task import Task
from ..models.user import User
from ..schemas.task import (
    TaskCreate,
    TaskPriority,
    TaskResponse,
    TaskStatus,
    TaskUpdate,
)
from ..schemas.user import UserRole
from ..websocket.manager import ConnectionManager
from .notification_service import DomainMutation, MutationKind, NotificationService
from .project_service import get_project_or_404, is_member

logger = logging.getLogger(__name__)


def serialize_task(task: Task) -> dict[str, Any]:
    """JSON-ready task, as broadcast with ``task:updated``."""
    return TaskResponse.model_validate(task).model_dump(mode="json")


def _visibility_filter(query, user: User):
    """Employees only see the tasks assigned to them."""
    if user.role == UserRole.EMPLOYEE.value:
        return query.where(Task.assignee_id == user.id)
    return query


async def get_task_or_404(db: AsyncSession, task_id: UUID) -> Task:
    result = await db.execute(select(Task).where(Task.id == task_id))
    task = result.scalar_one_or_none()
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    return task


def ensure_can_view(task: Task, user: User) -> None:
    """
    Admins see every task, managers the tasks of their projects and
    employees the tasks assigned to them or in their projects.

    Raises:
        HTTPException: 403 otherwise
    """
    if user.role == UserRole.ADMIN.value:
        return
    if task.assignee_id == user.id or is_member(task.project, user):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You do not have access to this task",
    )


async def _get_active_user(db: AsyncSession, user_id: UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


async def create_task(db: AsyncSession, data: TaskCreate, creator: User) -> Task:
    """
    Create a task in an existing project.

    Raises:
        HTTPException: 404 if the project or assignee does not exist
    """
    await get_project_or_404(db, data.project_id)
    if data.assignee_id is not None:
        await _get_active_user(db, data.assignee_id)

    task = Task(
        task_number=await next_sequence(db, "task_number"),
        project_id=data.project_id,
        title=data.title,
        description=data.description,
        status=data.status.value,
        priority=data.priority.value,
        due_date=data.due_date,
        created_by=creator.id,
        assignee_id=data.assignee_id,
    )

    db.add(task)
    await db.commit()
    await db.refresh(task)

    logger.info(f"Task created: id={task.id}, project={task.project_id}, by={creator.id}")
    return task


async def list_tasks(
    db: AsyncSession,
    user: User,
    project_id: Optional[UUID] = None,
    status_filter: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    assigned_to: Optional[UUID] = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Task], int]:
    """
    Newest-first tasks matching the filters.

    ``assigned_to`` is ignored for employees, who only ever see their own.

    Returns:
        (tasks on the requested page, total matching)
    """
    query = _visibility_filter(select(Task), user)
    if project_id is not None:
        query = query.where(Task.project_id == project_id)
    if status_filter is not None:
        query = query.where(Task.status == status_filter.value)
    if priority is not None:
        query = query.where(Task.priority == priority.value)
    if assigned_to is not None and user.role != UserRole.EMPLOYEE.value:
        query = query.where(Task.assignee_id == assigned_to)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    result = await db.execute(
        query.order_by(Task.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def tasks_by_status(db: AsyncSession, user: User) -> dict[str, int]:
    """Task counts per status, with every status present."""
    query = _visibility_filter(select(Task.status, func.count()), user).group_by(Task.status)
    result = await db.execute(query)
    counts = {row[0]: row[1] for row in result.all()}
    return {s.value: counts.get(s.value, 0) for s in TaskStatus}


async def recent_tasks(db: AsyncSession, user: User, limit: int = 5) -> list[Task]:
    query = _visibility_filter(select(Task), user).order_by(Task.updated_at.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_task(db: AsyncSession, task: Task, data: TaskUpdate) -> Task:
    for field, value in data.model_dump(exclude_unset=True).items():
        if hasattr(value, "value"):
            value = value.value
        setattr(task, field, value)

    await db.commit()
    await db.refresh(task)
    return task


async def update_task_status(
    db: AsyncSession,
    task: Task,
    new_status: TaskStatus,
    actor: User,
    manager: ConnectionManager,
) -> Task:
    """
    Change a task's status and broadcast ``task:updated`` to its project.

    Employees may only move tasks assigned to them.

    Raises:
        HTTPException: 403 if the actor may not change this task
    """
    if actor.role == UserRole.EMPLOYEE.value and task.assignee_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update the status of tasks assigned to you",
        )

    old_status = task.status
    task.status = new_status.value
    await db.commit()
    await db.refresh(task)

    logger.info(
        f"Task status changed: id={task.id}, {old_status} -> {task.status}, by={actor.id}"
    )

    await NotificationService.fan_out(
        db,
        DomainMutation(
            kind=MutationKind.TASK_STATUS_CHANGED,
            project_id=task.project_id,
            task_id=task.id,
            task_title=task.title,
            actor_name=actor.name,
            old_status=old_status,
            payload=serialize_task(task),
        ),
        manager,
    )
    return task


async def assign_task(
    db: AsyncSession,
    task: Task,
    assignee_id: UUID,
    actor: User,
    manager: ConnectionManager,
) -> Task:
    """
    Assign a task, persist a ``task_assigned`` notification for the assignee
    and push it to ``user:<assignee>``.

    Raises:
        HTTPException: 404 if the assignee does not exist or is inactive
    """
    assignee = await _get_active_user(db, assignee_id)

    task.assignee_id = assignee.id
    await db.commit()
    await db.refresh(task)

    logger.info(f"Task assigned: id={task.id}, assignee={assignee.id}, by={actor.id}")

    await NotificationService.fan_out(
        db,
        DomainMutation(
            kind=MutationKind.TASK_ASSIGNED,
            project_id=task.project_id,
            task_id=task.id,
            task_title=task.title,
            actor_name=actor.name,
            assignee_id=assignee.id,
        ),
        manager,
    )
    return task
