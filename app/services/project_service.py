"""Project service: CRUD, membership and access checks.

The creator of a project is always added as its first member. Admins see
every project; everyone else sees only projects they are members of.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.counter import next_sequence
from ..models.project import Project, project_members
from ..models.user import User
from ..schemas.project import ProjectCreate, ProjectStatus, ProjectUpdate
from ..schemas.user import UserRole
from ..websocket.room_auth import invalidate_user_cache

logger = logging.getLogger(__name__)


def _member_filter(query, user: User):
    """Restrict a Project query to what ``user`` may see."""
    if user.role == UserRole.ADMIN.value:
        return query
    return query.where(
        Project.id.in_(
            select(project_members.c.project_id).where(project_members.c.user_id == user.id)
        )
    )


async def get_project_or_404(db: AsyncSession, project_id: UUID) -> Project:
    result = await db.execute(select(Project).where(Project.id == project_id))
    project = result.scalar_one_or_none()
    if project is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found",
        )
    return project


def is_member(project: Project, user: User) -> bool:
    return project.created_by == user.id or any(m.id == user.id for m in project.members)


def ensure_can_view(project: Project, user: User) -> None:
    """
    Raises:
        HTTPException: 403 if ``user`` is neither an admin nor a member
    """
    if user.role == UserRole.ADMIN.value or is_member(project, user):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You are not a member of this project",
    )


async def create_project(db: AsyncSession, data: ProjectCreate, creator: User) -> Project:
    project = Project(
        project_number=await next_sequence(db, "project_number"),
        title=data.title,
        description=data.description,
        status=data.status.value,
        priority=data.priority.value,
        deadline=data.deadline,
        created_by=creator.id,
    )
    project.members.append(creator)

    db.add(project)
    await db.commit()
    await db.refresh(project)

    invalidate_user_cache(creator.id)
    logger.info(f"Project created: id={project.id}, by={creator.id}")
    return project


async def list_projects(
    db: AsyncSession,
    user: User,
    status_filter: Optional[ProjectStatus] = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Project], int]:
    """
    Newest-first projects visible to ``user``.

    Returns:
        (projects on the requested page, total matching)
    """
    query = _member_filter(select(Project), user)
    if status_filter is not None:
        query = query.where(Project.status == status_filter.value)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    result = await db.execute(
        query.order_by(Project.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def count_projects(db: AsyncSession, user: User) -> int:
    query = _member_filter(select(Project.id), user)
    return await db.scalar(select(func.count()).select_from(query.subquery())) or 0


async def update_project(db: AsyncSession, project: Project, data: ProjectUpdate) -> Project:
    for field, value in data.model_dump(exclude_unset=True).items():
        if hasattr(value, "value"):
            value = value.value
        setattr(project, field, value)

    await db.commit()
    await db.refresh(project)
    return project


async def add_member(db: AsyncSession, project: Project, user: User) -> Project:
    """Add ``user`` to the project. Adding an existing member is a no-op."""
    if all(m.id != user.id for m in project.members):
        project.members.append(user)
        await db.commit()
        await db.refresh(project)
        logger.info(f"Member added: project={project.id}, user={user.id}")

    invalidate_user_cache(user.id)
    return project


async def remove_member(db: AsyncSession, project: Project, user_id: UUID) -> Project:
    """
    Remove a member. Removing a non-member is a no-op.

    Raises:
        HTTPException: 400 when removing the project creator
    """
    if project.created_by == user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The project creator cannot be removed",
        )

    remaining = [m for m in project.members if m.id != user_id]
    if len(remaining) != len(project.members):
        project.members = remaining
        await db.commit()
        await db.refresh(project)
        logger.info(f"Member removed: project={project.id}, user={user_id}")

    invalidate_user_cache(user_id)
    return project
