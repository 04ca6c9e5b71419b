"""Projects CRUD API endpoints.

All endpoints require authentication.

Access Control:
- List projects: admins see all, everyone else only projects they belong to
- Get project: admins and members
- Create/Update projects, manage members: admins and managers
- Delete projects: admins only
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.user import User
from ..schemas.common import Page, page_count
from ..schemas.project import (
    ProjectCreate,
    ProjectMemberChange,
    ProjectResponse,
    ProjectStatus,
    ProjectUpdate,
)
from ..schemas.user import UserRole
from ..services import project_service
from ..services.auth_service import get_current_user, get_user_by_id, require_roles
from ..websocket.lifecycle import ConnectionLifecycle, get_lifecycle
from ..websocket.messages import project_topic

router = APIRouter(prefix="/api/projects", tags=["Projects"])

manager_roles = require_roles(UserRole.ADMIN, UserRole.MANAGER)


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    description="Create a project. The creator becomes its first member.",
    responses={
        201: {"description": "Project created"},
        403: {"description": "Only admins and managers can create projects"},
    },
)
async def create_project(
    project_data: ProjectCreate,
    current_user: User = Depends(manager_roles),
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    return await project_service.create_project(db, project_data, current_user)


@router.get(
    "",
    response_model=Page[ProjectResponse],
    summary="List projects",
)
async def list_projects(
    status_filter: Optional[ProjectStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Page[ProjectResponse]:
    """
    List projects visible to the current user, newest first.

    - **status**: Optional status filter
    - **page** / **limit**: Offset pagination
    """
    projects, total = await project_service.list_projects(
        db, current_user, status_filter=status_filter, page=page, limit=limit
    )
    return Page[ProjectResponse](
        items=[ProjectResponse.model_validate(p) for p in projects],
        total=total,
        page=page,
        pages=page_count(total, limit),
    )


@router.get(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Get a project",
    responses={
        403: {"description": "Not a member of this project"},
        404: {"description": "Project not found"},
    },
)
async def get_project(
    project_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    project = await project_service.get_project_or_404(db, project_id)
    project_service.ensure_can_view(project, current_user)
    return project


@router.put(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Update a project",
)
async def update_project(
    project_id: UUID,
    project_data: ProjectUpdate,
    current_user: User = Depends(manager_roles),
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    project = await project_service.get_project_or_404(db, project_id)
    return await project_service.update_project(db, project, project_data)


@router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project",
    description="Delete a project together with its tasks and comments. Admins only.",
)
async def delete_project(
    project_id: UUID,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> None:
    project = await project_service.get_project_or_404(db, project_id)
    await db.delete(project)
    await db.commit()


# ============================================================================
# Membership
# ============================================================================


@router.post(
    "/{project_id}/members",
    response_model=ProjectResponse,
    summary="Add a project member",
    description="Add a user to the project. Adding an existing member is a no-op.",
)
async def add_member(
    project_id: UUID,
    member: ProjectMemberChange,
    current_user: User = Depends(manager_roles),
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    project = await project_service.get_project_or_404(db, project_id)

    user = await get_user_by_id(db, member.user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    return await project_service.add_member(db, project, user)


@router.delete(
    "/{project_id}/members/{user_id}",
    response_model=ProjectResponse,
    summary="Remove a project member",
)
async def remove_member(
    project_id: UUID,
    user_id: UUID,
    current_user: User = Depends(manager_roles),
    db: AsyncSession = Depends(get_db),
    lifecycle: ConnectionLifecycle = Depends(get_lifecycle),
) -> ProjectResponse:
    project = await project_service.get_project_or_404(db, project_id)
    project = await project_service.remove_member(db, project, user_id)
    await lifecycle.evict_from_topic(user_id, project_topic(project.id))
    return project
