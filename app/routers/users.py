"""Users API endpoints.

Provides endpoints for listing, viewing and updating user profiles.
Listing is limited to admins and managers; role and activation changes
to admins.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.user import User
from ..schemas.common import Page, page_count
from ..schemas.user import UserResponse, UserRole, UserUpdate
from ..services.auth_service import get_current_user, get_user_by_id, require_roles
from ..websocket.lifecycle import ConnectionLifecycle, get_lifecycle

router = APIRouter(prefix="/api/users", tags=["Users"])


async def _get_user_or_404(db: AsyncSession, user_id: UUID) -> User:
    user = await get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


@router.get(
    "",
    response_model=Page[UserResponse],
    summary="List users",
    description="List users, optionally filtered by role or a name/email search. Admins and managers only.",
)
async def list_users(
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    search: Optional[str] = Query(None, min_length=1, description="Case-insensitive name or email match"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> Page[UserResponse]:
    query = select(User)
    if role is not None:
        query = query.where(User.role == role.value)
    if search:
        query = query.where(or_(User.name.ilike(f"%{search}%"), User.email.ilike(f"%{search}%")))

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0
    result = await db.execute(
        query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )

    return Page[UserResponse](
        items=[UserResponse.model_validate(u) for u in result.scalars().all()],
        total=total,
        page=page,
        pages=page_count(total, limit),
    )


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get a user",
)
async def get_user(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    return await _get_user_or_404(db, user_id)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update a user",
    description="Users may edit their own name and avatar. Only admins may change roles or deactivate accounts.",
    responses={
        403: {"description": "Not allowed to edit this user or these fields"},
        404: {"description": "User not found"},
    },
)
async def update_user(
    user_id: UUID,
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: ConnectionLifecycle = Depends(get_lifecycle),
) -> UserResponse:
    is_admin = current_user.role == UserRole.ADMIN.value
    if current_user.id != user_id and not is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update your own profile",
        )

    changes = user_data.model_dump(exclude_unset=True)
    if not is_admin and ({"role", "is_active"} & changes.keys()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can change roles or account status",
        )

    user = await _get_user_or_404(db, user_id)
    access_changed = False
    for field, value in changes.items():
        if isinstance(value, UserRole):
            value = value.value
        if field in ("role", "is_active") and getattr(user, field) != value:
            access_changed = True
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)

    # Live sockets hold the old role; make them reconnect and re-check
    if access_changed:
        await lifecycle.close_user(user.id, reason="account updated")
    return user


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate a user",
    description="Soft-delete: the account is deactivated and can no longer log in. Admins only.",
)
async def deactivate_user(
    user_id: UUID,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    lifecycle: ConnectionLifecycle = Depends(get_lifecycle),
) -> None:
    if current_user.id == user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account",
        )

    user = await _get_user_or_404(db, user_id)
    user.is_active = False
    await db.commit()
    await lifecycle.close_user(user.id, reason="account deactivated")
