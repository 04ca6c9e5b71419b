"""Dashboard API endpoint.

One call returning the counters a home screen needs, scoped by role:
admins see everything, employees only their assigned tasks.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.notification import Notification
from ..models.user import User
from ..schemas.task import TaskResponse
from ..schemas.user import UserRole
from ..services import project_service, task_service
from ..services.auth_service import get_current_user

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


class DashboardStats(BaseModel):
    total_projects: int
    total_tasks: int
    total_users: Optional[int] = None
    unread_notifications: int


class DashboardResponse(BaseModel):
    stats: DashboardStats
    tasks_by_status: dict[str, int]
    recent_tasks: list[TaskResponse]


@router.get(
    "",
    response_model=DashboardResponse,
    summary="Dashboard statistics",
)
async def get_dashboard(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DashboardResponse:
    """
    Dashboard statistics for the current user.

    - **total_users** is only reported to admins
    - **tasks_by_status** always lists every status, zero included
    - **recent_tasks** holds the five most recently updated visible tasks
    """
    by_status = await task_service.tasks_by_status(db, current_user)

    total_users = None
    if current_user.role == UserRole.ADMIN.value:
        total_users = await db.scalar(
            select(func.count()).select_from(User).where(User.is_active == True)  # noqa: E712
        )

    unread = await db.scalar(
        select(func.count()).select_from(Notification).where(
            Notification.recipient_id == current_user.id,
            Notification.is_read == False,  # noqa: E712
        )
    )

    return DashboardResponse(
        stats=DashboardStats(
            total_projects=await project_service.count_projects(db, current_user),
            total_tasks=sum(by_status.values()),
            total_users=total_users,
            unread_notifications=unread or 0,
        ),
        tasks_by_status=by_status,
        recent_tasks=[
            TaskResponse.model_validate(t)
            for t in await task_service.recent_tasks(db, current_user)
        ],
    )
