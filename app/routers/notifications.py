"""Notifications API endpoints.

Pull-based access to durable notifications. Real-time delivery is best
effort, so this listing is the source of truth after a reconnect.
All endpoints require authentication and only ever touch the caller's
own notifications.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.notification import NotificationCount, NotificationResponse
from ..services.auth_service import get_current_user
from ..services.notification_service import NotificationService
from ..websocket.manager import ConnectionManager, get_connection_manager

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=List[NotificationResponse],
    summary="List user notifications",
    responses={
        200: {"description": "List of notifications retrieved successfully"},
        401: {"description": "Not authenticated"},
    },
)
async def list_notifications(
    limit: int = Query(20, ge=1, le=100, description="Maximum number of records to return"),
    unread_only: bool = Query(False, description="Return only unread notifications"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[NotificationResponse]:
    """
    List notifications for the authenticated user, newest first.

    - **limit**: Maximum number of records to return (1-100, default 20)
    - **unread_only**: If true, return only unread notifications
    """
    return await NotificationService.list_notifications(
        db, current_user, limit=limit, unread_only=unread_only
    )


@router.get(
    "/count",
    response_model=NotificationCount,
    summary="Get notification counts",
)
async def get_notification_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> NotificationCount:
    return await NotificationService.count_notifications(db, current_user)


@router.patch(
    "/read-all",
    summary="Mark all notifications as read",
)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    updated = await NotificationService.mark_all_read(db, current_user)
    return {"updated": updated}


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read",
    responses={
        404: {"description": "Notification not found"},
    },
)
async def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> NotificationResponse:
    """
    Mark one of the caller's notifications as read.

    The user's other sessions receive ``notification:read`` so badges stay
    in sync across tabs.
    """
    return await NotificationService.mark_read(
        db, notification_id, current_user, manager=connection_manager
    )
