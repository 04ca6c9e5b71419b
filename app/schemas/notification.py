"""Pydantic schemas for Notification model validation."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Notification type enumeration."""

    TASK_ASSIGNED = "task_assigned"
    TASK_UPDATED = "task_updated"
    COMMENT_ADDED = "comment_added"
    PROJECT_ADDED = "project_added"


class NotificationCreate(BaseModel):
    """Schema for creating a new notification."""

    message: str = Field(..., min_length=1, description="Notification text")
    type: NotificationType
    recipient_id: UUID = Field(..., description="ID of the user receiving the notification")
    related_task_id: Optional[UUID] = None
    related_project_id: Optional[UUID] = None


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    notification_number: Optional[int] = None
    message: str
    type: NotificationType
    recipient_id: UUID
    related_task_id: Optional[UUID] = None
    related_project_id: Optional[UUID] = None
    is_read: bool
    created_at: datetime


class NotificationCount(BaseModel):
    """Schema for notification counts."""

    total: int = Field(..., ge=0)
    unread: int = Field(..., ge=0)
