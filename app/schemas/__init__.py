"""Pydantic schemas package for request/response validation."""

from .comment import CommentCreate, CommentResponse
from .common import Page
from .notification import (
    NotificationCount,
    NotificationCreate,
    NotificationResponse,
    NotificationType,
)
from .project import (
    ProjectCreate,
    ProjectMemberChange,
    ProjectPriority,
    ProjectResponse,
    ProjectStatus,
    ProjectUpdate,
)
from .task import (
    TaskAssign,
    TaskCreate,
    TaskPriority,
    TaskResponse,
    TaskStatus,
    TaskStatusUpdate,
    TaskUpdate,
)
from .user import UserCreate, UserResponse, UserRole, UserSummary, UserUpdate

__all__ = [
    "CommentCreate",
    "CommentResponse",
    "NotificationCount",
    "NotificationCreate",
    "NotificationResponse",
    "NotificationType",
    "Page",
    "ProjectCreate",
    "ProjectMemberChange",
    "ProjectPriority",
    "ProjectResponse",
    "ProjectStatus",
    "ProjectUpdate",
    "TaskAssign",
    "TaskCreate",
    "TaskPriority",
    "TaskResponse",
    "TaskStatus",
    "TaskStatusUpdate",
    "TaskUpdate",
    "UserCreate",
    "UserResponse",
    "UserRole",
    "UserSummary",
    "UserUpdate",
]
