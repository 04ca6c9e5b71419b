"""Pydantic schemas for Task model validation."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .user import UserSummary


class TaskStatus(str, Enum):
    """Task status enumeration."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, Enum):
    """Task priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskBase(BaseModel):
    """Base schema with common task fields."""

    title: str = Field(
        ...,
        min_length=1,
        max_length=150,
        description="Task title",
        examples=["Implement user authentication"],
    )
    description: Optional[str] = Field(None, description="Detailed task description")
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None


class TaskCreate(TaskBase):
    """Schema for creating a new task."""

    project_id: UUID = Field(..., description="ID of the parent project")
    status: TaskStatus = TaskStatus.TODO
    assignee_id: Optional[UUID] = Field(None, description="ID of the assigned user")


class TaskUpdate(BaseModel):
    """Schema for updating a task. All fields optional."""

    title: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None


class TaskStatusUpdate(BaseModel):
    """Schema for changing a task's status."""

    status: TaskStatus


class TaskAssign(BaseModel):
    """Schema for assigning a task to a user."""

    user_id: UUID = Field(..., description="ID of the user to assign")


class TaskResponse(TaskBase):
    """Schema for task response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_number: Optional[int] = None
    project_id: UUID
    status: TaskStatus
    created_by: Optional[UUID] = None
    assignee_id: Optional[UUID] = None
    assignee: Optional[UserSummary] = None
    created_at: datetime
    updated_at: datetime
