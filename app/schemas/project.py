"""Pydantic schemas for Project model validation."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .user import UserSummary


class ProjectStatus(str, Enum):
    """Project status enumeration."""

    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"


class ProjectPriority(str, Enum):
    """Project priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProjectBase(BaseModel):
    """Base schema with common project fields."""

    title: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Project title",
        examples=["Website redesign"],
    )
    description: Optional[str] = Field(None, max_length=500)
    status: ProjectStatus = ProjectStatus.PLANNING
    priority: ProjectPriority = ProjectPriority.MEDIUM
    deadline: Optional[date] = None


class ProjectCreate(ProjectBase):
    """Schema for creating a new project."""
    pass


class ProjectUpdate(BaseModel):
    """Schema for updating a project. All fields optional."""

    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    status: Optional[ProjectStatus] = None
    priority: Optional[ProjectPriority] = None
    deadline: Optional[date] = None


class ProjectMemberChange(BaseModel):
    """Schema for adding a member to a project."""

    user_id: UUID


class ProjectResponse(ProjectBase):
    """Schema for project response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_number: Optional[int] = None
    created_by: Optional[UUID] = None
    members: list[UserSummary] = Field(default_factory=list)
    member_count: int = 0
    created_at: datetime
    updated_at: datetime
