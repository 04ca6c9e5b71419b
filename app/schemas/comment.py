"""Pydantic schemas for Comment model validation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .user import UserSummary


class CommentCreate(BaseModel):
    """Schema for creating a comment."""

    content: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Comment text",
    )

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comment content is required")
        return v


class CommentResponse(BaseModel):
    """Schema for comment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_id: UUID
    author_id: UUID
    author: UserSummary
    content: str
    created_at: datetime
