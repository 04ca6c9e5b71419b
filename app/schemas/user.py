"""Pydantic schemas for User model validation."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserRole(str, Enum):
    """User role enumeration."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class UserBase(BaseModel):
    """Base schema with common user fields."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="User's display name",
        examples=["Jane Doe"],
    )
    email: EmailStr = Field(
        ...,
        description="User's email address",
        examples=["user@example.com"],
    )

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.strip().lower()


class UserCreate(UserBase):
    """Schema for creating a new user (registration)."""

    password: str = Field(
        ...,
        min_length=6,
        max_length=128,
        description="User's password (will be hashed)",
    )
    role: UserRole = Field(
        UserRole.EMPLOYEE,
        description="Role granted to the user",
    )


class UserUpdate(BaseModel):
    """Schema for updating a user (admin only)."""

    name: Optional[str] = Field(None, min_length=1, max_length=50)
    role: Optional[UserRole] = None
    avatar_url: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class UserResponse(UserBase):
    """Schema for user response (public data only)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique user identifier")
    user_number: Optional[int] = Field(None, description="Sequential user number")
    role: UserRole
    avatar_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class UserSummary(BaseModel):
    """Minimal user information embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str


class Identity(BaseModel):
    """Authenticated identity carried by a bearer token and a live session."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    name: str
    role: UserRole

    def to_online_entry(self) -> dict:
        """Serialize as an entry of the ``onlineUsers`` payload."""
        return {"user_id": str(self.user_id), "name": self.name}
