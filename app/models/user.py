"""User SQLAlchemy model for authentication and user management."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class User(Base):
    """
    User model representing application users.

    Attributes:
        id: Unique identifier (UUID)
        user_number: Human-readable sequential number
        name: Display name
        email: User's email address (unique, lower-cased)
        password_hash: Hashed password for authentication
        role: One of admin, manager, employee
        avatar_url: URL to user's avatar image
        is_active: False once the account has been deactivated
        created_at: Timestamp when user was created
        updated_at: Timestamp when user was last updated
    """

    __tablename__ = "Users"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    user_number = Column(Integer, unique=True, nullable=True)

    name = Column(String(50), nullable=False)
    email = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash = Column(String(255), nullable=False)
    role = Column(
        String(20),
        nullable=False,
        default="employee",
    )
    avatar_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
