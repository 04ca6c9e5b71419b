"""Project SQLAlchemy model and the project membership association table."""

import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..database import Base

project_members = Table(
    "ProjectMembers",
    Base.metadata,
    Column(
        "project_id",
        UUID(as_uuid=True),
        ForeignKey("Projects.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "user_id",
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Project(Base):
    """
    Project model grouping tasks and the users working on them.

    Attributes:
        id: Unique identifier (UUID)
        project_number: Human-readable sequential number
        title: Project title
        description: Optional description
        status: planning, active, on-hold or completed
        priority: low, medium or high
        created_by: FK to the creating user (always a member)
        deadline: Optional deadline
    """

    __tablename__ = "Projects"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    project_number = Column(Integer, unique=True, nullable=True)

    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default="planning")
    priority = Column(String(20), nullable=False, default="medium")
    deadline = Column(Date, nullable=True)

    created_by = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    members = relationship(
        "User",
        secondary=project_members,
        lazy="selectin",
    )

    @property
    def member_count(self) -> int:
        return len(self.members)

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, title={self.title})>"
