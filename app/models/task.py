"""Task SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..database import Base


class Task(Base):
    """
    Task model representing a unit of work inside a project.

    Attributes:
        id: Unique identifier (UUID)
        task_number: Human-readable sequential number
        project_id: FK to parent project
        title: Task title
        description: Detailed task description
        status: todo, in-progress, review or done
        priority: low, medium, high or urgent
        created_by: FK to the creating user
        assignee_id: FK to the assigned user
        due_date: Task due date
    """

    __tablename__ = "Tasks"
    __table_args__ = (
        Index("ix_Tasks_project_status", "project_id", "status"),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    task_number = Column(Integer, unique=True, nullable=True)

    project_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
    )
    assignee_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="todo")
    priority = Column(String(20), nullable=False, default="medium")
    due_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    project = relationship("Project", lazy="selectin")
    assignee = relationship("User", foreign_keys=[assignee_id], lazy="selectin")

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, title={self.title}, status={self.status})>"
