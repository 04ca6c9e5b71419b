"""Notification SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class Notification(Base):
    """
    Durable notification addressed to exactly one user.

    Attributes:
        id: Unique identifier (UUID)
        notification_number: Human-readable sequential number
        message: Text shown to the recipient
        type: task_assigned, task_updated, comment_added or project_added
        recipient_id: FK to the receiving user
        related_task_id: Optional FK to a task
        related_project_id: Optional FK to a project
        is_read: Read acknowledgement flag
        created_at: Creation timestamp
    """

    __tablename__ = "Notifications"
    __table_args__ = (
        Index("ix_Notifications_recipient_read", "recipient_id", "is_read"),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    notification_number = Column(Integer, unique=True, nullable=True)

    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False)

    recipient_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
    )
    related_task_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    related_project_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Projects.id", ondelete="SET NULL"),
        nullable=True,
    )

    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
