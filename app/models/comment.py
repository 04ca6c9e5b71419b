"""Comment SQLAlchemy model for task discussions."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..database import Base


class Comment(Base):
    """
    Comment left by a user on a task.

    Attributes:
        id: Unique identifier (UUID)
        task_id: FK to the task
        author_id: FK to the author
        content: Comment text (max 1000 characters)
    """

    __tablename__ = "Comments"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    task_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content = Column(String(1000), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    author = relationship("User", lazy="selectin")
