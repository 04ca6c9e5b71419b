"""SQLAlchemy ORM models package."""

from .comment import Comment
from .counter import Counter, next_sequence
from .notification import Notification
from .project import Project, project_members
from .task import Task
from .user import User

__all__ = [
    "Comment",
    "Counter",
    "Notification",
    "Project",
    "Task",
    "User",
    "next_sequence",
    "project_members",
]
