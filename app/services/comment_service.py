"""Comment service for task discussions.

Provides business logic for:
- Adding comments and broadcasting them to the task's project
- Listing comments oldest first, like a chat
- Deleting comments (author or admin only)
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.comment import Comment
from ..models.task import Task
from ..models.user import User
from ..schemas.comment import CommentCreate, CommentResponse
from ..schemas.user import UserRole
from ..websocket.manager import ConnectionManager
from .notification_service import DomainMutation, MutationKind, NotificationService

logger = logging.getLogger(__name__)


def build_comment_response(comment: Comment) -> dict[str, Any]:
    """JSON-ready comment, as broadcast with ``comment:new``."""
    return CommentResponse.model_validate(comment).model_dump(mode="json")


async def add_comment(
    db: AsyncSession,
    task: Task,
    data: CommentCreate,
    author: User,
    manager: ConnectionManager,
) -> Comment:
    """
    Add a comment to a task and broadcast it to the task's project.

    Args:
        db: Database session
        task: The commented task
        data: Comment content
        author: The commenting user
        manager: Connection manager to publish through

    Returns:
        Comment: The created comment
    """
    comment = Comment(
        task_id=task.id,
        author_id=author.id,
        content=data.content,
    )

    db.add(comment)
    await db.commit()
    await db.refresh(comment)

    logger.info(f"Comment added: id={comment.id}, task={task.id}, author={author.id}")

    await NotificationService.fan_out(
        db,
        DomainMutation(
            kind=MutationKind.COMMENT_ADDED,
            project_id=task.project_id,
            task_id=task.id,
            task_title=task.title,
            actor_name=author.name,
            payload=build_comment_response(comment),
        ),
        manager,
    )
    return comment


async def list_comments(db: AsyncSession, task_id: UUID) -> list[Comment]:
    result = await db.execute(
        select(Comment)
        .where(Comment.task_id == task_id)
        .order_by(Comment.created_at.asc())
    )
    return list(result.scalars().all())


async def delete_comment(db: AsyncSession, comment_id: UUID, user: User) -> None:
    """
    Delete a comment.

    Raises:
        HTTPException: 404 if the comment does not exist, 403 if ``user`` is
            neither its author nor an admin
    """
    result = await db.execute(select(Comment).where(Comment.id == comment_id))
    comment = result.scalar_one_or_none()
    if comment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Comment not found",
        )

    if comment.author_id != user.id and user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to delete this comment",
        )

    await db.delete(comment)
    await db.commit()
    logger.info(f"Comment deleted: id={comment_id}, by={user.id}")
