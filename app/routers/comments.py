"""Comments API endpoints.

Comments live under tasks. Adding one broadcasts ``comment:new`` to the
task's project topic. Only the author or an admin may delete a comment.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.comment import CommentCreate, CommentResponse
from ..services import comment_service, task_service
from ..services.auth_service import get_current_user
from ..websocket.manager import ConnectionManager, get_connection_manager

router = APIRouter(tags=["Comments"])


@router.post(
    "/api/tasks/{task_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a task",
    responses={
        403: {"description": "No access to this task"},
        404: {"description": "Task not found"},
    },
)
async def add_comment(
    task_id: UUID,
    comment_data: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
) -> CommentResponse:
    task = await task_service.get_task_or_404(db, task_id)
    task_service.ensure_can_view(task, current_user)
    return await comment_service.add_comment(
        db, task, comment_data, current_user, connection_manager
    )


@router.get(
    "/api/tasks/{task_id}/comments",
    response_model=list[CommentResponse],
    summary="List task comments",
    description="Comments on a task, oldest first.",
)
async def list_comments(
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[CommentResponse]:
    task = await task_service.get_task_or_404(db, task_id)
    task_service.ensure_can_view(task, current_user)
    return await comment_service.list_comments(db, task.id)


@router.delete(
    "/api/comments/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a comment",
    responses={
        403: {"description": "Only the author or an admin can delete a comment"},
        404: {"description": "Comment not found"},
    },
)
async def delete_comment(
    comment_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    await comment_service.delete_comment(db, comment_id, current_user)
