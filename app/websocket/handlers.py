"""Publishing helpers for domain events.

Services call these after a write has committed. Each helper builds the
outbound envelope, publishes it to the right topic and returns the
``DeliveryResult`` so the caller can log a failed delivery without
failing the request.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from .manager import ConnectionManager, DeliveryResult
from .messages import OutboundEvent, build_message, project_topic, user_topic

logger = logging.getLogger(__name__)


async def handle_task_updated(
    manager: ConnectionManager,
    project_id: UUID | str,
    task_data: dict[str, Any],
    updated_by: Optional[str] = None,
    old_status: Optional[str] = None,
) -> DeliveryResult:
    """
    Broadcast a task change to everyone watching its project.

    Args:
        manager: The connection manager
        project_id: The project the task belongs to
        task_data: Serialized task
        updated_by: Display name of the user who made the change
        old_status: Previous status, for status changes

    Returns:
        DeliveryResult: Result of the publish
    """
    topic = project_topic(project_id)

    payload: dict[str, Any] = {
        "task_id": str(task_data.get("id", "")),
        "status": task_data.get("status"),
        "task": task_data,
        "timestamp": datetime.utcnow().isoformat(),
    }
    if updated_by:
        payload["updated_by"] = updated_by
    if old_status:
        payload["old_status"] = old_status

    result = await manager.publish(topic, build_message(OutboundEvent.TASK_UPDATED, payload))

    logger.info(
        f"Task updated: task_id={task_data.get('id')}, "
        f"topic={topic}, recipients={result.recipients}"
    )
    return result


async def handle_comment_added(
    manager: ConnectionManager,
    project_id: UUID | str,
    comment_data: dict[str, Any],
) -> DeliveryResult:
    """Broadcast a new comment to the project of the commented task."""
    topic = project_topic(project_id)

    result = await manager.publish(
        topic,
        build_message(OutboundEvent.COMMENT_NEW, {
            "task_id": str(comment_data.get("task_id", "")),
            "comment": comment_data,
        }),
    )

    logger.info(
        f"Comment added: task_id={comment_data.get('task_id')}, "
        f"comment_id={comment_data.get('id')}, recipients={result.recipients}"
    )
    return result


async def handle_notification(
    manager: ConnectionManager,
    user_id: UUID | str,
    notification_data: dict[str, Any],
) -> DeliveryResult:
    """
    Push a persisted notification to the recipient's personal topic.

    Args:
        manager: The connection manager
        user_id: The recipient
        notification_data: The serialized notification record

    Returns:
        DeliveryResult: Result of the publish
    """
    topic = user_topic(user_id)

    result = await manager.publish(
        topic, build_message(OutboundEvent.NOTIFICATION_NEW, notification_data)
    )

    logger.info(
        f"Notification sent: user_id={user_id}, "
        f"type={notification_data.get('type')}, recipients={result.recipients}"
    )
    return result


async def handle_notification_read(
    manager: ConnectionManager,
    user_id: UUID | str,
    notification_id: UUID | str,
) -> DeliveryResult:
    """Tell the recipient's other sessions that a notification was read."""
    topic = user_topic(user_id)

    result = await manager.publish(
        topic,
        build_message(OutboundEvent.NOTIFICATION_READ, {
            "notification_id": str(notification_id),
        }),
    )

    logger.debug(f"Notification read: user_id={user_id}, notification_id={notification_id}")
    return result
