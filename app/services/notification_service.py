"""Notification service: fan-out rules, delivery and read status.

Provides business logic for notification management, including:
- The fan-out rule table mapping a domain mutation to a topic, an event
  and an optional durable notification
- Persisting notifications and delivering them via WebSocket
- Listing, counting and marking notifications read

Only task assignment produces a durable Notification. Status changes and
new comments are transient broadcasts to the project topic.

Delivery is best effort: by the time ``fan_out`` publishes, the triggering
write has committed, so a failed publish is logged and swallowed.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.counter import next_sequence
from ..models.notification import Notification
from ..models.user import User
from ..schemas.notification import (
    NotificationCount,
    NotificationCreate,
    NotificationResponse,
    NotificationType,
)
from ..websocket.handlers import (
    handle_comment_added,
    handle_notification,
    handle_notification_read,
    handle_task_updated,
)
from ..websocket.manager import ConnectionManager, DeliveryResult
from ..websocket.messages import OutboundEvent, project_topic, user_topic

logger = logging.getLogger(__name__)


class MutationKind(str, Enum):
    """Domain writes that have real-time consequences."""

    TASK_ASSIGNED = "task_assigned"
    TASK_STATUS_CHANGED = "task_status_changed"
    COMMENT_ADDED = "comment_added"


@dataclass(frozen=True)
class DomainMutation:
    """
    A committed domain write, described for the fan-out rules.

    Attributes:
        kind: What happened
        project_id: Project the task belongs to
        task_id: The task that was assigned, updated or commented on
        task_title: Title of the task
        actor_name: Display name of the user who made the change
        assignee_id: New assignee (TASK_ASSIGNED only)
        old_status: Previous status (TASK_STATUS_CHANGED only)
        payload: Serialized task or comment to broadcast
    """

    kind: MutationKind
    project_id: UUID
    task_id: UUID
    task_title: str = ""
    actor_name: str = ""
    assignee_id: Optional[UUID] = None
    old_status: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FanOutPlan:
    """Where a mutation goes and what, if anything, is persisted."""

    topic: str
    event: OutboundEvent
    notification: Optional[NotificationCreate] = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class FanOutOutcome:
    notification: Optional[Notification] = None
    delivery: Optional[DeliveryResult] = None


def plan_fan_out(mutation: DomainMutation) -> FanOutPlan:
    """
    Apply the fan-out rule table to a mutation. Pure; touches no I/O.

    | Mutation            | Notification  | Topic            | Event            |
    |---------------------|---------------|------------------|------------------|
    | task assigned to U  | task_assigned | ``user:U``       | notification:new |
    | task status changed | none          | ``project:P``    | task:updated     |
    | comment added       | none          | ``project:P``    | comment:new      |

    Raises:
        ValueError: If a TASK_ASSIGNED mutation has no assignee
    """
    if mutation.kind is MutationKind.TASK_ASSIGNED:
        if mutation.assignee_id is None:
            raise ValueError("TASK_ASSIGNED mutation requires an assignee")
        return FanOutPlan(
            topic=user_topic(mutation.assignee_id),
            event=OutboundEvent.NOTIFICATION_NEW,
            notification=NotificationCreate(
                message=f'You have been assigned to task: "{mutation.task_title}"',
                type=NotificationType.TASK_ASSIGNED,
                recipient_id=mutation.assignee_id,
                related_task_id=mutation.task_id,
                related_project_id=mutation.project_id,
            ),
        )

    if mutation.kind is MutationKind.TASK_STATUS_CHANGED:
        return FanOutPlan(
            topic=project_topic(mutation.project_id),
            event=OutboundEvent.TASK_UPDATED,
            payload=mutation.payload,
        )

    # MutationKind.COMMENT_ADDED
    return FanOutPlan(
        topic=project_topic(mutation.project_id),
        event=OutboundEvent.COMMENT_NEW,
        payload=mutation.payload,
    )


def serialize_notification(notification: Notification) -> dict[str, Any]:
    """JSON-ready notification record, as pushed with ``notification:new``."""
    return NotificationResponse.model_validate(notification).model_dump(mode="json")


class NotificationService:
    """
    Service for managing notifications.

    Handles notification creation, fan-out via WebSocket,
    and read status management.
    """

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        notification_data: NotificationCreate,
    ) -> Notification:
        """
        Persist a notification and commit.

        Args:
            db: Database session
            notification_data: Notification data

        Returns:
            Notification: The created notification
        """
        notification = Notification(
            notification_number=await next_sequence(db, "notification_number"),
            message=notification_data.message,
            type=notification_data.type.value,
            recipient_id=notification_data.recipient_id,
            related_task_id=notification_data.related_task_id,
            related_project_id=notification_data.related_project_id,
            is_read=False,
        )

        db.add(notification)
        await db.commit()
        await db.refresh(notification)

        logger.info(
            f"Notification created: id={notification.id}, "
            f"recipient={notification.recipient_id}, type={notification.type}"
        )
        return notification

    @staticmethod
    async def fan_out(
        db: AsyncSession,
        mutation: DomainMutation,
        manager: ConnectionManager,
    ) -> FanOutOutcome:
        """
        Persist and deliver the real-time consequences of a committed write.

        Args:
            db: Database session
            mutation: The committed mutation
            manager: Connection manager to publish through

        Returns:
            FanOutOutcome: The persisted notification (if any) and the delivery
            result (None if delivery failed)
        """
        plan = plan_fan_out(mutation)
        outcome = FanOutOutcome()

        if plan.notification is not None:
            outcome.notification = await NotificationService.create_notification(
                db, plan.notification
            )

        try:
            outcome.delivery = await NotificationService._deliver(
                plan, mutation, outcome.notification, manager
            )
        except Exception as e:
            logger.error(
                f"Real-time delivery failed: kind={mutation.kind.value}, "
                f"topic={plan.topic}, error={e}"
            )
            return outcome

        if not outcome.delivery.ok:
            logger.warning(
                f"Real-time delivery incomplete: kind={mutation.kind.value}, "
                f"topic={plan.topic}, failed={outcome.delivery.failed}"
            )
        return outcome

    @staticmethod
    async def _deliver(
        plan: FanOutPlan,
        mutation: DomainMutation,
        notification: Optional[Notification],
        manager: ConnectionManager,
    ) -> DeliveryResult:
        if plan.event is OutboundEvent.NOTIFICATION_NEW:
            return await handle_notification(
                manager,
                notification.recipient_id,
                serialize_notification(notification),
            )
        if plan.event is OutboundEvent.TASK_UPDATED:
            return await handle_task_updated(
                manager,
                mutation.project_id,
                plan.payload,
                updated_by=mutation.actor_name or None,
                old_status=mutation.old_status,
            )
        return await handle_comment_added(manager, mutation.project_id, plan.payload)

    @staticmethod
    async def list_notifications(
        db: AsyncSession,
        user: User,
        limit: int = 20,
        unread_only: bool = False,
    ) -> list[Notification]:
        """Newest-first notifications addressed to ``user``."""
        query = select(Notification).where(Notification.recipient_id == user.id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.order_by(Notification.created_at.desc()).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def count_notifications(db: AsyncSession, user: User) -> NotificationCount:
        total = await db.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.recipient_id == user.id
            )
        )
        unread = await db.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.recipient_id == user.id,
                Notification.is_read == False,  # noqa: E712
            )
        )
        return NotificationCount(total=total or 0, unread=unread or 0)

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: UUID,
        user: User,
        manager: Optional[ConnectionManager] = None,
    ) -> Notification:
        """
        Mark one of the user's notifications as read.

        Raises:
            HTTPException: 404 if the notification does not exist or belongs
                to someone else
        """
        result = await db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == user.id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Notification not found",
            )

        if not notification.is_read:
            notification.is_read = True
            await db.commit()
            await db.refresh(notification)

        if manager is not None:
            try:
                await handle_notification_read(manager, user.id, notification.id)
            except Exception as e:
                logger.error(f"Failed to broadcast notification read: {e}")

        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, user: User) -> int:
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == user.id,
                Notification.is_read == False,  # noqa: E712
            )
            .values(is_read=True)
        )
        await db.commit()
        return result.rowcount or 0
