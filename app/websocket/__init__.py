"""WebSocket module for real-time collaboration."""

from .manager import ConnectionManager, DeliveryResult, WebSocketConnection
from .registry import DuplicateConnectionError, SessionRegistry
from .messages import (
    InboundEvent,
    MalformedMessage,
    OutboundEvent,
    build_message,
    parse_inbound,
    project_topic,
    user_topic,
)
from .handlers import (
    handle_comment_added,
    handle_notification,
    handle_notification_read,
    handle_task_updated,
)
from .lifecycle import ConnectionLifecycle, ConnectionState, HandshakeRejected
from .room_auth import check_room_access, load_active_identity

__all__ = [
    # Manager
    "ConnectionManager",
    "DeliveryResult",
    "WebSocketConnection",
    # Registry
    "DuplicateConnectionError",
    "SessionRegistry",
    # Messages
    "InboundEvent",
    "MalformedMessage",
    "OutboundEvent",
    "build_message",
    "parse_inbound",
    "project_topic",
    "user_topic",
    # Handlers
    "handle_comment_added",
    "handle_notification",
    "handle_notification_read",
    "handle_task_updated",
    # Lifecycle
    "ConnectionLifecycle",
    "ConnectionState",
    "HandshakeRejected",
    # Room authorization
    "check_room_access",
    "load_active_identity",
]
