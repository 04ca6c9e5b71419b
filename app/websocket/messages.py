"""WebSocket message vocabulary.

Every frame on the wire is a JSON object ``{"type": <event>, "data": {...}}``.
Inbound frames are parsed into one of a closed set of dataclasses so the
lifecycle manager can dispatch over them exhaustively.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID


class OutboundEvent(str, Enum):
    """Events the server emits to clients."""

    CONNECTED = "connected"
    ERROR = "error"
    ONLINE_USERS = "onlineUsers"
    TASK_UPDATED = "task:updated"
    COMMENT_NEW = "comment:new"
    NOTIFICATION_NEW = "notification:new"
    NOTIFICATION_READ = "notification:read"
    USER_TYPING = "userTyping"
    USER_STOPPED_TYPING = "userStoppedTyping"
    PING = "ping"


class InboundEvent(str, Enum):
    """Events clients may send to the server."""

    JOIN_PROJECT = "join:project"
    LEAVE_PROJECT = "leave:project"
    JOIN_USER = "join:user"
    LEAVE_USER = "leave:user"
    START_TYPING = "startTyping"
    STOP_TYPING = "stopTyping"
    PONG = "pong"


class MalformedMessage(ValueError):
    """Inbound frame that cannot be turned into a known message."""


@dataclass(frozen=True)
class JoinTopic:
    topic: str


@dataclass(frozen=True)
class LeaveTopic:
    topic: str


@dataclass(frozen=True)
class StartTyping:
    topic: str


@dataclass(frozen=True)
class StopTyping:
    topic: str


@dataclass(frozen=True)
class Pong:
    timestamp: Optional[float] = None


InboundMessage = Union[JoinTopic, LeaveTopic, StartTyping, StopTyping, Pong]


# =============================================================================
# Topics
# =============================================================================

PROJECT_NAMESPACE = "project"
USER_NAMESPACE = "user"
TOPIC_NAMESPACES = (PROJECT_NAMESPACE, USER_NAMESPACE)


def project_topic(project_id: UUID | str) -> str:
    """Topic for everyone watching a project: ``project:<id>``."""
    return f"{PROJECT_NAMESPACE}:{project_id}"


def user_topic(user_id: UUID | str) -> str:
    """Personal notification topic of a user: ``user:<id>``."""
    return f"{USER_NAMESPACE}:{user_id}"


def parse_topic(topic: Any) -> tuple[str, str]:
    """
    Split a topic into ``(namespace, resource_id)``.

    Raises:
        MalformedMessage: If the topic is not ``project:<id>`` or ``user:<id>``
    """
    if not isinstance(topic, str) or ":" not in topic:
        raise MalformedMessage(f"Invalid topic: {topic!r}")
    namespace, resource_id = topic.split(":", 1)
    if namespace not in TOPIC_NAMESPACES or not resource_id:
        raise MalformedMessage(f"Invalid topic: {topic!r}")
    return namespace, resource_id


# =============================================================================
# Encoding / decoding
# =============================================================================


def build_message(event: OutboundEvent, data: dict[str, Any]) -> dict[str, Any]:
    """Wrap a payload in the wire envelope."""
    return {"type": event.value, "data": data}


def _require_id(data: dict[str, Any], key: str, event: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MalformedMessage(f"'{event}' requires '{key}'")
    if not isinstance(value, (str, int)):
        raise MalformedMessage(f"'{event}': '{key}' must be a string")
    return str(value).strip()


def _require_topic(data: dict[str, Any], event: str) -> str:
    topic = data.get("topic")
    if topic is None:
        raise MalformedMessage(f"'{event}' requires 'topic'")
    parse_topic(topic)
    return topic


def parse_inbound(raw: Any) -> InboundMessage:
    """
    Parse a decoded JSON frame into an inbound message.

    Args:
        raw: The decoded JSON value

    Returns:
        One of JoinTopic, LeaveTopic, StartTyping, StopTyping, Pong

    Raises:
        MalformedMessage: For unknown events or missing/invalid fields
    """
    if not isinstance(raw, dict):
        raise MalformedMessage("Message must be a JSON object")

    event_name = raw.get("type")
    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise MalformedMessage("'data' must be a JSON object")

    try:
        event = InboundEvent(event_name)
    except ValueError:
        raise MalformedMessage(f"Unknown event type: {event_name!r}")

    if event is InboundEvent.JOIN_PROJECT:
        return JoinTopic(project_topic(_require_id(data, "project_id", event.value)))
    if event is InboundEvent.LEAVE_PROJECT:
        return LeaveTopic(project_topic(_require_id(data, "project_id", event.value)))
    if event is InboundEvent.JOIN_USER:
        return JoinTopic(user_topic(_require_id(data, "user_id", event.value)))
    if event is InboundEvent.LEAVE_USER:
        return LeaveTopic(user_topic(_require_id(data, "user_id", event.value)))
    if event is InboundEvent.START_TYPING:
        return StartTyping(_require_topic(data, event.value))
    if event is InboundEvent.STOP_TYPING:
        return StopTyping(_require_topic(data, event.value))

    # InboundEvent.PONG
    timestamp = data.get("timestamp")
    # bool is an int subclass but never a timestamp
    if timestamp is not None and (
        isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))
    ):
        raise MalformedMessage("'pong': 'timestamp' must be a number")
    return Pong(timestamp=timestamp)
