"""WebSocket connection manager with topic-based broadcast.

This module owns the live connections of this process and provides:
- Topic (room) membership with set semantics
- Ordered, best-effort delivery to every subscriber of a topic
- Broadcast to every live connection
- Per-connection sends that report failure instead of raising

Topics are created lazily on first join and disappear with their last
subscriber; publishing to a topic nobody joined delivers to nobody.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from fastapi import Request, WebSocket

from ..schemas.user import Identity

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class WebSocketConnection:
    """A live, authenticated WebSocket connection."""

    websocket: WebSocket
    identity: Identity
    connection_id: str = field(default_factory=lambda: uuid4().hex)
    connected_at: datetime = field(default_factory=datetime.utcnow)
    last_heartbeat: Optional[datetime] = None
    rooms: set[str] = field(default_factory=set)

    @property
    def user_id(self) -> UUID:
        return self.identity.user_id

    def __hash__(self) -> int:
        return hash(self.connection_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WebSocketConnection):
            return False
        return self.connection_id == other.connection_id


@dataclass
class DeliveryResult:
    """Outcome of a publish or broadcast call."""

    topic: str
    recipients: int = 0
    failed: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.failed == 0


class ConnectionManager:
    """
    Topic broadcaster over the live connections of this process.

    Features:
    - Topic-based connection grouping for targeted broadcasts
    - Idempotent join/leave guarded by an asyncio lock
    - Origin exclusion (typing indicators do not echo to the sender)
    - Closed connections are dropped from every topic atomically
    """

    ALL_TOPIC = "*"

    def __init__(self) -> None:
        # connection_id -> connection
        self._connections: dict[str, WebSocketConnection] = {}
        # topic -> connection ids, in join order
        self._rooms: dict[str, dict[str, None]] = {}
        self._lock = asyncio.Lock()

    @property
    def total_connections(self) -> int:
        return len(self._connections)

    @property
    def total_rooms(self) -> int:
        return len(self._rooms)

    def get_connection(self, connection_id: str) -> Optional[WebSocketConnection]:
        return self._connections.get(connection_id)

    def connections(self) -> list[WebSocketConnection]:
        return list(self._connections.values())

    def get_room_count(self, topic: str) -> int:
        return len(self._rooms.get(topic, {}))

    def is_subscribed(self, connection_id: str, topic: str) -> bool:
        return connection_id in self._rooms.get(topic, {})

    def get_room_users(self, topic: str) -> list[UUID]:
        """Unique user ids subscribed to a topic."""
        return list({
            self._connections[cid].user_id
            for cid in self._rooms.get(topic, {})
            if cid in self._connections
        })

    async def add_connection(self, connection: WebSocketConnection) -> None:
        async with self._lock:
            self._connections[connection.connection_id] = connection

    async def remove_connection(self, connection_id: str) -> Optional[WebSocketConnection]:
        """
        Drop a connection and remove it from every topic it joined.

        Returns:
            The removed connection, or None if it was not live
        """
        async with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return None

            for topic in list(connection.rooms):
                members = self._rooms.get(topic)
                if members is not None:
                    members.pop(connection_id, None)
                    if not members:
                        del self._rooms[topic]
            connection.rooms.clear()

        logger.info(
            f"Connection removed: connection={connection_id}, user={connection.user_id}, "
            f"total_connections={self.total_connections}"
        )
        return connection

    async def join(self, connection_id: str, topic: str) -> bool:
        """
        Subscribe a connection to a topic. Joining twice is a no-op.

        Returns:
            bool: True if the connection is live and now subscribed
        """
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return False
            self._rooms.setdefault(topic, {})[connection_id] = None
            connection.rooms.add(topic)

        logger.info(
            f"Join topic: user={connection.user_id} -> {topic} "
            f"(subscribers={self.get_room_count(topic)})"
        )
        return True

    async def leave(self, connection_id: str, topic: str) -> bool:
        """
        Unsubscribe a connection from a topic. Leaving a topic never joined is a no-op.

        Returns:
            bool: True if the connection had been subscribed
        """
        async with self._lock:
            members = self._rooms.get(topic)
            was_member = members is not None and connection_id in members
            if was_member:
                del members[connection_id]
                if not members:
                    del self._rooms[topic]
            connection = self._connections.get(connection_id)
            if connection is not None:
                connection.rooms.discard(topic)

        if was_member:
            logger.info(f"Leave topic: connection={connection_id} -> {topic}")
        return was_member

    async def send_personal(
        self,
        connection: WebSocketConnection,
        message: dict[str, Any],
    ) -> bool:
        """
        Send a message to a specific connection.

        Returns:
            bool: True if sent successfully, False otherwise
        """
        try:
            await connection.websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(
                f"Send failed: connection={connection.connection_id}, "
                f"user={connection.user_id}, type={message.get('type')}: {e}"
            )
            return False

    async def _deliver(
        self,
        topic: str,
        targets: list[WebSocketConnection],
        message: dict[str, Any],
    ) -> DeliveryResult:
        # Sequential sends keep per-topic program order on every socket.
        result = DeliveryResult(topic=topic)
        for conn in targets:
            if await self.send_personal(conn, message):
                result.recipients += 1
            else:
                result.failed += 1
        return result

    async def publish(
        self,
        topic: str,
        message: dict[str, Any],
        exclude_connection_id: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Deliver a message to every connection subscribed to a topic.

        Args:
            topic: The topic to publish to
            message: The message to send
            exclude_connection_id: Optional origin connection to skip

        Returns:
            DeliveryResult: Counts of successful and failed sends
        """
        targets = [
            self._connections[cid]
            for cid in list(self._rooms.get(topic, {}))
            if cid != exclude_connection_id and cid in self._connections
        ]

        if not targets:
            logger.debug(f"Publish to {topic}: no subscribers")
            return DeliveryResult(topic=topic)

        result = await self._deliver(topic, targets, message)
        logger.debug(
            f"Publish to {topic}: type={message.get('type')}, "
            f"{result.recipients}/{len(targets)} successful"
        )
        return result

    async def broadcast_all(self, message: dict[str, Any]) -> DeliveryResult:
        """Deliver a message to every live connection regardless of topic."""
        targets = list(self._connections.values())
        if not targets:
            return DeliveryResult(topic=self.ALL_TOPIC)
        return await self._deliver(self.ALL_TOPIC, targets, message)


def get_connection_manager(request: Request) -> ConnectionManager:
    """Dependency returning the connection manager owned by the application."""
    return request.app.state.ws_manager
