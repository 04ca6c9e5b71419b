"""Per-connection lifecycle: handshake, dispatch, heartbeat and teardown.

State machine per connection::

    CONNECTING -> AUTHENTICATED -> ACTIVE -> CLOSED

A connection whose credential fails verification, or whose account is gone
or deactivated, is closed with code 4001 before it is accepted and never
reaches the session registry. Once ACTIVE,
a heartbeat task pings the client every ``heartbeat_interval`` seconds.
The heartbeat only observes; liveness is enforced by the receive loop's
idle timeout in ``run``.
"""

import asyncio
import json
import logging
import time
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from fastapi import Request, WebSocket, WebSocketDisconnect

from ..config import settings
from ..schemas.user import Identity
from ..services.auth_service import TokenVerificationError, VerificationFailure
from .manager import ConnectionManager, WebSocketConnection
from .messages import (
    JoinTopic,
    LeaveTopic,
    MalformedMessage,
    OutboundEvent,
    Pong,
    StartTyping,
    StopTyping,
    build_message,
    parse_inbound,
)
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

# Close codes in the application range (4000-4999)
CLOSE_UNAUTHENTICATED = 4001
CLOSE_IDLE_TIMEOUT = 4008
CLOSE_TOO_MANY_CONNECTIONS = 4029
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001

TokenVerifier = Callable[[Optional[str]], Identity]
RoomAuthorizer = Callable[[Identity, str], Awaitable[bool]]
IdentityLoader = Callable[[Identity], Awaitable[Optional[Identity]]]

_REJECT_REASONS = {
    VerificationFailure.MISSING: "Authentication required",
    VerificationFailure.MALFORMED: "Invalid token",
    VerificationFailure.EXPIRED: "Token expired",
    VerificationFailure.SIGNATURE_INVALID: "Invalid token signature",
}


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    CLOSED = "closed"


class HandshakeRejected(Exception):
    """The handshake failed; the socket is closed with ``code`` and ``reason``."""

    def __init__(self, reason: str, code: int = CLOSE_UNAUTHENTICATED) -> None:
        self.reason = reason
        self.code = code
        super().__init__(reason)


class ConnectionLifecycle:
    """
    Drives every WebSocket connection from handshake to close.

    The registry, the manager, the credential verifier, the optional
    account loader and the optional topic authorizer are all injected, so each test can build an isolated
    instance.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        manager: ConnectionManager,
        verifier: TokenVerifier,
        heartbeat_interval: float = settings.ws_heartbeat_interval,
        room_authorizer: Optional[RoomAuthorizer] = None,
        idle_timeout: float = settings.ws_idle_timeout,
        max_connections_per_user: int = settings.ws_max_connections_per_user,
        max_message_size: int = settings.ws_max_message_size,
        identity_loader: Optional[IdentityLoader] = None,
    ) -> None:
        self.registry = registry
        self.manager = manager
        self.verifier = verifier
        self.heartbeat_interval = heartbeat_interval
        self.room_authorizer = room_authorizer
        self.idle_timeout = idle_timeout
        self.max_connections_per_user = max_connections_per_user
        self.max_message_size = max_message_size
        self.identity_loader = identity_loader

        self._states: dict[str, ConnectionState] = {}
        self._heartbeats: dict[str, asyncio.Task] = {}

    def state(self, connection_id: str) -> ConnectionState:
        """Current state of a connection; unknown ids are reported as CLOSED."""
        return self._states.get(connection_id, ConnectionState.CLOSED)

    # =========================================================================
    # Connecting -> Authenticated -> Active
    # =========================================================================

    def authenticate(self, raw_token: Optional[str]) -> Identity:
        """
        Verify a raw or ``Bearer``-prefixed token.

        Raises:
            HandshakeRejected: If the credential is missing, malformed,
                expired or carries an invalid signature
        """
        try:
            return self.verifier(raw_token)
        except TokenVerificationError as e:
            raise HandshakeRejected(_REJECT_REASONS.get(e.reason, "Invalid token")) from e

    async def load_identity(self, identity: Identity) -> Identity:
        """
        Swap the token's claims for the stored account, when a loader is set.

        Raises:
            HandshakeRejected: If the account is missing or deactivated
        """
        if self.identity_loader is None:
            return identity
        stored = await self.identity_loader(identity)
        if stored is None:
            raise HandshakeRejected("Account disabled")
        return stored

    async def handshake(
        self,
        websocket: WebSocket,
        raw_token: Optional[str],
        remote_address: Optional[str] = None,
    ) -> Optional[WebSocketConnection]:
        """
        Authenticate and activate a new connection.

        Args:
            websocket: The not yet accepted WebSocket
            raw_token: Raw or ``Bearer``-prefixed credential
            remote_address: Peer address, for logging only

        Returns:
            The active connection, or None if the handshake was rejected
        """
        logger.debug(f"WebSocket handshake from {remote_address}")
        try:
            identity = await self.load_identity(self.authenticate(raw_token))
            if len(self.registry.connections_for_user(identity.user_id)) >= self.max_connections_per_user:
                logger.warning(
                    f"WebSocket connection rejected (limit) for user {identity.user_id} "
                    f"from {remote_address}"
                )
                raise HandshakeRejected("Too many connections", code=CLOSE_TOO_MANY_CONNECTIONS)
        except HandshakeRejected as e:
            logger.info(f"WebSocket handshake rejected from {remote_address}: {e.reason}")
            try:
                await websocket.close(code=e.code, reason=e.reason)
            except Exception as close_error:
                logger.debug(f"Close after rejected handshake failed: {close_error}")
            return None

        connection = WebSocketConnection(websocket=websocket, identity=identity)
        self._states[connection.connection_id] = ConnectionState.AUTHENTICATED

        await websocket.accept()
        self.registry.register(connection.connection_id, identity)
        await self.manager.add_connection(connection)
        self._states[connection.connection_id] = ConnectionState.ACTIVE

        await self.manager.send_personal(
            connection,
            build_message(OutboundEvent.CONNECTED, {
                "connection_id": connection.connection_id,
                "user_id": str(identity.user_id),
                "name": identity.name,
            }),
        )
        self._heartbeats[connection.connection_id] = asyncio.create_task(
            self._heartbeat(connection)
        )

        logger.info(
            f"WebSocket connection established: user={identity.user_id}, "
            f"connection={connection.connection_id}, from={remote_address}"
        )
        await self.broadcast_online_users()
        return connection

    # =========================================================================
    # Active: inbound dispatch
    # =========================================================================

    async def dispatch(self, connection: WebSocketConnection, raw: Any) -> None:
        """
        Route a decoded inbound frame.

        Malformed frames are logged and answered with an ``error`` message;
        the connection stays active.
        """
        if self.state(connection.connection_id) is not ConnectionState.ACTIVE:
            logger.debug(f"Dropping message for inactive connection {connection.connection_id}")
            return

        try:
            message = parse_inbound(raw)
        except MalformedMessage as e:
            logger.warning(f"Malformed message from user {connection.user_id}: {e}")
            await self._send_error(connection, "INVALID_MESSAGE", str(e))
            return

        if isinstance(message, JoinTopic):
            await self.join(connection, message.topic)
        elif isinstance(message, LeaveTopic):
            await self.manager.leave(connection.connection_id, message.topic)
        elif isinstance(message, StartTyping):
            await self.start_typing(connection, message.topic)
        elif isinstance(message, StopTyping):
            await self.stop_typing(connection, message.topic)
        elif isinstance(message, Pong):
            self.on_pong(connection, message.timestamp)

    async def join(self, connection: WebSocketConnection, topic: str) -> bool:
        if self.room_authorizer is not None:
            allowed = await self.room_authorizer(connection.identity, topic)
            if not allowed:
                logger.warning(f"Join denied: user={connection.user_id} -> {topic}")
                await self._send_error(connection, "FORBIDDEN", f"Access denied to {topic}")
                return False
        return await self.manager.join(connection.connection_id, topic)

    async def _relays_to(self, connection: WebSocketConnection, topic: str) -> bool:
        """Typing indicators only reach topics the sender has joined."""
        if self.manager.is_subscribed(connection.connection_id, topic):
            return True
        logger.warning(f"Typing dropped: user={connection.user_id} not subscribed to {topic}")
        await self._send_error(connection, "FORBIDDEN", f"Not subscribed to {topic}")
        return False

    async def start_typing(self, connection: WebSocketConnection, topic: str) -> None:
        if not await self._relays_to(connection, topic):
            return
        await self.manager.publish(
            topic,
            build_message(OutboundEvent.USER_TYPING, {
                "user_id": str(connection.user_id),
                "name": connection.identity.name,
                "topic": topic,
            }),
            exclude_connection_id=connection.connection_id,
        )

    async def stop_typing(self, connection: WebSocketConnection, topic: str) -> None:
        if not await self._relays_to(connection, topic):
            return
        await self.manager.publish(
            topic,
            build_message(OutboundEvent.USER_STOPPED_TYPING, {
                "user_id": str(connection.user_id),
                "topic": topic,
            }),
            exclude_connection_id=connection.connection_id,
        )

    def on_pong(self, connection: WebSocketConnection, timestamp: Optional[float]) -> None:
        connection.last_heartbeat = datetime.utcnow()
        if timestamp is not None:
            latency_ms = time.time() * 1000 - timestamp
            logger.debug(f"Pong from user {connection.user_id}: latency={latency_ms:.0f}ms")
        else:
            logger.debug(f"Pong from user {connection.user_id}")

    # =========================================================================
    # Heartbeat
    # =========================================================================

    async def _heartbeat(self, connection: WebSocketConnection) -> None:
        """Send ``ping`` on a fixed interval until cancelled or the socket is dead."""
        try:
            while True:
                await asyncio.sleep(self.heartbeat_interval)
                sent = await self.manager.send_personal(
                    connection,
                    build_message(OutboundEvent.PING, {"timestamp": int(time.time() * 1000)}),
                )
                if not sent:
                    logger.info(f"Heartbeat stopped for user {connection.user_id}: send failed")
                    break
        except asyncio.CancelledError:
            pass

    # =========================================================================
    # Active -> Closed
    # =========================================================================

    async def close(
        self,
        connection: WebSocketConnection,
        reason: str = "closed",
        close_code: Optional[int] = None,
    ) -> bool:
        """
        Tear a connection down. Calling it again is a no-op.

        Cancels the heartbeat, leaves every topic, deregisters the session
        and broadcasts the new online list. When ``close_code`` is given the
        transport is closed as well.

        Returns:
            bool: True if this call performed the teardown
        """
        connection_id = connection.connection_id
        if self._states.pop(connection_id, ConnectionState.CLOSED) is ConnectionState.CLOSED:
            return False

        heartbeat = self._heartbeats.pop(connection_id, None)
        if heartbeat is not None and heartbeat is not asyncio.current_task():
            heartbeat.cancel()
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass

        await self.manager.remove_connection(connection_id)
        self.registry.deregister(connection_id)

        if close_code is not None:
            try:
                await connection.websocket.close(code=close_code, reason=reason)
            except Exception as e:
                logger.debug(f"Transport close failed for {connection_id}: {e}")

        logger.info(
            f"WebSocket closed: user={connection.user_id}, connection={connection_id}, "
            f"reason={reason}"
        )
        await self.broadcast_online_users()
        return True

    async def close_user(self, user_id: UUID, reason: str = "logout") -> int:
        """
        Close every live session of a user (explicit logout).

        Returns:
            int: Number of sessions closed
        """
        closed = 0
        for connection_id in self.registry.connections_for_user(user_id):
            connection = self.manager.get_connection(connection_id)
            if connection is None:
                continue
            if await self.close(connection, reason=reason, close_code=CLOSE_NORMAL):
                closed += 1
        return closed

    async def evict_from_topic(self, user_id: UUID, topic: str) -> int:
        """
        Make every session of a user leave ``topic`` (access revoked).

        Returns:
            int: Number of sessions that were subscribed
        """
        evicted = 0
        for connection_id in self.registry.connections_for_user(user_id):
            if await self.manager.leave(connection_id, topic):
                evicted += 1
        if evicted:
            logger.info(f"Evicted user {user_id} from {topic} ({evicted} session(s))")
        return evicted

    async def shutdown(self) -> None:
        """Close every live connection (application shutdown)."""
        connections = self.manager.connections()
        if connections:
            logger.info(f"Closing {len(connections)} WebSocket connection(s)")
        for connection in connections:
            await self.close(connection, reason="server shutdown", close_code=CLOSE_GOING_AWAY)

    # =========================================================================
    # Broadcast helpers
    # =========================================================================

    def online_users(self) -> list[dict[str, str]]:
        """Online users, one entry per user even with several sessions."""
        seen: dict[str, dict[str, str]] = {}
        for identity in self.registry.list_online():
            entry = identity.to_online_entry()
            seen.setdefault(entry["user_id"], entry)
        return list(seen.values())

    async def broadcast_online_users(self) -> None:
        await self.manager.broadcast_all(
            build_message(OutboundEvent.ONLINE_USERS, {"users": self.online_users()})
        )

    async def _send_error(self, connection: WebSocketConnection, code: str, message: str) -> None:
        await self.manager.send_personal(
            connection,
            build_message(OutboundEvent.ERROR, {"error": code, "message": message}),
        )

    # =========================================================================
    # Receive loop
    # =========================================================================

    async def run(
        self,
        websocket: WebSocket,
        raw_token: Optional[str],
        remote_address: Optional[str] = None,
    ) -> None:
        """
        Serve one WebSocket from handshake to close.

        Frames larger than ``max_message_size`` or not valid JSON are answered
        with an ``error`` message. A connection silent for ``idle_timeout``
        seconds is closed.
        """
        connection = await self.handshake(websocket, raw_token, remote_address)
        if connection is None:
            return

        reason = "client disconnect"
        close_code: Optional[int] = None
        try:
            while self.state(connection.connection_id) is ConnectionState.ACTIVE:
                try:
                    raw_message = await asyncio.wait_for(
                        websocket.receive_text(),
                        timeout=self.idle_timeout,
                    )
                except asyncio.TimeoutError:
                    logger.info(f"Connection idle timeout for user: {connection.user_id}")
                    reason, close_code = "idle timeout", CLOSE_IDLE_TIMEOUT
                    break

                if len(raw_message) > self.max_message_size:
                    logger.warning(
                        f"Message too large from user {connection.user_id}: "
                        f"{len(raw_message)} bytes (max: {self.max_message_size})"
                    )
                    await self._send_error(
                        connection,
                        "MESSAGE_TOO_LARGE",
                        f"Message exceeds maximum size of {self.max_message_size} bytes",
                    )
                    continue

                try:
                    data = json.loads(raw_message)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON from user {connection.user_id}")
                    await self._send_error(connection, "INVALID_JSON", "Invalid JSON format")
                    continue

                await self.dispatch(connection, data)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnect for user: {connection.user_id}")
        except Exception as e:
            logger.error(f"WebSocket exception for user {connection.user_id}: {e}")
            reason = f"error: {type(e).__name__}"
        finally:
            await self.close(connection, reason=reason, close_code=close_code)


def get_lifecycle(request: Request) -> ConnectionLifecycle:
    """Dependency returning the connection lifecycle owned by the application."""
    return request.app.state.ws_lifecycle
