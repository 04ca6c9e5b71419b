"""In-memory registry of live, authenticated WebSocket sessions.

The registry is the source of truth for "who is online right now". It
holds a non-owning ``connection_id -> Identity`` map plus a reverse
``user_id -> {connection_id}`` index used for personal delivery. A user
may hold several simultaneous sessions (e.g. two browser tabs).

All methods are synchronous and never await, so on a single event loop
each call is atomic with respect to other coroutines.
"""

import logging
from typing import Optional
from uuid import UUID

from ..schemas.user import Identity

logger = logging.getLogger(__name__)


class DuplicateConnectionError(RuntimeError):
    """A connection id was registered twice (programming error)."""


class SessionRegistry:
    """
    Registry of online sessions.

    Features:
    - Duplicate registration is treated as a fatal programming error
    - Deregistration is idempotent (double-disconnect is tolerated)
    - Per-user reverse index for multi-session users
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Identity] = {}
        self._user_sessions: dict[UUID, set[str]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sessions

    def register(self, connection_id: str, identity: Identity) -> None:
        """
        Register a live connection.

        Args:
            connection_id: Transport-assigned unique connection id
            identity: The authenticated identity

        Raises:
            DuplicateConnectionError: If the id is already registered
        """
        if connection_id in self._sessions:
            logger.critical(
                f"Duplicate connection registration: connection={connection_id}, "
                f"user={identity.user_id}"
            )
            raise DuplicateConnectionError(
                f"Connection {connection_id} is already registered"
            )

        self._sessions[connection_id] = identity
        self._user_sessions.setdefault(identity.user_id, set()).add(connection_id)

        logger.debug(
            f"Session registered: connection={connection_id}, user={identity.user_id}, "
            f"online={len(self._sessions)}"
        )

    def deregister(self, connection_id: str) -> Optional[Identity]:
        """
        Remove a connection. No-op when it is not registered.

        Returns:
            The identity that was removed, or None
        """
        identity = self._sessions.pop(connection_id, None)
        if identity is None:
            return None

        user_sessions = self._user_sessions.get(identity.user_id)
        if user_sessions is not None:
            user_sessions.discard(connection_id)
            if not user_sessions:
                del self._user_sessions[identity.user_id]

        logger.debug(
            f"Session deregistered: connection={connection_id}, user={identity.user_id}, "
            f"online={len(self._sessions)}"
        )
        return identity

    def get(self, connection_id: str) -> Optional[Identity]:
        return self._sessions.get(connection_id)

    def list_online(self) -> list[Identity]:
        """Snapshot of registered identities, one entry per connection."""
        return list(self._sessions.values())

    def online_user_ids(self) -> set[UUID]:
        return set(self._user_sessions)

    def connections_for_user(self, user_id: UUID) -> set[str]:
        """Connection ids currently owned by ``user_id`` (possibly empty)."""
        return set(self._user_sessions.get(user_id, ()))
