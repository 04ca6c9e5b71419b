"""Access checks for WebSocket connections.

``load_active_identity`` re-reads the account behind a verified token at
handshake time, so a deactivated account cannot connect and the role used
for topic checks is the stored one, not the one frozen into the token.

``check_room_access`` validates that users may join the topics they ask for:
- ``user:<id>`` only for the caller's own id
- ``project:<id>`` for project members, or any admin

Positive and negative results for project topics are cached for a short
TTL so reconnect storms do not hammer the database.
"""

import logging
import time
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import async_session_maker
from ..models.project import Project, project_members
from ..models.user import User
from .messages import USER_NAMESPACE, MalformedMessage, parse_topic
from ..schemas.user import Identity

logger = logging.getLogger(__name__)

# (user_id, topic) -> (result, expires_at)
_auth_cache: dict[tuple[str, str], tuple[bool, float]] = {}
_AUTH_CACHE_TTL = 300
_AUTH_CACHE_MAX_SIZE = 50000

# Replaced in tests with a factory bound to the test database
session_factory: Callable[[], AsyncSession] = async_session_maker


def _get_cached(user_id: UUID, topic: str) -> Optional[bool]:
    key = (str(user_id), topic)
    cached = _auth_cache.get(key)
    if cached is None:
        return None
    result, expires_at = cached
    if time.time() > expires_at:
        _auth_cache.pop(key, None)
        return None
    return result


def _set_cached(user_id: UUID, topic: str, result: bool) -> None:
    if len(_auth_cache) >= _AUTH_CACHE_MAX_SIZE:
        # Evict the oldest half
        oldest = sorted(_auth_cache.items(), key=lambda item: item[1][1])
        for key, _ in oldest[: len(oldest) // 2]:
            _auth_cache.pop(key, None)
    _auth_cache[(str(user_id), topic)] = (result, time.time() + _AUTH_CACHE_TTL)


def invalidate_user_cache(user_id: UUID) -> None:
    """Forget cached decisions for a user (call on membership changes)."""
    user_key = str(user_id)
    for key in [k for k in _auth_cache if k[0] == user_key]:
        _auth_cache.pop(key, None)


def clear_cache() -> None:
    _auth_cache.clear()


async def check_room_access(identity: Identity, topic: str) -> bool:
    """
    Check whether an identity may subscribe to a topic.

    Args:
        identity: The authenticated identity
        topic: ``project:<uuid>`` or ``user:<uuid>``

    Returns:
        bool: True if access is granted
    """
    try:
        namespace, resource_id_str = parse_topic(topic)
        resource_id = UUID(resource_id_str)
    except (MalformedMessage, ValueError):
        logger.warning(f"[Room Auth] DENIED - invalid topic format: {topic}")
        return False

    if namespace == USER_NAMESPACE:
        return resource_id == identity.user_id

    if identity.role == "admin":
        return True

    cached = _get_cached(identity.user_id, topic)
    if cached is not None:
        return cached

    try:
        async with session_factory() as db:
            result = await _is_project_member(db, identity.user_id, resource_id)
    except Exception as e:
        logger.error(f"[Room Auth] ERROR checking access to {topic}: {e}")
        return False

    _set_cached(identity.user_id, topic, result)
    if not result:
        logger.info(f"[Room Auth] DENIED - user={identity.user_id} not a member of {topic}")
    return result


async def _is_project_member(db: AsyncSession, user_id: UUID, project_id: UUID) -> bool:
    result = await db.execute(
        select(project_members.c.user_id).where(
            project_members.c.project_id == project_id,
            project_members.c.user_id == user_id,
        )
    )
    if result.first() is not None:
        return True

    # The creator is always treated as a member even if the row is missing
    result = await db.execute(
        select(Project.id).where(Project.id == project_id, Project.created_by == user_id)
    )
    return result.first() is not None


async def load_active_identity(identity: Identity) -> Optional[Identity]:
    """
    Rebuild ``identity`` from the stored account.

    Returns:
        The identity with the stored name and role, or None when the
        account is missing, deactivated or cannot be read
    """
    try:
        async with session_factory() as db:
            user = await db.get(User, identity.user_id)
    except Exception as e:
        logger.error(f"[Room Auth] ERROR loading account {identity.user_id}: {e}")
        return None

    if user is None or not user.is_active:
        logger.info(f"[Room Auth] DENIED - account missing or deactivated: {identity.user_id}")
        return None
    return Identity(user_id=user.id, name=user.name, role=user.role)
