"""Token issuing and verification, credential checks, account creation.

``verify_token`` is the single credential check for both transports: the
REST ``get_current_user`` dependency and the WebSocket handshake turn a
raw or ``Bearer``-prefixed token into an ``Identity`` through it, and a
refusal carries a ``VerificationFailure`` reason.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.counter import next_sequence
from ..models.user import User
from ..schemas.user import Identity, UserCreate, UserRole
from ..utils.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class VerificationFailure(str, Enum):
    """Why a bearer credential was refused."""

    MISSING = "missing"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    SIGNATURE_INVALID = "signature_invalid"


class TokenVerificationError(Exception):
    """Raised when a bearer credential cannot be turned into an identity."""

    def __init__(self, reason: VerificationFailure, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign ``claims`` with an ``exp`` of now + ``expires_delta`` (configured lifetime by default)."""
    lifetime = expires_delta if expires_delta is not None else timedelta(minutes=settings.jwt_expiration_minutes)
    payload = {**claims, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_token_for_user(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """Issue an access token carrying the user's id, name and role."""
    claims = {"sub": str(user.id), "email": user.email, "name": user.name, "role": user.role}
    return create_access_token(claims, expires_delta=expires_delta)


def strip_bearer(raw_token: Optional[str]) -> Optional[str]:
    """Accept either a raw token or a ``Bearer <token>`` value."""
    if raw_token is None:
        return None
    raw_token = raw_token.strip()
    if raw_token[:7].lower() == "bearer ":
        raw_token = raw_token[7:].strip()
    return raw_token or None


def verify_token(raw_token: Optional[str]) -> Identity:
    """
    Verify a bearer credential and return the identity it carries.

    Args:
        raw_token: Raw token or ``Bearer <token>`` value

    Returns:
        Identity: The authenticated identity

    Raises:
        TokenVerificationError: If the token is missing, malformed,
            expired or carries an invalid signature
    """
    token = strip_bearer(raw_token)
    if token is None:
        raise TokenVerificationError(VerificationFailure.MISSING)

    try:
        jwt.get_unverified_claims(token)
    except JWTError as e:
        raise TokenVerificationError(VerificationFailure.MALFORMED, str(e))

    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as e:
        raise TokenVerificationError(VerificationFailure.EXPIRED, str(e))
    except JWTError as e:
        raise TokenVerificationError(VerificationFailure.SIGNATURE_INVALID, str(e))

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise TokenVerificationError(VerificationFailure.MALFORMED, "subject is not a user id")

    return Identity(
        user_id=user_id,
        name=payload.get("name") or payload.get("email") or str(user_id),
        role=payload.get("role") or UserRole.EMPLOYEE.value,
    )


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """Return the active user matching ``email`` and ``password``, else None."""
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def create_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Persist a new account with the next ``user_number``.

    Raises:
        HTTPException: 400 if the email is already taken
    """
    if await get_user_by_email(db, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    db_user = User(
        user_number=await next_sequence(db, "user_number"),
        name=user_data.name,
        email=user_data.email,
        password_hash=get_password_hash(user_data.password),
        role=user_data.role.value,
    )
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)

    logger.info(f"User registered: id={db_user.id}, role={db_user.role}")
    return db_user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the bearer token on a REST request to an active ``User``.

    The token is checked by ``verify_token``; the account is then loaded
    so deactivation takes effect before the token expires.

    Raises:
        HTTPException: 401 for a refused token or a missing/deactivated account
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        identity = verify_token(token)
    except TokenVerificationError as e:
        logger.warning(f"Auth failed - {e.reason.value}")
        raise credentials_exception

    user = await get_user_by_id(db, identity.user_id)
    if user is None or not user.is_active:
        logger.warning(f"Auth failed - user not found or deactivated: {identity.user_id}")
        raise credentials_exception

    return user


def require_roles(*roles: UserRole) -> Callable:
    """
    Build a dependency that only lets users with one of ``roles`` through.

    Usage:
        @router.post("", dependencies=[Depends(require_roles(UserRole.ADMIN))])
    """
    allowed = {role.value for role in roles}

    async def role_checker(
        current_user: User = Depends(get_current_user),
    ) -> User:
        if current_user.role not in allowed:
            logger.warning(
                f"Role check failed: user={current_user.id} role={current_user.role} "
                f"required={sorted(allowed)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role}' is not allowed to perform this action",
            )
        return current_user

    return role_checker
