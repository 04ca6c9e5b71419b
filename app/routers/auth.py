"""Account endpoints: register, login, logout and the caller's profile.

A token issued by ``/auth/login`` authenticates both REST calls and the
``/ws`` handshake.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.user import UserCreate, UserResponse
from ..services.auth_service import (
    Token,
    authenticate_user,
    create_token_for_user,
    create_user,
    get_current_user,
)
from ..websocket.lifecycle import ConnectionLifecycle, get_lifecycle

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
    responses={
        201: {"description": "Account created"},
        400: {"description": "Email already in use"},
    },
)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Create a user account.

    - **name**: 1-50 characters
    - **email**: must not belong to another account
    - **password**: at least 6 characters
    - **role**: admin, manager or employee (employee when omitted)
    """
    return await create_user(db, user_data)


@router.post(
    "/login",
    response_model=Token,
    summary="Exchange credentials for a bearer token",
    responses={
        200: {"description": "Token issued"},
        401: {"description": "Unknown email, wrong password or inactive account"},
    },
)
async def login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: AsyncSession = Depends(get_db),
) -> Token:
    """
    OAuth2 password flow. ``username`` holds the account email.
    """
    user = await authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # id, name and role travel in the token so the socket handshake
    # needs no database lookup
    return Token(access_token=create_token_for_user(user))


@router.post(
    "/logout",
    summary="Drop the caller's live sessions",
    responses={
        200: {"description": "Sessions closed"},
        401: {"description": "Not authenticated"},
    },
)
async def logout(
    current_user: User = Depends(get_current_user),
    lifecycle: ConnectionLifecycle = Depends(get_lifecycle),
) -> dict:
    """
    Close every WebSocket session of the caller with code 1000.

    Tokens are stateless and remain valid until expiry; the client is
    expected to discard its copy.
    """
    closed = await lifecycle.close_user(current_user.id, reason="logout")
    return {
        "message": "Successfully logged out",
        "user_id": str(current_user.id),
        "closed_sessions": closed,
    }


@router.get("/me", response_model=UserResponse, summary="Profile of the caller")
async def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return current_user
