import logging
import uuid

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from flashcards_api.api.deps import clear_refresh_cookie, set_refresh_cookie
from flashcards_api.config import settings
from flashcards_api.core.security import (
    create_access_token,
    create_password_reset_token,
    create_refresh_token,
    decode_token_payload,
)
from flashcards_api.database import get_db
from flashcards_api.models.user import User
from flashcards_api.schemas.user import (
    PasswordResetConfirmSchema,
    PasswordResetRequestSchema,
    TokenResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
)
from flashcards_api.services.auth_service import (
    authenticate_user,
    create_user,
    get_user_by_email,
    get_user_by_id,
    update_user_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_RESET_TOKEN = "Invalid or expired reset token"


def _issue_tokens(response: Response, user: User) -> str:
    """Set a fresh refresh cookie and return a new access token."""
    set_refresh_cookie(response, create_refresh_token(user.id))
    return create_access_token(user.id)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserRegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    if await get_user_by_email(db, data.email) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists",
        )

    user = await create_user(db, data)
    logger.info("Registered user %s", user.id)

    # Registration signs the user in straight away
    response.headers["X-Access-Token"] = _issue_tokens(response, user)
    return user


@router.post("/login", response_model=TokenResponse)
async def login(
    data: UserLoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    user = await authenticate_user(db, data.email, data.password)
    if user is None:
        raise _unauthorized("Incorrect email or password")
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )
    return TokenResponse(access_token=_issue_tokens(response, user))


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    response: Response,
    refresh_token: str | None = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
):
    if refresh_token is None:
        raise _unauthorized("Refresh token missing")

    try:
        payload = decode_token_payload(refresh_token, expected_type="refresh")
        user = await get_user_by_id(db, uuid.UUID(payload["sub"]))
    except (JWTError, ValueError):
        user = None

    if user is None or not user.is_active:
        clear_refresh_cookie(response)
        raise _unauthorized("Invalid or expired refresh token")

    return TokenResponse(access_token=_issue_tokens(response, user))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(response: Response):
    clear_refresh_cookie(response)


@router.post("/password-reset/request")
async def password_reset_request(
    data: PasswordResetRequestSchema,
    db: AsyncSession = Depends(get_db),
):
    # Same answer whether or not the address is registered
    result: dict = {"message": "If this email exists, a reset link has been sent"}

    user = await get_user_by_email(db, data.email)
    if user is not None:
        token = create_password_reset_token(user.id, user.password_hash)
        logger.info("Password reset requested for user %s", user.id)
        if settings.DEBUG:
            result["reset_token"] = token

    return result


@router.post("/password-reset/confirm")
async def password_reset_confirm(
    data: PasswordResetConfirmSchema,
    db: AsyncSession = Depends(get_db),
):
    try:
        payload = decode_token_payload(data.token, expected_type="password_reset")
        user_id = uuid.UUID(payload["sub"])
    except (JWTError, ValueError):
        raise _unauthorized(INVALID_RESET_TOKEN)

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    # A token is bound to the hash it was issued against
    if payload.get("pwd") != user.password_hash[-16:]:
        raise _unauthorized(INVALID_RESET_TOKEN)

    await update_user_password(db, user, data.new_password)
    logger.info("Password reset completed for user %s", user.id)
    return {"message": "Password has been reset successfully"}
