"""Authentication router - login and registration against Supabase Auth."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database import get_db
from middleware.rate_limit import limiter
from middleware.session import SessionResponseBuilder
from models.user import User, UserRole, UserStatus
from services.auth_service import AuthApiError
from services.supabase_client import SupabaseClient, get_supabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()

MIN_PASSWORD_LENGTH = 6
RESET_PASSWORD_PATH = "/auth/reset-password"


# Request/Response schemas
class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: str
    phone: str | None = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    access_token: str  # From the recovery link
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)


class MessageResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    role: UserRole
    status: UserStatus

    class Config:
        from_attributes = True


# Endpoints
@router.post("/login", response_model=UserResponse)
@limiter.limit("5/minute")  # Max 5 login attempts per minute per IP
async def login(
    request: Request,  # Required for rate limiting - must be named 'request'
    login_data: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    supabase: Annotated[SupabaseClient, Depends(get_supabase)],
):
    """Sign in with email and password; the session is stored in cookies."""
    try:
        session = await supabase.auth.sign_in_with_password(login_data.email, login_data.password)
    except AuthApiError as e:
        logger.info(f"Login rejected for {login_data.email}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    user_id = session.user.id if session.user else None
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User profile not found",
        )

    if user.status == UserStatus.INACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    builder = SessionResponseBuilder(settings)
    builder.set_session(session.access_token, session.refresh_token, session.expires_in)
    body = UserResponse.model_validate(user).model_dump(mode="json")
    return builder.finalize(JSONResponse(content=body))


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(
    request: Request,  # Required for rate limiting - must be named 'request'
    register_data: RegisterRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    supabase: Annotated[SupabaseClient, Depends(get_supabase)],
):
    """Create an auth user and a pending consultant profile."""
    result = await db.execute(select(User).where(User.email == register_data.email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email already exists",
        )

    try:
        auth_user = await supabase.auth.sign_up(
            register_data.email,
            register_data.password,
            user_metadata={"full_name": register_data.full_name},
        )
    except AuthApiError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )

    # New sign-ups wait for a clinic admin to activate them
    user = User(
        id=auth_user.id,
        email=register_data.email,
        full_name=register_data.full_name,
        phone=register_data.phone,
        role=UserRole.CONSULTANT,
        status=UserStatus.PENDING,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    return user


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("5/minute")
async def forgot_password(
    request: Request,  # Required for rate limiting - must be named 'request'
    data: ForgotPasswordRequest,
    supabase: Annotated[SupabaseClient, Depends(get_supabase)],
):
    """Email a recovery link pointing at the reset-password page."""
    redirect_to = f"{settings.site_url.rstrip('/')}{RESET_PASSWORD_PATH}" if settings.site_url else None
    try:
        await supabase.auth.recover(data.email, redirect_to=redirect_to)
    except AuthApiError as e:
        logger.info(f"Password recovery rejected for {data.email}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )

    return MessageResponse(message="Check your email for the password reset link")


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
async def reset_password(
    request: Request,  # Required for rate limiting - must be named 'request'
    data: ResetPasswordRequest,
    supabase: Annotated[SupabaseClient, Depends(get_supabase)],
):
    """Set a new password using the access token of a recovery link."""
    try:
        auth_user = await supabase.auth.update_user(data.access_token, {"password": data.password})
    except AuthApiError as e:
        if e.status in (401, 403):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Recovery link is invalid or has expired",
            )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )

    logger.info(f"Password updated for user {auth_user.id}")
    return MessageResponse(message="Password updated")
