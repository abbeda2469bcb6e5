"""Authentication dependencies - current user, role checks and clinic scoping."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User, UserRole, UserStatus
from services.auth_service import AuthService
from services.clinic_resolution import resolve_user_clinic

security = HTTPBearer(auto_error=False)


def _auth_user_id(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    """User id from a bearer token, else from the session middleware."""
    if credentials is not None:
        token_data = AuthService.decode_token(credentials.credentials)
        if token_data is not None:
            return token_data.user_id

    auth_user = getattr(request.state, "auth_user", None)
    if auth_user is not None:
        return auth_user.id
    return None


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Load the profile of the signed-in user.

    The auth user comes from a verified bearer token or from the session
    cookies already checked by SessionMiddleware.
    """
    user_id = _auth_user_id(request, credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User profile not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Ensure the current user is active."""
    if current_user.status != UserStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"User account is {current_user.status.value}",
        )
    return current_user


def require_roles(*roles: UserRole):
    """Create a dependency that requires specific roles.

    CLINIC_ADMIN always passes any role check.
    """
    async def role_checker(
        current_user: Annotated[User, Depends(get_current_active_user)],
    ) -> User:
        if current_user.role == UserRole.CLINIC_ADMIN:
            return current_user
        if current_user.role not in roles:
            required = ", ".join(r.value for r in roles) or UserRole.CLINIC_ADMIN.value
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Required role: {required}",
            )
        return current_user
    return role_checker


async def get_current_clinic_id(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> str:
    """Resolve the clinic all queries of this request are scoped to."""
    resolution = await resolve_user_clinic(db, current_user.id, current_user.role)
    if not resolution.success or resolution.clinic_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=resolution.error or "No clinic available",
        )
    return resolution.clinic_id
